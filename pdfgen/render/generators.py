"""Code-drawn section generators and their registry."""

from __future__ import annotations

import io
from collections.abc import Callable
from datetime import date
from typing import Any

from reportlab.lib.pagesizes import A4, LETTER
from reportlab.pdfgen import canvas

from pdfgen.utils.errors import UnknownGeneratorError

Generator = Callable[[dict[str, Any]], bytes]

_MARGIN = 50
_LINE_HEIGHT = 15


class _PageWriter:
    """Top-down text writer that starts a new page when space runs out."""

    def __init__(self, pagesize: tuple[float, float] = LETTER) -> None:
        self.buffer = io.BytesIO()
        self.canvas = canvas.Canvas(self.buffer, pagesize=pagesize)
        self.width, self.height = pagesize
        self.y = self.height - _MARGIN

    def text(
        self,
        value: str,
        *,
        font: str = "Helvetica",
        size: float = 11,
        x: float = _MARGIN,
        advance: float = _LINE_HEIGHT,
    ) -> None:
        if self.y < _MARGIN + 40:
            self.canvas.showPage()
            self.y = self.height - _MARGIN
        self.canvas.setFont(font, size)
        self.canvas.drawString(x, self.y, value)
        self.y -= advance

    def skip(self, amount: float) -> None:
        self.y -= amount

    def finish(self) -> bytes:
        self.canvas.showPage()
        self.canvas.save()
        return self.buffer.getvalue()


def coverage_summary(payload: dict[str, Any]) -> bytes:
    """Draw the coverage summary built by the ``coverageSummary`` enricher."""

    page = _PageWriter()
    page.text("Coverage Summary", font="Helvetica-Bold", size=18, advance=30)

    summary = payload.get("coverageSummary")
    if not isinstance(summary, dict):
        page.text("Note: Configure 'coverageSummary' enricher for enhanced data")
        return _with_footer(page)

    if summary.get("applicationNumber") is not None:
        page.text(f"Application Number: {summary['applicationNumber']}")
    if summary.get("formattedEffectiveDate") is not None:
        page.text(f"Effective Date: {summary['formattedEffectiveDate']}")
    if summary.get("totalPremium") is not None:
        page.text(f"Total Monthly Premium: ${summary['totalPremium']}", advance=_LINE_HEIGHT * 2)

    applicants = summary.get("enrichedApplicants") or []
    if applicants:
        page.text(
            f"Covered Individuals ({summary.get('applicantCount', len(applicants))}):",
            font="Helvetica-Bold",
            size=12,
            advance=_LINE_HEIGHT * 1.5,
        )
        for applicant in applicants:
            name = applicant.get("displayName")
            if name:
                age = applicant.get("calculatedAge")
                age_text = f" (Age {age})" if age is not None else ""
                relationship = applicant.get("displayRelationship", "")
                page.text(f"- {name} - {relationship}{age_text}", size=10, x=_MARGIN + 20)
            for product in applicant.get("products") or []:
                if isinstance(product, dict) and product.get("planName"):
                    page.text(
                        f"  Coverage: {product['planName']} (${product.get('premium')}/mo)",
                        size=10,
                        x=_MARGIN + 20,
                    )
            page.skip(_LINE_HEIGHT * 0.5)

    coverages = summary.get("enrichedCoverages") or []
    if coverages:
        page.skip(_LINE_HEIGHT)
        page.text(
            f"Coverage Details ({summary.get('totalBenefits', 0)} total benefits):",
            font="Helvetica-Bold",
            size=12,
            advance=_LINE_HEIGHT * 1.5,
        )
        for coverage in coverages:
            if coverage.get("planName"):
                count = coverage.get("benefitCount")
                suffix = f" ({count} benefits)" if count is not None else ""
                page.text(f"- {coverage['planName']}{suffix}", size=10, x=_MARGIN + 20)
            if coverage.get("carrierName"):
                page.text(f"  Carrier: {coverage['carrierName']}", size=10, x=_MARGIN + 20)
            page.skip(_LINE_HEIGHT * 0.5)

    return _with_footer(page)


def premium_chart(payload: dict[str, Any]) -> bytes:
    """A4 report cover: title, company name and generation date."""

    page = _PageWriter(A4)
    title = payload.get("title") or "Healthcare Plan Report"
    company = payload.get("companyName") or "Company Name"
    page.canvas.setFont("Helvetica-Bold", 24)
    page.canvas.drawString(100, 700, f"chart:{title}")
    page.canvas.setFont("Helvetica", 16)
    page.canvas.drawString(100, 650, str(company))
    page.canvas.setFont("Helvetica", 12)
    page.canvas.drawString(100, 100, f"Generated: {date.today().isoformat()}")
    return page.finish()


def field_listing(values: dict[str, Any], *, title: str | None = None) -> bytes:
    """Plain ``key: value`` document used when no template is configured."""

    page = _PageWriter()
    if title:
        page.text(title, font="Helvetica-Bold", size=14, advance=_LINE_HEIGHT * 2)
    for key, value in values.items():
        page.text(f"{key}: {'' if value is None else value}", size=10)
    return page.finish()


def _with_footer(page: _PageWriter) -> bytes:
    page.canvas.setFont("Helvetica", 8)
    page.canvas.drawString(
        _MARGIN,
        _MARGIN + 20,
        "This is a summary of your coverage. "
        "Please review all policy documents for complete details.",
    )
    return page.finish()


_BUILTIN_GENERATORS: dict[str, Generator] = {
    "CoverageSummaryGenerator": coverage_summary,
    "premium-chart-generator": premium_chart,
}


class GeneratorRegistry:
    def __init__(self, generators: dict[str, Generator] | None = None) -> None:
        self._generators = dict(_BUILTIN_GENERATORS if generators is None else generators)

    def register(self, name: str, generator: Generator) -> None:
        self._generators[name] = generator

    def get(self, name: str) -> Generator:
        try:
            return self._generators[name]
        except KeyError as exc:
            raise UnknownGeneratorError(
                f"Unknown generator: {name}", detail={"available": self.names()}
            ) from exc

    def names(self) -> list[str]:
        return sorted(self._generators)
