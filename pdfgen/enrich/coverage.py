"""Coverage summary block consumed by the coverage summary generator."""

from __future__ import annotations

from datetime import date
from typing import Any

from pdfgen.utils.dates import format_date, parse_iso_date, years_between


def enrich_coverage_summary(payload: dict[str, Any]) -> dict[str, Any]:
    enriched = dict(payload)
    summary: dict[str, Any] = {
        "applicationNumber": payload.get("applicationNumber"),
        "effectiveDate": payload.get("effectiveDate"),
        "totalPremium": payload.get("totalPremium"),
    }
    today = date.today()

    applicants = payload.get("applicants")
    if isinstance(applicants, list) and applicants:
        enriched_applicants = [
            _enrich_applicant(applicant, today)
            for applicant in applicants
            if isinstance(applicant, dict)
        ]
        summary["enrichedApplicants"] = enriched_applicants
        summary["applicantCount"] = len(enriched_applicants)

    coverages = payload.get("coverages")
    if isinstance(coverages, list) and coverages:
        enriched_coverages: list[dict[str, Any]] = []
        carriers: list[str] = []
        total_benefits = 0
        for coverage in coverages:
            if not isinstance(coverage, dict):
                continue
            item = dict(coverage)
            carrier = coverage.get("carrierName")
            if carrier is not None and carrier not in carriers:
                carriers.append(carrier)
            benefits = coverage.get("benefits")
            if isinstance(benefits, list):
                total_benefits += len(benefits)
                item["benefitCount"] = len(benefits)
            enriched_coverages.append(item)
        summary["enrichedCoverages"] = enriched_coverages
        summary["totalCarriers"] = len(carriers)
        summary["carrierNames"] = carriers
        summary["totalBenefits"] = total_benefits

    effective_raw = payload.get("effectiveDate")
    effective = parse_iso_date(str(effective_raw)) if effective_raw is not None else None
    if effective_raw is not None:
        summary["formattedEffectiveDate"] = (
            format_date(effective, "MMMM d, yyyy") if effective else str(effective_raw)
        )
    summary["daysUntilEffective"] = (effective - today).days if effective else 0

    enriched["coverageSummary"] = summary
    return enriched


def _enrich_applicant(applicant: dict[str, Any], today: date) -> dict[str, Any]:
    item = dict(applicant)
    demographic = applicant.get("demographic")
    if isinstance(demographic, dict) and demographic.get("dateOfBirth"):
        born = parse_iso_date(str(demographic["dateOfBirth"]))
        item["calculatedAge"] = years_between(born, today) if born else 0
        first = demographic.get("firstName") or ""
        last = demographic.get("lastName") or ""
        item["displayName"] = f"{first} {last}".strip()
        item["displayRelationship"] = applicant.get("relationship") or "Primary"

    products = applicant.get("products")
    if isinstance(products, list) and products:
        total = 0.0
        for product in products:
            premium = product.get("premium") if isinstance(product, dict) else None
            try:
                total += float(premium) if premium is not None else 0.0
            except (TypeError, ValueError):
                continue
        item["totalApplicantPremium"] = f"{total:.2f}"
    return item
