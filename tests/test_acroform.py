from __future__ import annotations

import io
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from pypdf import PdfReader
from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from pdfgen.config.cache import TtlCache
from pdfgen.functions.registry import FunctionRegistry
from pdfgen.functions.resolver import FunctionExpressionResolver
from pdfgen.mapping.models import SectionDescriptor
from pdfgen.render.acroform import (
    AcroformTemplateStore,
    fill_form,
    format_value,
    resolve_field_values,
)
from pdfgen.render.generators import GeneratorRegistry
from pdfgen.render.html import HtmlTemplateService, LayeredTemplateLoader, build_environment
from pdfgen.render.sections import SectionRenderer
from pdfgen.utils.errors import MappingInvalidError, TemplateNotFoundError


def _form_pdf() -> bytes:
    buffer = io.BytesIO()
    sheet = canvas.Canvas(buffer, pagesize=LETTER)
    sheet.drawString(72, 740, "Enrollment form")
    sheet.acroForm.textfield(name="FirstName", x=72, y=700, width=200, height=20)
    sheet.acroForm.textfield(name="Dependent1_FirstName", x=72, y=660, width=200, height=20)
    sheet.acroForm.checkbox(name="Tobacco", x=72, y=620, size=14)
    sheet.showPage()
    sheet.save()
    return buffer.getvalue()


def _functions() -> FunctionExpressionResolver:
    return FunctionExpressionResolver(FunctionRegistry.with_builtins())


def test_format_value_typed_rules() -> None:
    assert format_value(True) == "Yes"
    assert format_value(False) == "No"
    assert format_value(date(2026, 1, 5)) == "01/05/2026"
    assert format_value(Decimal("1E+2")) == "100"
    assert format_value(None) == ""
    assert format_value(12.5) == "12.5"


def test_resolve_field_values_handles_functions_statics_and_paths() -> None:
    payload = {"member": {"first": "ann", "smoker": True}}
    values = resolve_field_values(
        {
            "FirstName": "#{uppercase(member.first)}",
            "Plan": "static:Gold",
            "Tobacco": "payload.member.smoker",
            "Missing": "member.middle",
        },
        payload,
        _functions(),
    )

    assert values == {"FirstName": "ANN", "Plan": "Gold", "Tobacco": "Yes", "Missing": ""}


def test_fill_form_sets_values_and_reports_missing(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="pdfgen.render.acroform")

    result = fill_form(
        _form_pdf(), {"FirstName": "Ann", "Tobacco": "Yes", "NotOnForm": "x"}
    )

    fields = PdfReader(io.BytesIO(result.content)).get_fields()
    assert fields is not None
    assert fields["FirstName"].get("/V") == "Ann"
    assert fields["Tobacco"].get("/V") not in (None, "/Off")
    assert result.missing_fields == ["NotOnForm"]
    assert sorted(result.filled) == ["FirstName", "Tobacco"]
    assert "NotOnForm" in caplog.text


def test_template_store_caches_and_raises_when_missing(tmp_path: Path) -> None:
    (tmp_path / "form.pdf").write_bytes(b"%PDF-stub")
    cache: TtlCache = TtlCache("acroformTemplates", max_entries=5, ttl_seconds=60)
    store = AcroformTemplateStore(cache, [tmp_path / "nowhere", tmp_path])

    assert store.load("form.pdf") == b"%PDF-stub"
    (tmp_path / "form.pdf").unlink()
    assert store.load("form.pdf") == b"%PDF-stub"

    with pytest.raises(TemplateNotFoundError, match="other.pdf"):
        store.load("other.pdf")


def _section_renderer(root: Path) -> SectionRenderer:
    return SectionRenderer(
        html=HtmlTemplateService(build_environment(LayeredTemplateLoader())),
        acroforms=AcroformTemplateStore(
            TtlCache("acroformTemplates", max_entries=5, ttl_seconds=60), [root]
        ),
        functions=_functions(),
        generators=GeneratorRegistry(),
    )


def test_acroform_section_uses_patterns_and_explicit_fields(tmp_path: Path) -> None:
    (tmp_path / "enroll.pdf").write_bytes(_form_pdf())
    section = SectionDescriptor.model_validate(
        {
            "name": "application",
            "type": "acroform",
            "template": "enroll.pdf",
            "fieldMapping": {"FirstName": "primary.firstName"},
            "patterns": [
                {
                    "fieldPattern": "Dependent{n}_*",
                    "source": "dependents[{n}]",
                    "maxIndex": 0,
                    "fields": {"FirstName": "firstName"},
                }
            ],
        }
    )
    payload = {"primary": {"firstName": "Ann"}, "dependents": [{"firstName": "Cal"}]}

    content = _section_renderer(tmp_path).render(section, payload)

    fields = PdfReader(io.BytesIO(content)).get_fields()
    assert fields is not None
    assert fields["FirstName"].get("/V") == "Ann"
    assert fields["Dependent1_FirstName"].get("/V") == "Cal"


def test_acroform_section_requires_field_mapping(tmp_path: Path) -> None:
    section = SectionDescriptor.model_validate(
        {"name": "empty", "type": "acroform", "template": "enroll.pdf"}
    )

    with pytest.raises(MappingInvalidError, match="no fieldMapping"):
        _section_renderer(tmp_path).render(section, {})


def test_code_drawn_section_uses_generator_registry(tmp_path: Path) -> None:
    section = SectionDescriptor.model_validate(
        {"name": "summary", "type": "pdfbox", "template": "CoverageSummaryGenerator"}
    )

    content = _section_renderer(tmp_path).render(
        section, {"coverageSummary": {"applicationNumber": "APP-1"}}
    )

    text = PdfReader(io.BytesIO(content)).pages[0].extract_text()
    assert "Coverage Summary" in text
    assert "APP-1" in text


def _radio_form_pdf() -> bytes:
    buffer = io.BytesIO()
    sheet = canvas.Canvas(buffer, pagesize=LETTER)
    sheet.acroForm.textfield(name="first", x=72, y=700, width=200, height=20)
    sheet.acroForm.radio(name="plan", value="gold", selected=False, x=72, y=660, size=14)
    sheet.acroForm.radio(name="plan", value="silver", selected=False, x=120, y=660, size=14)
    sheet.showPage()
    sheet.save()
    return buffer.getvalue()


def test_fill_form_selects_radio_export_value() -> None:
    result = fill_form(_radio_form_pdf(), {"plan": "silver", "first": "Ann"})

    reader = PdfReader(io.BytesIO(result.content))
    fields = reader.get_fields()
    assert fields is not None
    assert fields["plan"].get("/V") == "/silver"
    assert fields["first"].get("/V") == "Ann"
    states = [
        str(annotation.get_object().get("/AS"))
        for annotation in reader.pages[0]["/Annots"]
        if annotation.get_object().get("/AS") is not None
    ]
    assert sorted(states) == ["/Off", "/silver"]
    assert result.missing_fields == []


def test_premium_chart_generator_draws_a4_cover(tmp_path: Path) -> None:
    section = SectionDescriptor.model_validate(
        {"name": "chart", "type": "code-drawn", "template": "premium-chart-generator"}
    )

    content = _section_renderer(tmp_path).render(
        section, {"title": "Plan Costs", "companyName": "Acme Health"}
    )

    page = PdfReader(io.BytesIO(content)).pages[0]
    text = page.extract_text()
    assert "chart:Plan Costs" in text
    assert "Acme Health" in text
    assert f"Generated: {date.today().isoformat()}" in text
    assert round(float(page.mediabox.width)) == 595
