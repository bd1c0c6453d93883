from __future__ import annotations

import io
from pathlib import Path

import httpx
import pytest
from pypdf import PdfReader
from reportlab.lib.pagesizes import LETTER
from reportlab.pdfgen import canvas

from pdfgen.config.settings import Settings
from pdfgen.mapping.models import GenerateRequest
from pdfgen.orchestrator.pipeline import GenerationService, build_service
from pdfgen.utils.errors import MappingInvalidError, TemplateNotFoundError

STORE = {
    "mappings/base-application.yml": "mapping.pdf.field.Client: client.name\n",
    "mappings/templates/listing.yml": "mapping.pdf.field.Plan: static:Gold\n",
    "mappings/templates/letter.yml": (
        "template:\n  url: letter.html\n  type: jinja\n"
        "mapping:\n  pdf:\n    field:\n      Greeting: \"#{uppercase(client.name)}\"\n"
    ),
    "mappings/templates/simple.yml": (
        "template:\n  url: simple.html\n  type: html\n"
        "mapping:\n  pdf:\n    field:\n      Plan: static:Gold\n"
    ),
    "preprocessing/acme-rules.yml": (
        "arrayFilters:\n"
        "  - sourcePath: enrollment.members\n"
        "    targetKey: subscriber\n"
    ),
    "mappings/templates/packet.yml": (
        "preprocessing:\n"
        "  arrayFilters:\n"
        "    - sourcePath: applicants\n"
        "      targetKey: primary\n"
        "      filterField: relationship\n"
        "      filterValue: PRIMARY\n"
        "pdfMerge:\n"
        "  sections:\n"
        "    - name: cover\n"
        "      type: html-template\n"
        "      template: cover.html\n"
        "    - name: summary\n"
        "      type: code-drawn\n"
        "      template: CoverageSummaryGenerator\n"
        "      payloadEnrichers: [coverageSummary]\n"
        "  pageNumbering:\n"
        "    format: \"{current}/{total}\"\n"
    ),
}


def _one_page_pdf(text: str) -> bytes:
    buffer = io.BytesIO()
    sheet = canvas.Canvas(buffer, pagesize=LETTER)
    sheet.drawString(72, 700, text)
    sheet.showPage()
    sheet.save()
    return buffer.getvalue()


def _store_handler(request: httpx.Request) -> httpx.Response:
    prefix = "/application/default/main/"
    path = request.url.path
    if path.startswith(prefix) and path[len(prefix) :] in STORE:
        return httpx.Response(200, text=STORE[path[len(prefix) :]])
    return httpx.Response(404)


@pytest.fixture()
def rendered() -> list[str]:
    return []


@pytest.fixture()
def service(tmp_path: Path, rendered: list[str]) -> GenerationService:
    repo = tmp_path / "repo"
    (repo / "templates").mkdir(parents=True)
    (repo / "templates" / "letter.html").write_text(
        "<html><body>{{ Greeting }} / {{ payload.client.name }}</body></html>", encoding="utf-8"
    )
    (repo / "templates" / "simple.html").write_text(
        "<p>{{Client}} ${Plan}</p>", encoding="utf-8"
    )
    (repo / "templates" / "cover.html").write_text(
        "<p>Cover for {{ primary.name }}</p>", encoding="utf-8"
    )
    (repo / "merge").mkdir()
    (repo / "merge" / "base.yml").write_text(
        "pdfMerge:\n"
        "  sections:\n"
        "    - name: cover\n"
        "      type: html-template\n"
        "      template: cover.html\n",
        encoding="utf-8",
    )
    (repo / "merge" / "packet.yml").write_text(
        "composition:\n"
        "  base: merge/base\n"
        "pdfMerge:\n"
        "  sections:\n"
        "    - name: summary\n"
        "      type: code-drawn\n"
        "      template: CoverageSummaryGenerator\n",
        encoding="utf-8",
    )

    def renderer(document: str) -> bytes:
        rendered.append(document)
        return _one_page_pdf("html page")

    return build_service(
        Settings(config_server_url="http://config.test", config_repo_path=repo),
        transport=httpx.MockTransport(_store_handler),
        html_renderer=renderer,
    )


def _request(template: str, **payload: object) -> GenerateRequest:
    return GenerateRequest.model_validate(
        {"templateName": template, "clientService": "portal", "payload": payload}
    )


def test_generate_without_template_lists_resolved_fields(service: GenerationService) -> None:
    document = service.generate(_request("listing", client={"name": "Acme"}))

    assert document.media_type == "application/pdf"
    assert document.filename == "listing.pdf"
    text = PdfReader(io.BytesIO(document.content)).pages[0].extract_text()
    assert "Client: Acme" in text
    assert "Plan: Gold" in text


def test_generate_renders_jinja_template_with_resolved_fields(
    service: GenerationService, rendered: list[str]
) -> None:
    service.generate(_request("letter", client={"name": "Acme"}))

    assert "ACME / Acme" in rendered[0]
    assert rendered[0].startswith("<?xml")


def test_generate_html_template_uses_simple_substitution(
    service: GenerationService, rendered: list[str]
) -> None:
    service.generate(_request("simple", client={"name": "Acme"}))

    assert "Acme Gold" in rendered[0]


def test_generate_merge_plan_with_inline_preprocessing(
    service: GenerationService, rendered: list[str]
) -> None:
    document = service.generate(
        _request(
            "packet",
            applicants=[
                {"relationship": "SPOUSE", "name": "Bob"},
                {"relationship": "PRIMARY", "name": "Ann"},
            ],
            applicationNumber="APP-9",
        )
    )

    reader = PdfReader(io.BytesIO(document.content))
    assert len(reader.pages) == 2
    assert "Cover for Ann" in rendered[0]
    assert "1/2" in reader.pages[0].extract_text()
    assert "APP-9" in reader.pages[1].extract_text()


def test_named_merge_config_with_composition(service: GenerationService) -> None:
    document = service.merge("merge/packet", {"coverageSummary": {}})

    assert document.filename == "packet.pdf"
    assert len(PdfReader(io.BytesIO(document.content)).pages) == 2
    with pytest.raises(TemplateNotFoundError, match="merge/absent"):
        service.merge("merge/absent", {})


def test_compose_reports_candidates(service: GenerationService) -> None:
    composed = service.compose(_request("listing"))

    assert composed.candidates == ["mappings/base-application", "mappings/templates/listing"]
    assert composed.tree["mapping"]["pdf"]["field"] == {
        "Client": "client.name",
        "Plan": "static:Gold",
    }


def test_invalid_override_is_mapping_invalid(service: GenerationService) -> None:
    request = GenerateRequest.model_validate(
        {"templateName": "listing", "clientService": "portal", "mappingOverride": "[1, 2"}
    )

    with pytest.raises(MappingInvalidError):
        service.generate(request)


def test_enrollment_payload_uses_client_rules_from_store(service: GenerationService) -> None:
    payload = {"clientId": "acme", "enrollment": {"members": [{"name": "Ann"}, {"name": "Bo"}]}}

    prepared = service.prepare_enrollment_payload(payload)

    assert prepared["subscriber"] == {"name": "Ann"}
    assert prepared["enrollment"] == payload["enrollment"]
    assert service.preview_flattened(payload) == {"subscriber": {"name": "Ann"}}


def test_simple_enrollment_payload_passes_through(service: GenerationService) -> None:
    payload = {"applicants": [{"name": "Ann"}]}

    assert service.prepare_enrollment_payload(payload) is payload
