from __future__ import annotations

from pathlib import Path

import pytest

from pdfgen.render.html import (
    HtmlTemplateService,
    LayeredTemplateLoader,
    build_environment,
    inject_page_rule,
    prepare_xhtml,
    substitute_simple,
)
from pdfgen.utils.errors import TemplateNotFoundError, TemplateRenderError


def _service(tmp_path: Path, captured: list[str]) -> HtmlTemplateService:
    (tmp_path / "resources").mkdir()
    (tmp_path / "files").mkdir()
    (tmp_path / "resources" / "letter.html").write_text(
        "<html><body><p>{{ member.name }}</p><p>{{ payload.member.plan }}</p></body></html>",
        encoding="utf-8",
    )
    (tmp_path / "files" / "local.html").write_text("<p>{{ note }}</p>", encoding="utf-8")
    loader = LayeredTemplateLoader([tmp_path / "resources"], [tmp_path / "files"])

    def renderer(document: str) -> bytes:
        captured.append(document)
        return b"%PDF-fake"

    return HtmlTemplateService(build_environment(loader), renderer=renderer)


def test_prepare_xhtml_strips_junk_and_adds_prolog_namespace_and_page_rule() -> None:
    prepared = prepare_xhtml("\ufeff  junk<html><head></head><body><br><p>Hi</p></body></html>")

    assert prepared.startswith('<?xml version="1.0" encoding="utf-8"?>')
    assert '<html xmlns="http://www.w3.org/1999/xhtml">' in prepared
    assert "@page { size: 8.5in 11in; margin: 0; }" in prepared
    assert "<br/>" in prepared
    assert "junk" not in prepared


def test_existing_page_rule_is_kept() -> None:
    document = "<html><head><style>@page { size: A4 }</style></head><body></body></html>"

    assert inject_page_rule(document) == document


def test_prepare_xhtml_rejects_text_without_markup() -> None:
    with pytest.raises(TemplateRenderError, match="no markup"):
        prepare_xhtml("plain text only")


def test_render_pdf_exposes_payload_at_root_and_under_payload(tmp_path: Path) -> None:
    captured: list[str] = []
    service = _service(tmp_path, captured)

    payload = {"member": {"name": "<Ann>", "plan": "Gold"}}

    result = service.render_pdf("classpath:letter.html", payload)

    assert result == b"%PDF-fake"
    assert "&lt;Ann&gt;" in captured[0]
    assert "Gold" in captured[0]


def test_search_roots_and_missing_templates(tmp_path: Path) -> None:
    captured: list[str] = []
    service = _service(tmp_path, captured)

    assert service.render_template("local.html", {"note": "hello"}) == "<p>hello</p>"
    assert service.render_template("local.html", {}) == "<p></p>"
    with pytest.raises(TemplateNotFoundError):
        service.render_template("classpath:local.html", {})
    with pytest.raises(TemplateNotFoundError):
        service.load_source("absent.html")


def test_substitute_simple_escapes_and_leaves_unknown_tokens() -> None:
    text = substitute_simple("<p>{{name}} ${ plan } {{unknown}}</p>", {"name": "A&B", "plan": 3})

    assert text == "<p>A&amp;B 3 {{unknown}}</p>"
