"""HTML template loading, rendering, XHTML preparation and PDF conversion."""

from __future__ import annotations

import html
import io
import logging
import re
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import httpx
from jinja2 import BaseLoader, ChainableUndefined, Environment, TemplateError, TemplateNotFound
from lxml import etree
from lxml import html as lxml_html
from xhtml2pdf import pisa  # type: ignore[import-untyped]

from pdfgen.utils.errors import TemplateNotFoundError, TemplateRenderError

logger = logging.getLogger(__name__)

HtmlToPdf = Callable[[str], bytes]

_RESOURCE_PREFIX = "classpath:"
_XHTML_NS = "http://www.w3.org/1999/xhtml"
_XML_PROLOG = '<?xml version="1.0" encoding="utf-8"?>\n'
_DEFAULT_PAGE_RULE = "@page { size: 8.5in 11in; margin: 0; }"
_PAGE_RULE_RE = re.compile(r"@page\b", re.IGNORECASE)
_STYLE_OPEN_RE = re.compile(r"<style\b[^>]*>", re.IGNORECASE)
_HEAD_OPEN_RE = re.compile(r"<head\b[^>]*>", re.IGNORECASE)
_HTML_OPEN_RE = re.compile(r"<html\b[^>]*>", re.IGNORECASE)
_SIMPLE_TOKEN_RE = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}|\$\{\s*([\w.\-]+)\s*\}")


class LayeredTemplateLoader(BaseLoader):
    """Load templates from a URL, resource roots, or filesystem roots.

    ``http(s)://`` names are fetched over HTTP; ``classpath:`` names are
    looked up in the resource roots only; anything else is looked up in the
    resource roots and then each search root in order.
    """

    def __init__(
        self,
        resource_roots: Sequence[Path] = (),
        search_roots: Sequence[Path] = (),
        *,
        refresh_seconds: float = 5.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._resource_roots = [Path(root) for root in resource_roots]
        self._search_roots = [Path(root) for root in search_roots]
        self._refresh_seconds = refresh_seconds
        self._http = http_client

    def get_source(
        self, environment: Environment, template: str
    ) -> tuple[str, str | None, Callable[[], bool]]:
        if template.startswith(("http://", "https://")):
            return self._load_url(template)

        is_resource = template.startswith(_RESOURCE_PREFIX)
        name = (template[len(_RESOURCE_PREFIX) :] if is_resource else template).lstrip("/")
        roots = list(self._resource_roots)
        if not is_resource:
            roots.extend(self._search_roots)
        for root in roots:
            candidate = root / name
            if candidate.is_file():
                return self._load_file(candidate)
        raise TemplateNotFound(template)

    def _load_file(self, path: Path) -> tuple[str, str, Callable[[], bool]]:
        mtime = path.stat().st_mtime
        checked_at = time.monotonic()

        def uptodate() -> bool:
            if time.monotonic() - checked_at < self._refresh_seconds:
                return True
            try:
                return path.stat().st_mtime == mtime
            except OSError:
                return False

        return path.read_text(encoding="utf-8"), str(path), uptodate

    def _load_url(self, url: str) -> tuple[str, None, Callable[[], bool]]:
        client = self._http or httpx.Client(timeout=10.0)
        try:
            response = client.get(url)
        except httpx.HTTPError as exc:
            raise TemplateNotFound(url) from exc
        finally:
            if self._http is None:
                client.close()
        if response.status_code >= 400:
            raise TemplateNotFound(url)
        loaded_at = time.monotonic()
        return (
            response.text,
            None,
            lambda: time.monotonic() - loaded_at < self._refresh_seconds,
        )


def build_environment(loader: BaseLoader) -> Environment:
    return Environment(
        loader=loader,
        autoescape=True,
        undefined=ChainableUndefined,
        auto_reload=True,
        keep_trailing_newline=True,
    )


def render_html_to_pdf(document: str) -> bytes:
    """Default HTML -> PDF renderer backed by xhtml2pdf."""

    output = io.BytesIO()
    status = pisa.CreatePDF(document, dest=output, encoding="utf-8")
    if status.err:
        raise TemplateRenderError(f"HTML to PDF conversion failed with {status.err} error(s)")
    return output.getvalue()


class HtmlTemplateService:
    """Render named HTML templates and convert them to PDF bytes."""

    def __init__(self, environment: Environment, renderer: HtmlToPdf = render_html_to_pdf) -> None:
        self._environment = environment
        self._renderer = renderer

    def render_template(self, name: str, model: dict[str, Any]) -> str:
        try:
            template = self._environment.get_template(name)
        except TemplateNotFound as exc:
            raise TemplateNotFoundError(f"Template not found: {name}") from exc
        try:
            return template.render(model)
        except TemplateError as exc:
            raise TemplateRenderError(f"Template render failed for {name}: {exc}") from exc

    def load_source(self, name: str) -> str:
        """Return raw template text (used by simple ``html`` substitution)."""

        loader = self._environment.loader
        if loader is None:
            raise TemplateNotFoundError(f"Template not found: {name}")
        try:
            source, _, _ = loader.get_source(self._environment, name)
        except TemplateNotFound as exc:
            raise TemplateNotFoundError(f"Template not found: {name}") from exc
        return source

    def render_pdf(self, name: str, payload: dict[str, Any]) -> bytes:
        """Render with ``{...payload, payload: payload}`` and convert to PDF."""

        model = dict(payload)
        model["payload"] = payload
        return self.html_to_pdf(self.render_template(name, model))

    def html_to_pdf(self, document: str) -> bytes:
        prepared = prepare_xhtml(document)
        try:
            return self._renderer(prepared)
        except TemplateRenderError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise TemplateRenderError(f"HTML to PDF conversion failed: {exc}") from exc


def substitute_simple(template: str, values: dict[str, Any]) -> str:
    """Replace ``{{key}}`` and ``${key}`` tokens with HTML-escaped values."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1) or match.group(2)
        if key not in values:
            return match.group(0)
        value = values[key]
        return html.escape("" if value is None else str(value))

    return _SIMPLE_TOKEN_RE.sub(_replace, template)


def prepare_xhtml(document: str) -> str:
    """Strip leading junk, ensure an ``@page`` rule, and coerce to XHTML."""

    cleaned = document.lstrip("\ufeff")
    first_tag = cleaned.find("<")
    if first_tag < 0:
        raise TemplateRenderError("Rendered HTML contains no markup")
    cleaned = cleaned[first_tag:]
    if cleaned.startswith("<?xml"):
        prolog_end = cleaned.find("?>")
        cleaned = cleaned[prolog_end + 2 :].lstrip() if prolog_end >= 0 else cleaned
    return to_xhtml(inject_page_rule(cleaned))


def inject_page_rule(document: str) -> str:
    if _PAGE_RULE_RE.search(document):
        return document
    for pattern, insertion in (
        (_STYLE_OPEN_RE, _DEFAULT_PAGE_RULE),
        (_HEAD_OPEN_RE, f"<style>{_DEFAULT_PAGE_RULE}</style>"),
        (_HTML_OPEN_RE, f"<head><style>{_DEFAULT_PAGE_RULE}</style></head>"),
    ):
        match = pattern.search(document)
        if match is not None:
            return document[: match.end()] + insertion + document[match.end() :]
    return f"<style>{_DEFAULT_PAGE_RULE}</style>" + document


def to_xhtml(document: str) -> str:
    try:
        root = lxml_html.document_fromstring(document)
    except (etree.ParserError, ValueError) as exc:
        raise TemplateRenderError(f"Rendered HTML could not be parsed: {exc}") from exc
    markup = etree.tostring(root, method="xml", encoding="unicode")
    opening = _HTML_OPEN_RE.match(markup)
    if opening is not None and "xmlns=" not in opening.group(0):
        markup = f'<html xmlns="{_XHTML_NS}"' + markup[len("<html") :]
    return _XML_PROLOG + markup
