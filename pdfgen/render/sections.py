"""Section backends: one ``(section, payload) -> pdf bytes`` function per type."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pdfgen.functions.resolver import FunctionExpressionResolver
from pdfgen.mapping.models import SectionDescriptor
from pdfgen.mapping.patterns import effective_field_map
from pdfgen.render.acroform import AcroformTemplateStore, fill_form, resolve_field_values
from pdfgen.render.generators import GeneratorRegistry
from pdfgen.render.html import HtmlTemplateService
from pdfgen.utils.errors import MappingInvalidError, UnknownSectionTypeError

logger = logging.getLogger(__name__)

SectionBackend = Callable[[SectionDescriptor, dict[str, Any]], bytes]

_TYPE_ALIASES = {
    "freemarker": "html-template",
    "pdfbox": "code-drawn",
}


class SectionRenderer:
    """Dispatch sections to the backend registered for their ``type``."""

    def __init__(
        self,
        *,
        html: HtmlTemplateService,
        acroforms: AcroformTemplateStore,
        functions: FunctionExpressionResolver,
        generators: GeneratorRegistry,
    ) -> None:
        self._html = html
        self._acroforms = acroforms
        self._functions = functions
        self._generators = generators
        self._backends: dict[str, SectionBackend] = {
            "html-template": self._render_html,
            "acroform": self._render_acroform,
            "code-drawn": self._render_code_drawn,
        }

    def register(self, section_type: str, backend: SectionBackend) -> None:
        self._backends[section_type] = backend

    def supported_types(self) -> list[str]:
        return sorted(set(self._backends) | set(_TYPE_ALIASES))

    def render(self, section: SectionDescriptor, payload: dict[str, Any]) -> bytes:
        section_type = _TYPE_ALIASES.get(section.type, section.type)
        backend = self._backends.get(section_type)
        if backend is None:
            raise UnknownSectionTypeError(
                f"Unknown section type: {section.type}",
                detail={"section": section.name, "supported": self.supported_types()},
            )
        return backend(section, payload)

    def _render_html(self, section: SectionDescriptor, payload: dict[str, Any]) -> bytes:
        return self._html.render_pdf(_require_template(section), payload)

    def _render_acroform(self, section: SectionDescriptor, payload: dict[str, Any]) -> bytes:
        template = _require_template(section)
        field_map = effective_field_map(section.patterns, section.field_mapping)
        if not field_map:
            raise MappingInvalidError(
                f"AcroForm section {section.name} has no fieldMapping or patterns",
                detail={"section": section.name},
            )
        values = resolve_field_values(field_map, payload, self._functions)
        result = fill_form(self._acroforms.load(template), values)
        if result.missing_fields:
            logger.warning(
                "section %s: %d mapped field(s) missing from %s",
                section.name,
                len(result.missing_fields),
                template,
            )
        return result.content

    def _render_code_drawn(self, section: SectionDescriptor, payload: dict[str, Any]) -> bytes:
        return self._generators.get(_require_template(section))(payload)


def _require_template(section: SectionDescriptor) -> str:
    if not section.template:
        raise MappingInvalidError(
            f"Section {section.name} has no template", detail={"section": section.name}
        )
    return section.template
