"""Multi-section document assembly."""

from __future__ import annotations

import io
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from pypdf import PdfReader, PdfWriter

from pdfgen.assemble.decorations import decorate
from pdfgen.enrich.registry import EnricherRegistry
from pdfgen.mapping.models import BookmarkSpec, MergePlan, SectionDescriptor
from pdfgen.mapping.paths import resolve
from pdfgen.mapping.service import strip_path_prefix
from pdfgen.render.sections import SectionRenderer
from pdfgen.utils.errors import TemplateRenderError
from pdfgen.utils.values import is_truthy

logger = logging.getLogger(__name__)


@dataclass
class AssembledDocument:
    content: bytes
    page_count: int
    section_order: list[str] = field(default_factory=list)
    section_start_pages: dict[str, int] = field(default_factory=dict)


def resolve_sections(plan: MergePlan, payload: dict[str, Any]) -> list[SectionDescriptor]:
    """Base sections plus conditional sections whose condition holds.

    A section with ``insertAfter`` lands after its target (and after earlier
    sections inserted behind the same target); an unknown target appends.
    """

    working = list(plan.sections)
    last_inserted: dict[str, str] = {}
    for block in plan.conditional_sections:
        if not is_truthy(resolve(payload, strip_path_prefix(block.condition))):
            continue
        for section in block.sections:
            target = section.insert_after
            anchor = last_inserted.get(target, target) if target else None
            position = _index_of(working, anchor) if anchor else None
            if position is None:
                working.append(section)
            else:
                working.insert(position + 1, section)
                last_inserted[target] = section.name
    return working


class DocumentAssembler:
    def __init__(
        self,
        sections: SectionRenderer,
        enrichers: EnricherRegistry,
        *,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._sections = sections
        self._enrichers = enrichers
        self._today = today

    def assemble(self, plan: MergePlan, payload: dict[str, Any]) -> AssembledDocument:
        """Generate, merge and decorate all sections; no partial output on failure."""

        writer = PdfWriter()
        order: list[str] = []
        start_pages: dict[str, int] = {}

        for section in resolve_sections(plan, payload):
            if not section.enabled:
                continue
            enriched = self._enrichers.apply(section.payload_enrichers, payload)
            content = self._sections.render(section, enriched)
            try:
                reader = PdfReader(io.BytesIO(content))
            except Exception as exc:  # noqa: BLE001
                raise TemplateRenderError(
                    f"Section {section.name} produced an unreadable PDF: {exc}",
                    detail={"section": section.name},
                ) from exc
            start_pages.setdefault(section.name, len(writer.pages))
            order.append(section.name)
            writer.append(reader, import_outline=False)
            logger.debug("section %s: %d page(s)", section.name, len(reader.pages))

        decorate(writer, plan, payload, self._today())
        if plan.bookmarks_enabled and plan.bookmarks:
            add_bookmarks(writer, plan.bookmarks, start_pages)

        output = io.BytesIO()
        writer.write(output)
        return AssembledDocument(
            content=output.getvalue(),
            page_count=len(writer.pages),
            section_order=order,
            section_start_pages=start_pages,
        )


def add_bookmarks(
    writer: PdfWriter, bookmarks: list[BookmarkSpec], start_pages: dict[str, int]
) -> None:
    """Build the outline; a level-N entry nests under the latest level N-1 entry."""

    latest: dict[int, Any] = {}
    total = len(writer.pages)
    for bookmark in bookmarks:
        page = start_pages.get(bookmark.section)
        if page is None or page >= total:
            logger.warning(
                "bookmark %r skipped: section %s has no pages", bookmark.title, bookmark.section
            )
            continue
        parent = None
        if bookmark.level > 1:
            parent = latest.get(bookmark.level - 1)
            if parent is None:
                logger.warning(
                    "bookmark %r skipped: no level %d parent", bookmark.title, bookmark.level - 1
                )
                continue
        item = writer.add_outline_item(bookmark.title, page, parent=parent)
        latest[bookmark.level] = item
        for level in [level for level in latest if level > bookmark.level]:
            del latest[level]


def _index_of(sections: list[SectionDescriptor], name: str) -> int | None:
    for index, section in enumerate(sections):
        if section.name == name:
            return index
    return None
