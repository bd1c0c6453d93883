"""Page numbers, header/footer bands drawn as overlays on merged pages."""

from __future__ import annotations

import io
from dataclasses import dataclass
from datetime import date
from typing import Any

from pypdf import PdfReader, PdfWriter
from reportlab.lib.colors import HexColor, black
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from pdfgen.mapping.models import HeaderFooter, MergePlan, PageNumbering, TextBlock

_SIDE_MARGIN = 20
_TOP_OFFSET = 30
_BOTTOM_OFFSET = 20
_BAND_TEXT_OFFSET = 20

_KNOWN_FONTS = frozenset(
    {"Helvetica", "Helvetica-Bold", "Helvetica-Oblique", "Times-Roman", "Times-Bold", "Courier"}
)


@dataclass(frozen=True)
class TextMark:
    text: str
    x: float
    y: float
    font: str
    size: float


@dataclass(frozen=True)
class LineMark:
    y: float
    x_start: float
    x_end: float
    color: str
    thickness: float


def standard_font(name: str | None) -> str:
    return name if name in _KNOWN_FONTS else "Helvetica"


def decorate(writer: PdfWriter, plan: MergePlan, payload: dict[str, Any], today: date) -> None:
    """Stamp page numbers and header/footer bands on every eligible page."""

    total = len(writer.pages)
    bands = [
        (plan.header, True),
        (plan.footer, False),
    ]
    for index, page in enumerate(writer.pages):
        current = index + 1
        width = float(page.mediabox.width)
        height = float(page.mediabox.height)
        marks: list[TextMark | LineMark] = []

        if plan.page_numbering is not None and current >= plan.page_numbering.start_page:
            marks.append(page_number_mark(plan.page_numbering, current, total, width, height))

        for band, is_header in bands:
            if band is None or not band.enabled or current < band.start_page:
                continue
            marks.extend(
                band_marks(band, is_header, current, total, width, height, payload, today)
            )

        if marks:
            page.merge_page(_overlay(width, height, marks))


def page_number_mark(
    config: PageNumbering, current: int, total: int, width: float, height: float
) -> TextMark:
    text = config.format.replace("{current}", str(current)).replace("{total}", str(total))
    font = standard_font(config.font)
    text_width = stringWidth(text, font, config.font_size)
    vertical, _, horizontal = config.position.partition("-")
    y = height - _TOP_OFFSET if vertical == "top" else _BOTTOM_OFFSET
    return TextMark(text, _aligned_x(horizontal, text_width, width), y, font, config.font_size)


def band_marks(
    band: HeaderFooter,
    is_header: bool,
    current: int,
    total: int,
    width: float,
    height: float,
    payload: dict[str, Any],
    today: date,
) -> list[TextMark | LineMark]:
    marks: list[TextMark | LineMark] = []
    y = height - _BAND_TEXT_OFFSET if is_header else _BAND_TEXT_OFFSET
    for alignment, block in (
        ("left", band.content.left),
        ("center", band.content.center),
        ("right", band.content.right),
    ):
        if block is None or not block.text:
            continue
        marks.append(_band_text(block, alignment, y, width, current, total, payload, today))

    if band.border.enabled:
        line_y = height - band.height if is_header else band.height
        marks.append(
            LineMark(
                y=line_y,
                x_start=_SIDE_MARGIN,
                x_end=width - _SIDE_MARGIN,
                color=band.border.color,
                thickness=band.border.thickness,
            )
        )
    return marks


def substitute_placeholders(
    text: str, current: int, total: int, payload: dict[str, Any], today: date
) -> str:
    result = (
        text.replace("{current}", str(current))
        .replace("{total}", str(total))
        .replace("{date}", today.isoformat())
    )
    for key, value in payload.items():
        token = "{" + str(key) + "}"
        if token in result:
            result = result.replace(token, "" if value is None else str(value))
    return result


def _band_text(
    block: TextBlock,
    alignment: str,
    y: float,
    width: float,
    current: int,
    total: int,
    payload: dict[str, Any],
    today: date,
) -> TextMark:
    text = substitute_placeholders(block.text, current, total, payload, today)
    font = standard_font(block.font)
    text_width = stringWidth(text, font, block.font_size)
    return TextMark(text, _aligned_x(alignment, text_width, width), y, font, block.font_size)


def _aligned_x(alignment: str, text_width: float, page_width: float) -> float:
    if alignment == "left":
        return _SIDE_MARGIN
    if alignment == "right":
        return page_width - text_width - _SIDE_MARGIN
    return (page_width - text_width) / 2


def _overlay(width: float, height: float, marks: list[TextMark | LineMark]):
    buffer = io.BytesIO()
    sheet = canvas.Canvas(buffer, pagesize=(width, height))
    for mark in marks:
        if isinstance(mark, TextMark):
            sheet.setFillColor(black)
            sheet.setFont(mark.font, mark.size)
            sheet.drawString(mark.x, mark.y, mark.text)
        else:
            sheet.setStrokeColor(_color(mark.color))
            sheet.setLineWidth(mark.thickness)
            sheet.line(mark.x_start, mark.y, mark.x_end, mark.y)
    sheet.showPage()
    sheet.save()
    buffer.seek(0)
    return PdfReader(buffer).pages[0]


def _color(value: str):
    try:
        return HexColor(value)
    except (ValueError, TypeError):
        return black
