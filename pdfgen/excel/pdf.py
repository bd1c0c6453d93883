"""Rudimentary workbook -> PDF grid conversion."""

from __future__ import annotations

import io
from collections.abc import Callable

from openpyxl import load_workbook
from reportlab.lib.pagesizes import LETTER, landscape
from reportlab.pdfgen import canvas

from pdfgen.utils.errors import RendererUnavailableError

ExcelToPdf = Callable[[bytes], bytes]

_MARGIN = 36
_ROW_HEIGHT = 16
_COLUMN_WIDTH = 90
_FONT_SIZE = 8


def grid_excel_to_pdf(workbook_bytes: bytes) -> bytes:
    """Draw each sheet's used range as a plain text grid, one sheet per page run."""

    workbook = load_workbook(io.BytesIO(workbook_bytes), data_only=True)
    buffer = io.BytesIO()
    page_size = landscape(LETTER)
    sheet_canvas = canvas.Canvas(buffer, pagesize=page_size)
    width, height = page_size
    max_columns = max(1, int((width - 2 * _MARGIN) // _COLUMN_WIDTH))

    for worksheet in workbook.worksheets:
        y = height - _MARGIN
        sheet_canvas.setFont("Helvetica-Bold", 11)
        sheet_canvas.drawString(_MARGIN, y, worksheet.title)
        y -= _ROW_HEIGHT * 1.5
        sheet_canvas.setFont("Helvetica", _FONT_SIZE)
        for row in worksheet.iter_rows(values_only=True):
            if y < _MARGIN:
                sheet_canvas.showPage()
                sheet_canvas.setFont("Helvetica", _FONT_SIZE)
                y = height - _MARGIN
            for column, value in enumerate(row[:max_columns]):
                if value is None:
                    continue
                x = _MARGIN + column * _COLUMN_WIDTH
                sheet_canvas.rect(x, y - 4, _COLUMN_WIDTH, _ROW_HEIGHT, stroke=1, fill=0)
                sheet_canvas.drawString(x + 2, y, str(value)[:20])
            y -= _ROW_HEIGHT
        sheet_canvas.showPage()

    sheet_canvas.save()
    return buffer.getvalue()


def convert_excel_to_pdf(workbook_bytes: bytes, converter: ExcelToPdf | None) -> bytes:
    if converter is None:
        raise RendererUnavailableError(
            "Excel to PDF conversion is not available: no converter is configured"
        )
    return converter(workbook_bytes)
