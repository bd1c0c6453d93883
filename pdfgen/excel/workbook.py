"""Fill Excel templates: single cells and repeating table rows."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from openpyxl import load_workbook
from openpyxl.cell.cell import Cell
from openpyxl.utils.cell import coordinate_from_string
from openpyxl.workbook.workbook import Workbook
from pydantic import BaseModel, ConfigDict, Field

from pdfgen.mapping.paths import resolve
from pdfgen.utils.errors import TemplateRenderError

logger = logging.getLogger(__name__)

_DATE_FORMAT = "mm/dd/yyyy"


class TableMapping(BaseModel):
    """Rows written from ``sourcePath`` starting at 0-based ``startRow``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    sheet_name: str | None = Field(default=None, alias="sheetName")
    start_row: int = Field(default=0, alias="startRow", ge=0)
    source_path: str = Field(alias="sourcePath")
    column_mappings: dict[int, str] = Field(default_factory=dict, alias="columnMappings")


def fill_workbook(
    template_bytes: bytes,
    payload: dict[str, Any],
    *,
    cell_mappings: dict[str, str] | None = None,
    table_mappings: Iterable[TableMapping] = (),
) -> bytes:
    """Apply cell and table mappings to a template and return xlsx bytes."""

    try:
        workbook = load_workbook(io.BytesIO(template_bytes))
    except Exception as exc:  # noqa: BLE001
        raise TemplateRenderError(f"Excel template could not be read: {exc}") from exc

    for reference, path in (cell_mappings or {}).items():
        value = resolve(payload, path)
        if value is None:
            continue
        cell = locate_cell(workbook, reference)
        if cell is None:
            logger.warning("excel cell not found: %s", reference)
            continue
        write_typed(cell, value)

    for table in table_mappings:
        _fill_table(workbook, table, payload)

    output = io.BytesIO()
    workbook.save(output)
    return output.getvalue()


def locate_cell(workbook: Workbook, reference: str) -> Cell | None:
    """Find a cell by defined name, ``Sheet!A1`` or ``A1`` (first sheet)."""

    defined = workbook.defined_names.get(reference)
    if defined is not None:
        for sheet_title, coordinate in defined.destinations:
            if sheet_title in workbook.sheetnames:
                return workbook[sheet_title][coordinate.replace("$", "").split(":")[0]]
        return None

    sheet_title, _, coordinate = reference.rpartition("!")
    sheet_title = sheet_title.strip("'")
    if sheet_title:
        if sheet_title not in workbook.sheetnames:
            return None
        sheet = workbook[sheet_title]
    else:
        sheet = workbook.worksheets[0]
    try:
        coordinate_from_string(coordinate.replace("$", ""))
    except ValueError:
        return None
    return sheet[coordinate.replace("$", "")]


def write_typed(cell: Cell, value: Any) -> None:
    if value is None:
        cell.value = None
    elif isinstance(value, bool):
        cell.value = value
    elif isinstance(value, (int, float)):
        cell.value = float(value)
    elif isinstance(value, (datetime, date)):
        cell.value = value
        cell.number_format = _DATE_FORMAT
    else:
        cell.value = str(value)


def _fill_table(workbook: Workbook, table: TableMapping, payload: dict[str, Any]) -> None:
    rows = resolve(payload, table.source_path)
    if not isinstance(rows, list):
        return
    if table.sheet_name and table.sheet_name in workbook.sheetnames:
        sheet = workbook[table.sheet_name]
    else:
        sheet = workbook.worksheets[0]

    row_number = table.start_row + 1
    for item in rows:
        if not isinstance(item, dict):
            continue
        for column_index, path in table.column_mappings.items():
            write_typed(sheet.cell(row=row_number, column=column_index + 1), resolve(item, path))
        row_number += 1
