"""Fill AcroForm PDF templates from a field map and payload."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from pypdf import PdfReader, PdfWriter
from pypdf.generic import BooleanObject, NameObject, TextStringObject

from pdfgen.config.cache import TtlCache
from pdfgen.functions.resolver import FunctionExpressionResolver
from pdfgen.mapping.paths import STATIC_PREFIX, resolve
from pdfgen.mapping.service import strip_path_prefix
from pdfgen.utils.errors import TemplateNotFoundError, TemplateRenderError

logger = logging.getLogger(__name__)

_CHECKED_VALUES = {"yes", "y", "true", "on", "1", "x"}
_RADIO_FLAG = 1 << 15


@dataclass
class FillResult:
    content: bytes
    filled: list[str] = field(default_factory=list)
    missing_fields: list[str] = field(default_factory=list)


class AcroformTemplateStore:
    """Cached form template bytes from the local config tree."""

    def __init__(self, cache: TtlCache[bytes], search_roots: list[Path]) -> None:
        self._cache = cache
        self._search_roots = search_roots

    def load(self, template: str) -> bytes:
        content = self._cache.get_or_load(template, lambda: self._read(template))
        if content is None:
            raise TemplateNotFoundError(f"AcroForm template not found: {template}")
        return content

    def _read(self, template: str) -> bytes | None:
        for root in self._search_roots:
            candidate = root / template
            if candidate.is_file():
                return candidate.read_bytes()
        return None


def resolve_field_values(
    field_map: dict[str, str],
    payload: dict[str, Any],
    functions: FunctionExpressionResolver,
) -> dict[str, str]:
    """Resolve every field expression to display text; unresolved -> ``""``."""

    values: dict[str, str] = {}
    for name, expression in field_map.items():
        if functions.is_expression(expression):
            values[name] = functions.resolve(expression, payload)
        elif expression.startswith(STATIC_PREFIX):
            values[name] = expression[len(STATIC_PREFIX) :]
        else:
            values[name] = format_value(resolve(payload, strip_path_prefix(expression)))
    return values


def format_value(value: Any) -> str:
    """Typed display conversion: Yes/No, MM/dd/yyyy, plain decimals."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, (datetime, date)):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)


def fill_form(template_bytes: bytes, values: dict[str, str]) -> FillResult:
    """Write ``values`` into matching form fields; the form stays editable."""

    try:
        reader = PdfReader(io.BytesIO(template_bytes))
        writer = PdfWriter()
        writer.clone_document_from_reader(reader)
    except Exception as exc:  # noqa: BLE001
        raise TemplateRenderError(f"AcroForm template could not be read: {exc}") from exc

    matched: set[str] = set()
    for page in writer.pages:
        if "/Annots" not in page:
            continue
        for annotation_ref in page["/Annots"]:
            annotation = annotation_ref.get_object()
            short_name = str(annotation.get("/T", ""))
            qualified = _qualified_name(annotation)
            name = short_name if short_name in values else qualified
            if name not in values:
                continue
            _write_field(annotation, values[name])
            matched.add(name)

    acroform = writer._root_object.get("/AcroForm")
    if acroform is not None:
        acroform.get_object()[NameObject("/NeedAppearances")] = BooleanObject(True)

    missing = [name for name in values if name not in matched]
    for name in missing:
        logger.warning("form field not found in template: %s", name)

    output = io.BytesIO()
    writer.write(output)
    return FillResult(
        content=output.getvalue(),
        filled=[name for name in values if name in matched],
        missing_fields=missing,
    )


def _write_field(annotation: Any, value: str) -> None:
    if _field_type(annotation) == "/Btn" and _field_flags(annotation) & _RADIO_FLAG:
        _select_radio(annotation, value)
        return
    if _field_type(annotation) == "/Btn":
        if value.strip().lower() in _CHECKED_VALUES:
            state = _on_state(annotation)
        else:
            state = "/Off"
        annotation[NameObject("/V")] = NameObject(state)
        annotation[NameObject("/AS")] = NameObject(state)
        return
    annotation[NameObject("/V")] = TextStringObject(value)
    if "/AP" in annotation:
        del annotation["/AP"]


def _field_type(annotation: Any) -> str:
    node = annotation
    while node is not None:
        field_type = node.get("/FT")
        if field_type:
            return str(field_type)
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
    return ""


def _field_flags(annotation: Any) -> int:
    node = annotation
    while node is not None:
        flags = node.get("/Ff")
        if flags is not None:
            return int(flags)
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
    return 0


def _select_radio(widget: Any, value: str) -> None:
    """Turn on the kid whose appearance state matches ``value``; the group holds /V."""

    state = NameObject(f"/{value.strip()}")
    group = widget
    if "/T" not in widget and widget.get("/Parent") is not None:
        group = widget["/Parent"].get_object()
    if state in _appearance_states(widget):
        widget[NameObject("/AS")] = state
        group[NameObject("/V")] = state
    else:
        widget[NameObject("/AS")] = NameObject("/Off")


def _appearance_states(widget: Any) -> set[str]:
    appearance = widget.get("/AP")
    if appearance is None:
        return set()
    normal = appearance.get_object().get("/N")
    if normal is None:
        return set()
    return {str(key) for key in normal.get_object().keys()}


def _on_state(annotation: Any) -> str:
    for state in sorted(_appearance_states(annotation)):
        if state != "/Off":
            return state
    return "/Yes"


def _qualified_name(annotation: Any) -> str:
    parts: list[str] = []
    node = annotation
    while node is not None:
        title = node.get("/T")
        if title:
            parts.insert(0, str(title))
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
    return ".".join(parts)
