"""Built-in field transformation functions.

Every function takes the resolved argument list and the payload and
returns a string. Bad input never raises; functions fall back to the raw
value (or an empty string) instead.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any

from pdfgen.utils.dates import format_date as _format_date
from pdfgen.utils.dates import parse_any, parse_date


def concat(args: list[Any], payload: dict[str, Any]) -> str:
    return "".join(str(arg) for arg in args if arg is not None)


def uppercase(args: list[Any], payload: dict[str, Any]) -> str:
    return _first_text(args).upper()


def lowercase(args: list[Any], payload: dict[str, Any]) -> str:
    return _first_text(args).lower()


def capitalize(args: list[Any], payload: dict[str, Any]) -> str:
    value = _first_text(args)
    if not value:
        return ""
    words = re.split(r"\s+", value)
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def trim(args: list[Any], payload: dict[str, Any]) -> str:
    return _first_text(args).strip()


def substring(args: list[Any], payload: dict[str, Any]) -> str:
    if len(args) < 2 or args[0] is None:
        return ""
    value = str(args[0])
    start = _as_int(args[1], 0)
    if start >= len(value):
        return ""
    if len(args) > 2:
        end = min(_as_int(args[2], len(value)), len(value))
        return value[start:end]
    return value[start:]


def replace(args: list[Any], payload: dict[str, Any]) -> str:
    if not args or args[0] is None:
        return ""
    value = str(args[0])
    if len(args) < 3:
        return value
    old = "" if args[1] is None else str(args[1])
    new = "" if args[2] is None else str(args[2])
    if not old:
        return value
    return value.replace(old, new)


def mask(args: list[Any], payload: dict[str, Any]) -> str:
    """``mask(value, pattern='***', visible=4)`` keeps the last ``visible`` chars."""

    value = _first_text(args)
    if not value:
        return ""
    pattern = str(args[1]) if len(args) > 1 and args[1] is not None else "***"
    visible = _as_int(args[2], 4) if len(args) > 2 else 4
    if len(value) <= visible:
        return value
    return pattern + value[len(value) - visible :]


def mask_email(args: list[Any], payload: dict[str, Any]) -> str:
    value = _first_text(args)
    if "@" not in value:
        return value
    local, _, domain = value.partition("@")
    if len(local) <= 1:
        return value
    return f"{local[0]}***@{domain}"


def mask_phone(args: list[Any], payload: dict[str, Any]) -> str:
    value = _first_text(args)
    digits = re.sub(r"\D", "", value)
    if len(digits) < 4:
        return value
    return f"XXX-XXX-{digits[-4:]}"


def format_date(args: list[Any], payload: dict[str, Any]) -> str:
    """``formatDate(value, outputPattern, inputPattern?)``."""

    if len(args) < 2 or args[0] is None:
        return ""
    raw = str(args[0])
    try:
        if len(args) > 2 and args[2] is not None:
            parsed = parse_date(raw, str(args[2]))
        else:
            parsed = parse_any(raw)
        if parsed is None:
            return raw
        return _format_date(parsed, str(args[1]))
    except (ValueError, KeyError):
        return raw


def parse_date_iso(args: list[Any], payload: dict[str, Any]) -> str:
    """``parseDate(value, inputPattern?)`` -> ``yyyy-MM-dd``."""

    if not args or args[0] is None:
        return ""
    raw = str(args[0])
    try:
        if len(args) > 1 and args[1] is not None:
            parsed = parse_date(raw, str(args[1]))
        else:
            parsed = parse_any(raw, ("yyyy-MM-dd", "MM/dd/yyyy", "dd/MM/yyyy", "MMM dd, yyyy"))
    except (ValueError, KeyError):
        return raw
    return raw if parsed is None else parsed.strftime("%Y-%m-%d")


def format_number(args: list[Any], payload: dict[str, Any]) -> str:
    if not args or args[0] is None:
        return ""
    decimals = _as_int(args[1], 2) if len(args) > 1 else 2
    number = _as_decimal(args[0])
    if number is None:
        return str(args[0])
    return _grouped(number, max(decimals, 0))


def format_currency(args: list[Any], payload: dict[str, Any]) -> str:
    if not args or args[0] is None:
        return "$0.00"
    number = _as_decimal(args[0])
    if number is None:
        return str(args[0])
    text = _grouped(abs(number), 2)
    return f"-${text}" if number < 0 and text.strip("0.,") else f"${text}"


def coalesce(args: list[Any], payload: dict[str, Any]) -> str:
    for arg in args:
        if arg is not None and str(arg).strip():
            return str(arg)
    return ""


def default(args: list[Any], payload: dict[str, Any]) -> str:
    if len(args) < 2:
        return ""
    value = "" if args[0] is None else str(args[0])
    fallback = "" if args[1] is None else str(args[1])
    return fallback if not value.strip() else value


def if_empty(args: list[Any], payload: dict[str, Any]) -> str:
    if len(args) < 2:
        return ""
    value = "" if args[0] is None else str(args[0]).strip()
    replacement = "" if args[1] is None else str(args[1])
    return replacement if not value else value


def _first_text(args: list[Any]) -> str:
    if not args or args[0] is None:
        return ""
    return str(args[0])


def _as_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return fallback


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def _grouped(number: Decimal, decimals: int) -> str:
    quantum = Decimal(1).scaleb(-decimals)
    rounded = number.quantize(quantum, rounding=ROUND_HALF_EVEN)
    return f"{rounded:,.{decimals}f}"
