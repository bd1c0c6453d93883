"""Date parsing/formatting with ``MM/dd/yyyy``-style patterns."""

from __future__ import annotations

import re
from datetime import date, datetime

_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_TOKEN_RE = re.compile(r"'[^']*'|y+|M+|d+|H+|h+|m+|s+|E+|a")

COMMON_INPUT_PATTERNS = (
    "yyyy-MM-dd",
    "MM/dd/yyyy",
    "dd/MM/yyyy",
    "yyyy-MM-dd'T'HH:mm:ss",
    "MMM dd, yyyy",
)


def format_date(value: date | datetime, pattern: str) -> str:
    """Format ``value`` with a pattern such as ``MMMM d, yyyy``."""

    moment = value if isinstance(value, datetime) else datetime(value.year, value.month, value.day)
    out: list[str] = []
    position = 0
    for match in _TOKEN_RE.finditer(pattern):
        out.append(pattern[position : match.start()])
        out.append(_format_token(moment, match.group(0)))
        position = match.end()
    out.append(pattern[position:])
    return "".join(out)


def parse_date(text: str, pattern: str) -> datetime:
    """Parse ``text`` with a pattern; raises ``ValueError`` on mismatch."""

    return datetime.strptime(text.strip(), to_strptime(pattern))


def parse_any(text: str, patterns: tuple[str, ...] = COMMON_INPUT_PATTERNS) -> datetime | None:
    for pattern in patterns:
        try:
            return parse_date(text, pattern)
        except ValueError:
            continue
    return None


def parse_iso_date(text: str) -> date | None:
    try:
        return date.fromisoformat(text.strip())
    except ValueError:
        return None


def years_between(start: date, end: date) -> int:
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def to_strptime(pattern: str) -> str:
    out: list[str] = []
    position = 0
    for match in _TOKEN_RE.finditer(pattern):
        out.append(pattern[position : match.start()].replace("%", "%%"))
        out.append(_strptime_token(match.group(0)))
        position = match.end()
    out.append(pattern[position:].replace("%", "%%"))
    return "".join(out)


def _format_token(moment: datetime, token: str) -> str:
    if token.startswith("'"):
        return token[1:-1] or "'"
    letter, width = token[0], len(token)
    if letter == "y":
        return f"{moment.year % 100:02d}" if width == 2 else f"{moment.year:0{width}d}"
    if letter == "M":
        if width >= 4:
            return _MONTHS[moment.month - 1]
        if width == 3:
            return _MONTHS[moment.month - 1][:3]
        return f"{moment.month:0{width}d}"
    if letter == "d":
        return f"{moment.day:0{width}d}"
    if letter == "H":
        return f"{moment.hour:0{width}d}"
    if letter == "h":
        return f"{(moment.hour % 12) or 12:0{width}d}"
    if letter == "m":
        return f"{moment.minute:0{width}d}"
    if letter == "s":
        return f"{moment.second:0{width}d}"
    if letter == "E":
        name = _WEEKDAYS[moment.weekday()]
        return name if width >= 4 else name[:3]
    return "AM" if moment.hour < 12 else "PM"


def _strptime_token(token: str) -> str:
    if token.startswith("'"):
        return (token[1:-1] or "'").replace("%", "%%")
    letter, width = token[0], len(token)
    if letter == "y":
        return "%y" if width == 2 else "%Y"
    if letter == "M":
        if width >= 4:
            return "%B"
        return "%b" if width == 3 else "%m"
    return {
        "d": "%d",
        "H": "%H",
        "h": "%I",
        "m": "%M",
        "s": "%S",
        "E": "%A" if width >= 4 else "%a",
        "a": "%p",
    }[letter]
