"""Path expression resolution against nested payload values.

Grammar::

    path      := segment ("." segment)*
    segment   := name subscript* | subscript+ | "static:" literal
    subscript := "[" (index | name "=" value) "]"

Resolution never raises: type mismatches, missing keys and unmatched
predicates all resolve to ``None``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

STATIC_PREFIX = "static:"


@dataclass(frozen=True)
class Subscript:
    index: int | None = None
    field: str | None = None
    expected: str | None = None

    @property
    def is_predicate(self) -> bool:
        return self.field is not None


@dataclass(frozen=True)
class Segment:
    name: str
    subscripts: tuple[Subscript, ...] = ()


def resolve(root: Any, path: str | None) -> Any:
    """Resolve ``path`` against ``root``; returns ``None`` when unresolved."""

    if path is None:
        return None
    expression = path.strip()
    if not expression:
        return None
    if expression.startswith(STATIC_PREFIX):
        return expression[len(STATIC_PREFIX) :]

    segments = parse_path(expression)
    if segments is None:
        return None

    current = root
    for segment in segments:
        if current is None:
            return None
        if segment.name:
            current = _step_name(current, segment.name)
        if segment.subscripts:
            current = _apply_subscripts(current, segment.subscripts)
    return current


def parse_path(path: str) -> list[Segment] | None:
    """Parse a dotted path into segments; ``None`` for malformed brackets."""

    segments: list[Segment] = []
    for raw in split_segments(path):
        segment = _parse_segment(raw)
        if segment is None:
            return None
        segments.append(segment)
    return segments


def split_segments(path: str) -> list[str]:
    """Split on dots that are not inside ``[...]``."""

    parts: list[str] = []
    depth = 0
    start = 0
    for position, char in enumerate(path):
        if char == "[":
            depth += 1
        elif char == "]":
            depth = max(0, depth - 1)
        elif char == "." and depth == 0:
            parts.append(path[start:position])
            start = position + 1
    parts.append(path[start:])
    return [part.strip() for part in parts if part.strip()]


def _parse_segment(raw: str) -> Segment | None:
    bracket = raw.find("[")
    if bracket < 0:
        return Segment(name=raw)

    name = raw[:bracket].strip()
    subscripts: list[Subscript] = []
    rest = raw[bracket:]
    while rest:
        if not rest.startswith("["):
            return None
        close = rest.find("]")
        if close < 0:
            return None
        subscripts.append(_parse_subscript(rest[1:close].strip()))
        rest = rest[close + 1 :].strip()
    return Segment(name=name, subscripts=tuple(subscripts))


def _parse_subscript(body: str) -> Subscript:
    if _is_index(body):
        return Subscript(index=int(body))
    if "=" in body:
        field, _, expected = body.partition("=")
        return Subscript(field=field.strip(), expected=_unquote(expected.strip()))
    return Subscript(field=body, expected=None)


def _is_index(text: str) -> bool:
    # str.isdigit also accepts superscripts and other Unicode digits int() rejects
    return text.isascii() and text.isdigit()


def _step_name(current: Any, name: str) -> Any:
    if isinstance(current, dict):
        return current.get(name)
    if isinstance(current, list) and _is_index(name):
        index = int(name)
        return current[index] if index < len(current) else None
    return None


def _apply_subscripts(current: Any, subscripts: tuple[Subscript, ...]) -> Any:
    for subscript in subscripts:
        if not isinstance(current, list):
            return None
        if subscript.is_predicate:
            current = [item for item in current if _matches(item, subscript)]
            if not current:
                return None
        else:
            index = subscript.index if subscript.index is not None else 0
            if index >= len(current):
                return None
            current = current[index]

    if subscripts[-1].is_predicate and isinstance(current, list):
        return current[0]
    return current


def _matches(item: Any, subscript: Subscript) -> bool:
    if not isinstance(item, dict) or subscript.field is None:
        return False
    actual = item.get(subscript.field)
    if subscript.expected is None:
        return actual is not None
    return values_equal(actual, subscript.expected)


def values_equal(actual: Any, expected: str) -> bool:
    """Compare a payload value with a literal: string equality, then numeric."""

    actual_text = stringify(actual)
    if actual_text == expected:
        return True
    left = _as_number(actual)
    right = _as_number(expected)
    return left is not None and right is not None and left == right


def stringify(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        parsed = float(str(value).strip())
    except ValueError:
        return None
    return None if math.isnan(parsed) else parsed


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {"'", '"'}:
        return text[1:-1]
    return text
