"""Resolve ``#{name(args)}`` function expressions against a payload."""

from __future__ import annotations

import re
from typing import Any

from pdfgen.functions.registry import FunctionRegistry
from pdfgen.mapping.paths import resolve

_EXPRESSION_RE = re.compile(r"#\{\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\((.*)\)\s*\}")
_EMBEDDED_RE = re.compile(r"#\{\s*[a-zA-Z_][a-zA-Z0-9_]*\s*\(")
_NUMBER_RE = re.compile(r"-?\d+(\.\d+)?")


class FunctionExpressionResolver:
    def __init__(self, registry: FunctionRegistry) -> None:
        self._registry = registry

    @staticmethod
    def is_expression(text: str | None) -> bool:
        if text is None:
            return False
        return _EXPRESSION_RE.fullmatch(text.strip()) is not None

    def resolve(self, expression: str, payload: dict[str, Any]) -> str:
        """Evaluate one whole-string expression.

        Raises:
            UnknownFunctionError: when the function name is not registered.
        """

        match = _EXPRESSION_RE.fullmatch(expression.strip())
        if match is None:
            return expression
        name, raw_args = match.group(1), match.group(2)
        args = [self._resolve_argument(arg, payload) for arg in split_arguments(raw_args)]
        return self._registry.apply(name, args, payload)

    def resolve_all(self, text: str, payload: dict[str, Any]) -> str:
        """Replace every embedded expression in ``text`` with its value."""

        out: list[str] = []
        position = 0
        while True:
            match = _EMBEDDED_RE.search(text, position)
            if match is None:
                out.append(text[position:])
                return "".join(out)
            end = _expression_end(text, match.start())
            if end < 0:
                out.append(text[position:])
                return "".join(out)
            out.append(text[position : match.start()])
            out.append(self.resolve(text[match.start() : end], payload))
            position = end

    def _resolve_argument(self, arg: str, payload: dict[str, Any]) -> Any:
        text = arg.strip()
        if not text:
            return ""
        if self.is_expression(text):
            return self.resolve(text, payload)
        if len(text) >= 2 and text[0] == text[-1] and text[0] in {"'", '"'}:
            return text[1:-1]
        if _NUMBER_RE.fullmatch(text):
            return float(text) if "." in text else int(text)
        if text.lower() in {"true", "false"}:
            return text.lower() == "true"
        value = resolve(payload, text)
        return "" if value is None else value


def split_arguments(raw: str) -> list[str]:
    """Split on top-level commas, honouring quotes and nested parentheses."""

    if not raw.strip():
        return []
    args: list[str] = []
    current: list[str] = []
    depth = 0
    quote: str | None = None
    for char in raw:
        if quote is not None:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char in {"'", '"'}:
            quote = char
        elif char in "({":
            depth += 1
        elif char in ")}":
            depth -= 1
        elif char == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    args.append("".join(current).strip())
    return args


def _expression_end(text: str, start: int) -> int:
    depth = 0
    quote: str | None = None
    for position in range(start + 2, len(text)):
        char = text[position]
        if quote is not None:
            if char == quote:
                quote = None
            continue
        if char in {"'", '"'}:
            quote = char
        elif char in "({":
            depth += 1
        elif char in ")}":
            if depth == 0 and char == "}":
                return position + 1
            depth -= 1
    return -1
