"""Registry of field transformation functions (case-insensitive names)."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pdfgen.functions import builtins
from pdfgen.utils.errors import UnknownFunctionError

FieldFunction = Callable[[list[Any], dict[str, Any]], str]

_BUILTIN_FUNCTIONS: dict[str, FieldFunction] = {
    "concat": builtins.concat,
    "uppercase": builtins.uppercase,
    "lowercase": builtins.lowercase,
    "capitalize": builtins.capitalize,
    "substring": builtins.substring,
    "replace": builtins.replace,
    "trim": builtins.trim,
    "mask": builtins.mask,
    "maskEmail": builtins.mask_email,
    "maskPhone": builtins.mask_phone,
    "formatDate": builtins.format_date,
    "parseDate": builtins.parse_date_iso,
    "formatNumber": builtins.format_number,
    "formatCurrency": builtins.format_currency,
    "coalesce": builtins.coalesce,
    "default": builtins.default,
    "ifEmpty": builtins.if_empty,
}


class FunctionRegistry:
    def __init__(self, functions: dict[str, FieldFunction] | None = None) -> None:
        self._functions: dict[str, FieldFunction] = {}
        self._display_names: dict[str, str] = {}
        for name, function in (functions or {}).items():
            self.register(name, function)

    @classmethod
    def with_builtins(cls) -> FunctionRegistry:
        return cls(_BUILTIN_FUNCTIONS)

    def register(self, name: str, function: FieldFunction) -> None:
        self._functions[name.lower()] = function
        self._display_names[name.lower()] = name

    def has(self, name: str) -> bool:
        return name.lower() in self._functions

    def get(self, name: str) -> FieldFunction:
        try:
            return self._functions[name.lower()]
        except KeyError as exc:
            raise UnknownFunctionError(f"Unknown function: {name}") from exc

    def apply(self, name: str, args: list[Any], payload: dict[str, Any]) -> str:
        return self.get(name)(args, payload)

    def names(self) -> list[str]:
        return sorted(self._display_names.values())
