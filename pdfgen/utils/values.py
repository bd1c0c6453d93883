"""Helpers for the nested payload/config value tree.

A value is a scalar (str, int, float, bool, None), a list of values, or a
dict with string keys. Dict insertion order is meaningful and preserved.
"""

from __future__ import annotations

import copy
from typing import Any

_MERGE_BY_NAME_KEYS = frozenset({"sections"})


def unflatten(tree: dict[str, Any]) -> dict[str, Any]:
    """Expand dotted keys into nested dicts (``a.b: 1`` -> ``{a: {b: 1}}``)."""

    result: dict[str, Any] = {}
    for raw_key, raw_value in tree.items():
        key = str(raw_key)
        value = unflatten(raw_value) if isinstance(raw_value, dict) else raw_value
        parts = [part for part in key.split(".") if part] if "." in key else [key]
        if not parts:
            continue

        cursor = result
        for part in parts[:-1]:
            child = cursor.get(part)
            if not isinstance(child, dict):
                child = {}
                cursor[part] = child
            cursor = child

        leaf = parts[-1]
        existing = cursor.get(leaf)
        if isinstance(existing, dict) and isinstance(value, dict):
            cursor[leaf] = deep_merge(existing, value)
        else:
            cursor[leaf] = value
    return result


def has_dotted_keys(tree: dict[str, Any]) -> bool:
    return any("." in str(key) for key in tree)


def normalize_pdf_root(tree: dict[str, Any]) -> dict[str, Any]:
    """Move a top-level ``pdf`` block under ``mapping.pdf``.

    When the fragment also carries ``mapping``, the two are deep-merged and
    keys authored under ``mapping`` win.
    """

    if "pdf" not in tree:
        return tree
    normalized = dict(tree)
    pdf_block = normalized.pop("pdf")
    mapping = normalized.get("mapping")
    if isinstance(mapping, dict):
        normalized["mapping"] = deep_merge({"pdf": pdf_block}, mapping)
    elif mapping is None:
        normalized["mapping"] = {"pdf": pdf_block}
    else:
        normalized["pdf"] = pdf_block
    return normalized


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge ``overlay`` onto ``base`` and return a new dict.

    Dicts merge recursively, scalars and lists from ``overlay`` win. Lists
    stored under a ``sections`` key merge element-wise by ``name``.
    """

    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        elif key in _MERGE_BY_NAME_KEYS and isinstance(current, list) and isinstance(value, list):
            merged[key] = merge_named_list(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def merge_named_list(base: list[Any], overlay: list[Any]) -> list[Any]:
    """Merge list elements by their ``name`` key; unknown names are appended."""

    merged = copy.deepcopy(base)
    positions = {
        item["name"]: index
        for index, item in enumerate(merged)
        if isinstance(item, dict) and item.get("name") is not None
    }
    for item in overlay:
        name = item.get("name") if isinstance(item, dict) else None
        if name is not None and name in positions:
            index = positions[name]
            merged[index] = deep_merge(merged[index], item)
            continue
        merged.append(copy.deepcopy(item))
        if name is not None:
            positions[name] = len(merged) - 1
    return merged


def is_truthy(value: Any) -> bool:
    """Condition truthiness: booleans as-is, anything else when non-null."""

    if isinstance(value, bool):
        return value
    return value is not None
