"""Apply preprocessing rule programs to flatten nested payload arrays."""

from __future__ import annotations

import logging
from typing import Any

from pdfgen.mapping.paths import resolve
from pdfgen.preprocess.rules import ArrayFilter, CalculatedField, Condition, PreprocessingRules

logger = logging.getLogger(__name__)


def preprocess(payload: dict[str, Any], rules: PreprocessingRules) -> dict[str, Any]:
    """Run array filters, then extractors, then calculated fields.

    Filters and extractors read ``payload`` only; calculated fields read the
    output accumulated so far.
    """

    result: dict[str, Any] = {}
    for array_filter in rules.array_filters:
        _apply_array_filter(payload, array_filter, result)
    for extractor in rules.simple_extractors:
        value = resolve(payload, extractor.source_path)
        if value is not None:
            result[extractor.target_key] = value
    for calculated in rules.calculated_fields:
        result[calculated.target_key] = _calculate(calculated, result)
    return result


def merge_under(payload: dict[str, Any], flattened: dict[str, Any]) -> dict[str, Any]:
    """Layer ``flattened`` below ``payload`` so original keys win."""

    merged = dict(flattened)
    merged.update(payload)
    return merged


def _apply_array_filter(
    payload: dict[str, Any], array_filter: ArrayFilter, result: dict[str, Any]
) -> None:
    source = resolve(payload, array_filter.source_path)
    if not isinstance(source, list):
        logger.debug("array filter source %s is not a list", array_filter.source_path)
        return

    matches = [item for item in source if isinstance(item, dict) and _accepts(item, array_filter)]
    key = array_filter.target_key
    if array_filter.mode == "first":
        if matches:
            result[key] = matches[0]
    elif array_filter.mode == "all":
        result[key] = matches
    else:
        limit = array_filter.max_items if array_filter.max_items is not None else len(matches)
        for position, item in enumerate(matches[:limit], start=1):
            result[f"{key}{position}"] = item
        if len(matches) > limit:
            result[f"{key}Overflow"] = matches[limit:]


def _accepts(item: dict[str, Any], array_filter: ArrayFilter) -> bool:
    if array_filter.conditions:
        outcomes = (matches_condition(item, condition) for condition in array_filter.conditions)
        if array_filter.condition_logic == "OR":
            return any(outcomes)
        return all(outcomes)
    if array_filter.filter_field is not None:
        return _loose_equals(item.get(array_filter.filter_field), array_filter.filter_value)
    return True


def matches_condition(item: dict[str, Any], condition: Condition) -> bool:
    """Evaluate one condition; a missing actual value never matches."""

    actual = item.get(condition.field)
    if actual is None:
        return False
    expected = condition.value
    operator = condition.operator.lower()

    if operator == "equals":
        return _loose_equals(actual, expected)
    if operator == "notequals":
        return not _loose_equals(actual, expected)
    if operator == "contains":
        return str(expected) in str(actual)
    if operator == "startswith":
        return str(actual).startswith(str(expected))
    if operator == "endswith":
        return str(actual).endswith(str(expected))
    if operator in {"greaterthan", "lessthan", "greaterthanorequal", "lessthanorequal"}:
        left, right = _as_float(actual), _as_float(expected)
        if left is None or right is None:
            return False
        return {
            "greaterthan": left > right,
            "lessthan": left < right,
            "greaterthanorequal": left >= right,
            "lessthanorequal": left <= right,
        }[operator]
    if operator in {"in", "notin"}:
        if not isinstance(expected, list):
            return False
        contained = any(_loose_equals(actual, option) for option in expected)
        return contained if operator == "in" else not contained
    logger.warning("unknown preprocessing operator: %s", condition.operator)
    return False


def _calculate(calculated: CalculatedField, result: dict[str, Any]) -> Any:
    if calculated.type == "exists":
        key = calculated.check_key or ""
        return result.get(key) is not None
    if calculated.type == "count":
        value = result.get(calculated.source_key or "")
        return len(value) if isinstance(value, list) else 0
    minuend = _operand(calculated.minuend, result)
    subtrahend = _operand(calculated.subtrahend, result)
    return max(0, int(minuend - subtrahend))


def _operand(config: str | int | float | None, result: dict[str, Any]) -> float:
    if config is None:
        return 0
    if isinstance(config, str):
        value = result.get(config)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return value
    return config


def _loose_equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(str(value))
    except ValueError:
        return None
