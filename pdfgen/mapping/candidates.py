"""Expand candidate-order patterns into a concrete fragment fetch order."""

from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Sequence
from typing import Any

from pdfgen.mapping.models import GenerateRequest

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")

DEFAULT_CANDIDATE_ORDER: tuple[str, ...] = (
    "mappings/base-application",
    "mappings/templates/{template}",
    "mappings/products/{product}",
    "mappings/markets/{market}",
    "mappings/states/{state}",
    "mappings/templates/{product}/{template}",
)


def build_candidates(
    request: GenerateRequest, patterns: Sequence[str] | None = None
) -> list[str]:
    """Return candidate names in fetch order.

    Without configured patterns the fixed fallback order is used.
    """

    order = list(patterns) if patterns else list(DEFAULT_CANDIDATE_ORDER)
    candidates: list[str] = []
    for pattern in order:
        candidates.extend(expand_pattern(pattern, request))
    return candidates


def expand_pattern(pattern: str, request: GenerateRequest) -> list[str]:
    """Expand one pattern into zero or more candidates (Cartesian product)."""

    placeholders = list(dict.fromkeys(_PLACEHOLDER_RE.findall(pattern)))
    if not placeholders:
        return _accept([pattern])

    value_lists: list[list[str]] = []
    for placeholder in placeholders:
        values = placeholder_values(placeholder, request)
        if values:
            value_lists.append(values)
        elif placeholder in _recognized_attributes(request):
            logger.debug("skipping candidate pattern %s: no value for {%s}", pattern, placeholder)
            return []
        else:
            logger.warning("unknown candidate placeholder {%s} kept literally", placeholder)
            value_lists.append(["{" + placeholder + "}"])

    expanded: list[str] = []
    for combination in itertools.product(*value_lists):
        text = pattern
        for placeholder, value in zip(placeholders, combination):
            text = text.replace("{" + placeholder + "}", value)
        expanded.append(text)
    return _accept(expanded)


def placeholder_values(placeholder: str, request: GenerateRequest) -> list[str]:
    """Collect values for a placeholder from payload lists, then the request."""

    payload = request.payload or {}
    for key in (f"{placeholder}s", f"{placeholder}List", placeholder):
        raw = payload.get(key)
        if isinstance(raw, list):
            values = _clean_values(raw)
            if values:
                return values

    single = _recognized_attributes(request).get(placeholder)
    if single is not None and single.strip():
        return [single.strip()]
    return []


def _recognized_attributes(request: GenerateRequest) -> dict[str, str | None]:
    return {
        "template": request.template_name,
        "product": request.product_type,
        "market": request.market_category,
        "state": request.state,
    }


def _clean_values(raw: list[Any]) -> list[str]:
    values: list[str] = []
    for item in raw:
        if item is None:
            continue
        text = str(item).strip()
        if not text or text.lower() == "null":
            continue
        values.append(text)
    return values


def _accept(candidates: list[str]) -> list[str]:
    accepted: list[str] = []
    for candidate in candidates:
        text = candidate.strip()
        if not text or "null" in text.lower():
            continue
        accepted.append(text)
    return accepted
