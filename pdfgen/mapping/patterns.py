"""Expand index-templated field patterns into explicit field mappings."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from pdfgen.mapping.models import FieldPattern
from pdfgen.mapping.paths import STATIC_PREFIX

logger = logging.getLogger(__name__)

_INDEX_TOKEN = "{n}"


def expand_patterns(patterns: Iterable[FieldPattern]) -> dict[str, str]:
    """Expand patterns into ``{field name: path}``.

    ``{n}`` becomes the 1-based display index in ``fieldPattern`` and the
    0-based array index in ``source``.
    """

    expanded: dict[str, str] = {}
    for pattern in patterns:
        if pattern.field_pattern is None or pattern.source is None or pattern.fields is None:
            logger.warning("skipping incomplete field pattern: %s", pattern.model_dump())
            continue
        for index in range(pattern.max_index + 1):
            prefix = pattern.field_pattern.replace(_INDEX_TOKEN, str(index + 1)).replace("*", "")
            source = pattern.source.replace(_INDEX_TOKEN, str(index))
            for suffix, sub_path in pattern.fields.items():
                if sub_path.startswith(STATIC_PREFIX):
                    expanded[prefix + suffix] = sub_path
                else:
                    expanded[prefix + suffix] = f"{source}.{sub_path}"
    return expanded


def effective_field_map(
    patterns: Iterable[FieldPattern], explicit: Mapping[str, str] | None
) -> dict[str, str]:
    """Pattern-generated entries overlaid by explicit entries."""

    field_map = expand_patterns(patterns)
    if explicit:
        field_map.update(explicit)
    return field_map
