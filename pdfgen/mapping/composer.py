"""Fetch candidate fragments and deep-merge them into one mapping tree."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import yaml  # type: ignore[import-untyped]

from pdfgen.config.client import ConfigStoreClient
from pdfgen.utils.errors import MappingInvalidError
from pdfgen.utils.values import deep_merge, normalize_pdf_root, unflatten

logger = logging.getLogger(__name__)

_FILE_PREFIX = "file:"
_APP_PREFIX = "app:"
_FILE_EXTENSIONS = (".yml", ".yaml", ".json")


class MappingComposer:
    """Compose a mapping tree from ordered candidates (later wins)."""

    def __init__(self, client: ConfigStoreClient, *, profile: str | None = None) -> None:
        self._client = client
        self._profile = profile

    def compose(self, candidates: Sequence[str], label: str) -> dict[str, Any]:
        fetched: dict[str, dict[str, Any] | None] = {}
        composed: dict[str, Any] = {}
        for candidate in candidates:
            if candidate is None or not candidate.strip():
                continue
            key, scope, name = classify_candidate(candidate.strip())
            if key not in fetched:
                fetched[key] = self._fetch(scope, name, label)
            fragment = fetched[key]
            if fragment is None:
                continue
            composed = deep_merge(composed, normalize_fragment(fragment))
        return composed

    def _fetch(self, scope: str, name: str, label: str) -> dict[str, Any] | None:
        try:
            if scope == "file":
                fragment = self._client.file_source(self._profile, label, name)
            else:
                fragment = self._client.application_source(name, self._profile, label)
        except Exception as exc:  # noqa: BLE001
            logger.warning("config fragment %s:%s unavailable: %s", scope, name, exc)
            return None
        if fragment is None:
            logger.info("config fragment %s:%s absent", scope, name)
        return fragment


def classify_candidate(candidate: str) -> tuple[str, str, str]:
    """Return ``(cache_key, scope, name)`` for one candidate string."""

    if candidate.startswith(_FILE_PREFIX):
        path = candidate[len(_FILE_PREFIX) :].strip()
        if not path.lower().endswith(_FILE_EXTENSIONS):
            path = f"{path}.yml"
        return f"file:{path}", "file", path
    if candidate.startswith(_APP_PREFIX):
        name = candidate[len(_APP_PREFIX) :].strip()
        return f"app:{name}", "app", name
    if (
        candidate.startswith("mappings/")
        or candidate.lower().endswith(_FILE_EXTENSIONS)
        or "/" in candidate
    ):
        path = candidate
        if not path.lower().endswith(_FILE_EXTENSIONS):
            path = f"{path}.yml"
        return f"file:{path}", "file", path
    return f"app:{candidate}", "app", candidate


def normalize_fragment(fragment: dict[str, Any]) -> dict[str, Any]:
    """Unflatten dotted keys and move a root ``pdf`` block under ``mapping``."""

    return normalize_pdf_root(unflatten(fragment))


def apply_inline_override(composed: dict[str, Any], override_yaml: str | None) -> dict[str, Any]:
    """Merge raw YAML override text on top of a composed tree."""

    if override_yaml is None or not override_yaml.strip():
        return composed
    try:
        parsed = yaml.safe_load(override_yaml)
    except yaml.YAMLError as exc:
        raise MappingInvalidError(f"Invalid mapping override YAML: {exc}") from exc
    if parsed is None:
        return composed
    if not isinstance(parsed, dict):
        raise MappingInvalidError("Mapping override must be a YAML mapping")
    return deep_merge(composed, normalize_fragment(parsed))
