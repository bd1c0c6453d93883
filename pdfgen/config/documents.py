"""Load named YAML configuration documents with ``composition`` support."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from pdfgen.config.client import ConfigStoreClient
from pdfgen.utils.errors import MappingInvalidError, TemplateNotFoundError
from pdfgen.utils.values import deep_merge, unflatten

_EXTENSIONS = (".yml", ".yaml", ".json")
_MAX_COMPOSITION_DEPTH = 8


class ConfigDocumentLoader:
    """Read config documents from the local tree first, then the config store.

    A document may declare ``composition: {base, components}``; the base and
    each component are merged in order, then the document's own keys win.
    """

    def __init__(
        self,
        repo_path: Path,
        *,
        client: ConfigStoreClient | None = None,
        profile: str | None = None,
    ) -> None:
        self._repo_path = repo_path
        self._client = client
        self._profile = profile

    def load(self, name: str, label: str = "main") -> dict[str, Any] | None:
        return self._load_composed(name, label, depth=0)

    def _load_composed(self, name: str, label: str, *, depth: int) -> dict[str, Any] | None:
        if depth > _MAX_COMPOSITION_DEPTH:
            raise MappingInvalidError(f"Configuration composition too deep at {name}")
        data = self._load_raw(name, label)
        if data is None:
            return None
        composition = data.pop("composition", None)
        if not isinstance(composition, dict):
            return data

        composed: dict[str, Any] = {}
        parts = [composition.get("base"), *(composition.get("components") or [])]
        for part in parts:
            if not part:
                continue
            loaded = self._load_composed(str(part), label, depth=depth + 1)
            if loaded is None:
                raise TemplateNotFoundError(
                    f"Configuration component not found: {part}", detail={"config": name}
                )
            composed = deep_merge(composed, loaded)
        return deep_merge(composed, data)

    def _load_raw(self, name: str, label: str) -> dict[str, Any] | None:
        path = name if name.lower().endswith(_EXTENSIONS) else f"{name}.yml"
        local = self._repo_path / path
        if local.is_file():
            try:
                raw = yaml.safe_load(local.read_text(encoding="utf-8"))
            except yaml.YAMLError as exc:
                raise MappingInvalidError(f"Invalid YAML in configuration: {local}") from exc
            if not isinstance(raw, dict):
                raise MappingInvalidError(f"Configuration must be a mapping: {local}")
            return unflatten(raw)
        if self._client is None:
            return None
        source = self._client.file_source(self._profile, label, path)
        return unflatten(source) if source is not None else None
