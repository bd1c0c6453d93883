"""Named merge configurations (``pdfMerge`` plans)."""

from __future__ import annotations

from pydantic import ValidationError

from pdfgen.config.cache import TtlCache
from pdfgen.config.documents import ConfigDocumentLoader
from pdfgen.mapping.models import MergePlan
from pdfgen.utils.errors import MappingInvalidError, TemplateNotFoundError


class MergeConfigLoader:
    def __init__(self, documents: ConfigDocumentLoader, *, cache: TtlCache[MergePlan]) -> None:
        self._documents = documents
        self._cache = cache

    def load(self, name: str, label: str = "main") -> MergePlan:
        plan = self._cache.get_or_load(f"merge|{label}|{name}", lambda: self._build(name, label))
        if plan is None:
            raise TemplateNotFoundError(f"Merge configuration not found: {name}")
        return plan

    def _build(self, name: str, label: str) -> MergePlan | None:
        data = self._documents.load(name, label)
        if data is None:
            return None
        block = data.get("pdfMerge")
        if not isinstance(block, dict):
            raise MappingInvalidError(f"Merge configuration {name} has no pdfMerge block")
        try:
            return MergePlan.model_validate(block)
        except ValidationError as exc:
            raise MappingInvalidError(
                f"Invalid merge configuration: {name}",
                detail={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
