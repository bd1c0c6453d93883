"""Request-level mapping composition: candidates, fragments, override, typing."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from pdfgen.mapping.candidates import build_candidates
from pdfgen.mapping.composer import MappingComposer, apply_inline_override
from pdfgen.mapping.models import GenerateRequest, MappingDocument
from pdfgen.utils.errors import MappingInvalidError

_PATH_PREFIXES = ("payload.", "$.")


@dataclass(frozen=True)
class ComposedMapping:
    candidates: list[str]
    tree: dict[str, Any]
    document: MappingDocument


class MappingService:
    def __init__(
        self,
        composer: MappingComposer,
        *,
        candidate_order: Sequence[str] = (),
        default_label: str = "main",
    ) -> None:
        self._composer = composer
        self._candidate_order = tuple(candidate_order)
        self._default_label = default_label

    def compose(self, request: GenerateRequest) -> ComposedMapping:
        """Compose and type the mapping document for ``request``."""

        label = request.label or self._default_label
        candidates = build_candidates(request, self._candidate_order or None)
        tree = self._composer.compose(candidates, label)
        tree = apply_inline_override(tree, request.mapping_override)
        return ComposedMapping(candidates=candidates, tree=tree, document=to_document(tree))


def to_document(tree: dict[str, Any]) -> MappingDocument:
    try:
        return MappingDocument.model_validate(tree)
    except ValidationError as exc:
        raise MappingInvalidError(
            "Composed mapping document is invalid",
            detail={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def extract_field_map(document: MappingDocument) -> dict[str, str]:
    """Return ``mapping.pdf.field`` with ``payload.`` / ``$.`` prefixes removed."""

    return {name: strip_path_prefix(path) for name, path in document.mapping.pdf.field.items()}


def strip_path_prefix(path: str) -> str:
    for prefix in _PATH_PREFIXES:
        if path.startswith(prefix):
            return path[len(prefix) :]
    return path
