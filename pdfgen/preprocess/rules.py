"""Preprocessing rule program models and loading."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pdfgen.config.cache import TtlCache
from pdfgen.config.client import ConfigStoreClient
from pdfgen.utils.errors import PreprocessingRulesError

logger = logging.getLogger(__name__)


class _RuleModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Condition(_RuleModel):
    field: str
    operator: str = "equals"
    value: Any = None


class ArrayFilter(_RuleModel):
    source_path: str = Field(alias="sourcePath")
    target_key: str = Field(alias="targetKey")
    mode: Literal["first", "all", "indexed"] = "first"
    max_items: int | None = Field(default=None, alias="maxItems")
    filter_field: str | None = Field(default=None, alias="filterField")
    filter_value: Any = Field(default=None, alias="filterValue")
    conditions: list[Condition] = Field(default_factory=list)
    condition_logic: Literal["AND", "OR"] = Field(default="AND", alias="conditionLogic")


class SimpleExtractor(_RuleModel):
    source_path: str = Field(alias="sourcePath")
    target_key: str = Field(alias="targetKey")


class CalculatedField(_RuleModel):
    type: Literal["exists", "count", "subtract"]
    target_key: str = Field(alias="targetKey")
    check_key: str | None = Field(default=None, alias="checkKey")
    source_key: str | None = Field(default=None, alias="sourceKey")
    minuend: str | int | float | None = None
    subtrahend: str | int | float | None = None


class PreprocessingRules(_RuleModel):
    array_filters: list[ArrayFilter] = Field(default_factory=list, alias="arrayFilters")
    simple_extractors: list[SimpleExtractor] = Field(
        default_factory=list, alias="simpleExtractors"
    )
    calculated_fields: list[CalculatedField] = Field(
        default_factory=list, alias="calculatedFields"
    )


def parse_rules(raw: Any, *, source: str) -> PreprocessingRules:
    if raw is None:
        return PreprocessingRules()
    if not isinstance(raw, dict):
        raise PreprocessingRulesError(f"Preprocessing rules must be a mapping: {source}")
    try:
        return PreprocessingRules.model_validate(raw)
    except ValidationError as exc:
        raise PreprocessingRulesError(
            f"Invalid preprocessing rules: {source}",
            detail={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def load_rules_file(path: Path) -> PreprocessingRules:
    """Load a rule program from a local YAML file."""

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise PreprocessingRulesError(f"Preprocessing rules not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise PreprocessingRulesError(f"Invalid YAML in preprocessing rules: {path}") from exc
    return parse_rules(raw, source=str(path))


class RulesLoader:
    """Locate rule programs in the local config tree, then the config store."""

    def __init__(
        self,
        *,
        cache: TtlCache[PreprocessingRules],
        repo_path: Path,
        client: ConfigStoreClient | None = None,
        profile: str | None = None,
    ) -> None:
        self._cache = cache
        self._repo_path = repo_path
        self._client = client
        self._profile = profile

    def load(self, rules_path: str, label: str) -> PreprocessingRules:
        rules = self._cache.get_or_load(
            f"rules:{label}:{rules_path}", lambda: self._load_uncached(rules_path, label)
        )
        if rules is None:
            raise PreprocessingRulesError(f"Preprocessing rules not found: {rules_path}")
        return rules

    def _load_uncached(self, rules_path: str, label: str) -> PreprocessingRules | None:
        for candidate in (self._repo_path / rules_path, Path(rules_path)):
            if candidate.is_file():
                return load_rules_file(candidate)
        if self._client is None:
            return None
        source = self._client.file_source(self._profile, label, rules_path)
        if source is None:
            return None
        return parse_rules(source, source=rules_path)
