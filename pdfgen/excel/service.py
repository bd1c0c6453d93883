"""Excel generation from named configurations."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pdfgen.config.cache import TtlCache
from pdfgen.config.documents import ConfigDocumentLoader
from pdfgen.excel.pdf import ExcelToPdf, convert_excel_to_pdf
from pdfgen.excel.workbook import TableMapping, fill_workbook
from pdfgen.preprocess.preprocessor import merge_under, preprocess
from pdfgen.preprocess.rules import RulesLoader
from pdfgen.utils.errors import MappingInvalidError, TemplateNotFoundError

logger = logging.getLogger(__name__)


class ExcelConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    template_path: str = Field(alias="templatePath")
    cell_mappings: dict[str, str] = Field(default_factory=dict, alias="cellMappings")
    table_mappings: list[TableMapping] = Field(default_factory=list, alias="tableMappings")
    preprocessing_rules: str | None = Field(default=None, alias="preprocessingRules")
    description: str | None = None
    version: str | None = None


class ExcelService:
    def __init__(
        self,
        documents: ConfigDocumentLoader,
        rules: RulesLoader,
        *,
        cache: TtlCache[ExcelConfig],
        template_roots: list[Path],
        converter: ExcelToPdf | None = None,
    ) -> None:
        self._documents = documents
        self._rules = rules
        self._cache = cache
        self._template_roots = template_roots
        self._converter = converter

    def load_config(self, name: str, label: str = "main") -> ExcelConfig:
        config = self._cache.get_or_load(
            f"excel|{label}|{name}", lambda: self._build_config(name, label)
        )
        if config is None:
            raise TemplateNotFoundError(f"Excel configuration not found: {name}")
        return config

    def generate(
        self, config_name: str, payload: dict[str, Any], *, label: str = "main"
    ) -> bytes:
        config = self.load_config(config_name, label)
        data = payload
        if config.preprocessing_rules:
            program = self._rules.load(config.preprocessing_rules, label)
            data = merge_under(payload, preprocess(payload, program))
        return fill_workbook(
            self._load_template(config.template_path),
            data,
            cell_mappings=config.cell_mappings,
            table_mappings=config.table_mappings,
        )

    def generate_pdf(
        self, config_name: str, payload: dict[str, Any], *, label: str = "main"
    ) -> bytes:
        workbook = self.generate(config_name, payload, label=label)
        return convert_excel_to_pdf(workbook, self._converter)

    def _build_config(self, name: str, label: str) -> ExcelConfig | None:
        data = self._documents.load(name, label)
        if data is None:
            return None
        try:
            return ExcelConfig.model_validate(data)
        except ValidationError as exc:
            raise MappingInvalidError(
                f"Invalid Excel configuration: {name}",
                detail={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

    def _load_template(self, template_path: str) -> bytes:
        for root in self._template_roots:
            candidate = root / template_path
            if candidate.is_file():
                return candidate.read_bytes()
        raise TemplateNotFoundError(f"Excel template not found: {template_path}")
