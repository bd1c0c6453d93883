"""Generation pipeline: compose mapping, transform payload, render, assemble."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from pdfgen.assemble.assembler import DocumentAssembler
from pdfgen.assemble.merge_configs import MergeConfigLoader
from pdfgen.config.cache import CacheRegistry
from pdfgen.config.client import ConfigStoreClient
from pdfgen.config.documents import ConfigDocumentLoader
from pdfgen.config.settings import Settings
from pdfgen.enrich.registry import EnricherRegistry
from pdfgen.excel.pdf import ExcelToPdf, grid_excel_to_pdf
from pdfgen.excel.service import ExcelService
from pdfgen.functions.registry import FunctionRegistry
from pdfgen.functions.resolver import FunctionExpressionResolver
from pdfgen.mapping.composer import MappingComposer
from pdfgen.mapping.enrollment import (
    EnrollmentSubmission,
    needs_preprocessing,
    rules_for_payload,
    select_config_by_convention,
    select_config_by_rules,
)
from pdfgen.mapping.models import GenerateRequest, MappingDocument, TemplateRef
from pdfgen.mapping.paths import STATIC_PREFIX, resolve
from pdfgen.mapping.service import (
    ComposedMapping,
    MappingService,
    extract_field_map,
    strip_path_prefix,
)
from pdfgen.preprocess.preprocessor import merge_under, preprocess
from pdfgen.preprocess.rules import RulesLoader, parse_rules
from pdfgen.render.acroform import AcroformTemplateStore
from pdfgen.render.generators import GeneratorRegistry, field_listing
from pdfgen.render.html import (
    HtmlTemplateService,
    HtmlToPdf,
    LayeredTemplateLoader,
    build_environment,
    render_html_to_pdf,
    substitute_simple,
)
from pdfgen.render.sections import SectionRenderer

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class GeneratedDocument:
    content: bytes
    media_type: str
    filename: str


class GenerationService:
    """Explicitly wired collaborators for every generation entry point."""

    def __init__(
        self,
        *,
        settings: Settings,
        caches: CacheRegistry,
        client: ConfigStoreClient,
        mapping: MappingService,
        functions: FunctionExpressionResolver,
        html: HtmlTemplateService,
        assembler: DocumentAssembler,
        merge_configs: MergeConfigLoader,
        rules: RulesLoader,
        excel: ExcelService,
    ) -> None:
        self.settings = settings
        self.caches = caches
        self.client = client
        self.mapping = mapping
        self.functions = functions
        self.html = html
        self.assembler = assembler
        self.merge_configs = merge_configs
        self.rules = rules
        self.excel = excel

    def compose(self, request: GenerateRequest) -> ComposedMapping:
        return self.mapping.compose(request)

    def generate(self, request: GenerateRequest) -> GeneratedDocument:
        """Produce the document for ``request``.

        A ``pdfMerge`` plan wins over a single ``template``; with neither, the
        resolved fields are listed as plain text.
        """

        composed = self.mapping.compose(request)
        document = composed.document
        payload = self.prepare_payload(document, request.payload, request.label)
        filename = f"{request.template_name}.pdf"

        if document.pdf_merge is not None:
            assembled = self.assembler.assemble(document.pdf_merge, payload)
            logger.info(
                "assembled %s: %d page(s) from sections %s",
                request.template_name,
                assembled.page_count,
                assembled.section_order,
            )
            return GeneratedDocument(assembled.content, PDF_MEDIA_TYPE, filename)

        values = self.resolve_fields(extract_field_map(document), payload)
        if document.template is not None:
            content = self._render_single_template(document.template, values, payload)
        else:
            content = field_listing(values, title=request.template_name)
        return GeneratedDocument(content, PDF_MEDIA_TYPE, filename)

    def merge(
        self,
        config_name: str,
        payload: dict[str, Any],
        *,
        label: str | None = None,
        output_file_name: str | None = None,
    ) -> GeneratedDocument:
        effective_label = label or self.settings.config_label
        plan = self.merge_configs.load(config_name, effective_label)
        assembled = self.assembler.assemble(plan, payload)
        filename = output_file_name or f"{Path(config_name).stem}.pdf"
        return GeneratedDocument(assembled.content, PDF_MEDIA_TYPE, filename)

    def generate_excel(
        self,
        config_name: str,
        payload: dict[str, Any],
        *,
        label: str | None = None,
        as_pdf: bool = False,
        output_file_name: str | None = None,
    ) -> GeneratedDocument:
        effective_label = label or self.settings.config_label
        stem = Path(config_name).stem
        if as_pdf:
            content = self.excel.generate_pdf(config_name, payload, label=effective_label)
            return GeneratedDocument(content, PDF_MEDIA_TYPE, output_file_name or f"{stem}.pdf")
        content = self.excel.generate(config_name, payload, label=effective_label)
        return GeneratedDocument(content, XLSX_MEDIA_TYPE, output_file_name or f"{stem}.xlsx")

    def generate_enrollment(
        self,
        enrollment: EnrollmentSubmission,
        payload: dict[str, Any],
        *,
        use_rules: bool = False,
        label: str | None = None,
        output_file_name: str | None = None,
    ) -> GeneratedDocument:
        """Select a merge configuration from the enrollment and assemble it."""

        if use_rules:
            config_name = select_config_by_rules(enrollment)
        else:
            config_name = select_config_by_convention(enrollment)
        logger.info("selected config %s (%s)", config_name, enrollment.summary())
        prepared = self.prepare_enrollment_payload(payload, label=label)
        return self.merge(
            config_name,
            prepared,
            label=label,
            output_file_name=output_file_name or "enrollment.pdf",
        )

    def prepare_enrollment_payload(
        self, payload: dict[str, Any], *, label: str | None = None
    ) -> dict[str, Any]:
        """Flatten applicant/member arrays when present; simple payloads pass through."""

        if not needs_preprocessing(payload):
            return payload
        rules_name = rules_for_payload(payload, self.settings.default_preprocessing_rules)
        program = self.rules.load(rules_name, label or self.settings.config_label)
        flattened = preprocess(payload, program)
        logger.info(
            "preprocessed payload with %s: primary=%s spouse=%s dependents=%s",
            rules_name,
            "primary" in flattened,
            flattened.get("hasSpouse", False),
            flattened.get("dependentCount", 0),
        )
        return merge_under(payload, flattened)

    def preview_flattened(
        self,
        payload: dict[str, Any],
        *,
        rules: str | None = None,
        label: str | None = None,
    ) -> dict[str, Any]:
        """Only the keys a rule program produces for ``payload``."""

        rules_name = rules or rules_for_payload(payload, self.settings.default_preprocessing_rules)
        program = self.rules.load(rules_name, label or self.settings.config_label)
        return preprocess(payload, program)

    def prepare_payload(
        self, document: MappingDocument, payload: dict[str, Any], label: str
    ) -> dict[str, Any]:
        """Run the document's preprocessing rules, keeping original keys on top."""

        if document.preprocessing is None:
            return payload
        if isinstance(document.preprocessing, dict):
            program = parse_rules(document.preprocessing, source="inline preprocessing")
        else:
            program = self.rules.load(document.preprocessing, label)
        return merge_under(payload, preprocess(payload, program))

    def resolve_fields(self, field_map: dict[str, str], payload: dict[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for name, expression in field_map.items():
            if self.functions.is_expression(expression):
                values[name] = self.functions.resolve(expression, payload)
            elif expression.startswith(STATIC_PREFIX):
                values[name] = expression[len(STATIC_PREFIX) :]
            else:
                value = resolve(payload, strip_path_prefix(expression))
                values[name] = "" if value is None else value
        return values

    def _render_single_template(
        self, template: TemplateRef, values: dict[str, Any], payload: dict[str, Any]
    ) -> bytes:
        if template.type == "html":
            markup = substitute_simple(self.html.load_source(template.url), values)
        else:
            model = dict(values)
            model["payload"] = payload
            markup = self.html.render_template(template.url, model)
        return self.html.html_to_pdf(markup)

    def close(self) -> None:
        self.client.close()


def build_service(
    settings: Settings,
    *,
    transport: httpx.BaseTransport | None = None,
    html_renderer: HtmlToPdf = render_html_to_pdf,
    excel_converter: ExcelToPdf | None = grid_excel_to_pdf,
    caches: CacheRegistry | None = None,
) -> GenerationService:
    """Wire the generation service from settings."""

    caches = caches or CacheRegistry(
        max_entries=settings.cache_max_entries, ttl_seconds=settings.cache_ttl_seconds
    )
    client = ConfigStoreClient.from_settings(settings, caches, transport=transport)
    repo = settings.config_repo_path
    profile = settings.config_profile

    functions = FunctionExpressionResolver(FunctionRegistry.with_builtins())
    loader = LayeredTemplateLoader(
        resource_roots=[repo / "templates"],
        search_roots=[repo, Path("templates"), Path(".")],
        refresh_seconds=settings.template_refresh_seconds,
    )
    html = HtmlTemplateService(build_environment(loader), renderer=html_renderer)
    sections = SectionRenderer(
        html=html,
        acroforms=AcroformTemplateStore(
            caches.get("acroformTemplates"), [repo / "acroforms", Path("acroforms")]
        ),
        functions=functions,
        generators=GeneratorRegistry(),
    )
    documents = ConfigDocumentLoader(repo, client=client, profile=profile)
    rules = RulesLoader(
        cache=caches.get("pdfConfigs"), repo_path=repo, client=client, profile=profile
    )
    return GenerationService(
        settings=settings,
        caches=caches,
        client=client,
        mapping=MappingService(
            MappingComposer(client, profile=profile),
            candidate_order=settings.candidate_order,
            default_label=settings.config_label,
        ),
        functions=functions,
        html=html,
        assembler=DocumentAssembler(sections, EnricherRegistry()),
        merge_configs=MergeConfigLoader(documents, cache=caches.get("pdfConfigs")),
        rules=rules,
        excel=ExcelService(
            documents,
            rules,
            cache=caches.get("pdfConfigs"),
            template_roots=[repo / "excel-templates", Path("excel-templates")],
            converter=excel_converter,
        ),
    )
