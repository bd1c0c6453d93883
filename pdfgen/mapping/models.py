"""Typed mapping document and merge plan models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PagePosition = Literal[
    "top-left", "top-center", "top-right", "bottom-left", "bottom-center", "bottom-right"
]


class _ConfigModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TemplateRef(_ConfigModel):
    """Single-template reference for non-merge requests."""

    url: str
    type: Literal["html", "freemarker", "ftl", "jinja"] = "freemarker"


class PdfFieldMapping(_ConfigModel):
    field: dict[str, str] = Field(default_factory=dict)


class MappingBlock(_ConfigModel):
    pdf: PdfFieldMapping = Field(default_factory=PdfFieldMapping)


class FieldPattern(_ConfigModel):
    """Index-templated field mapping, e.g. ``Dependent{n}_*``."""

    field_pattern: str | None = Field(default=None, alias="fieldPattern")
    source: str | None = None
    max_index: int = Field(default=0, alias="maxIndex")
    fields: dict[str, str] | None = None


class SectionDescriptor(_ConfigModel):
    name: str
    type: str
    template: str | None = None
    enabled: bool = True
    insert_after: str | None = Field(default=None, alias="insertAfter")
    field_mapping: dict[str, str] = Field(default_factory=dict, alias="fieldMapping")
    patterns: list[FieldPattern] = Field(default_factory=list)
    payload_enrichers: list[str] = Field(default_factory=list, alias="payloadEnrichers")


class ConditionalSection(_ConfigModel):
    condition: str
    sections: list[SectionDescriptor] = Field(default_factory=list)


class PageNumbering(_ConfigModel):
    start_page: int = Field(default=1, alias="startPage")
    format: str = "Page {current}"
    position: PagePosition = "bottom-center"
    font: str = "Helvetica"
    font_size: float = Field(default=10, alias="fontSize")


class BookmarkSpec(_ConfigModel):
    section: str
    title: str
    level: int = 1


class TextBlock(_ConfigModel):
    text: str = ""
    font: str = "Helvetica"
    font_size: float = Field(default=10, alias="fontSize")


class BandContent(_ConfigModel):
    left: TextBlock | None = None
    center: TextBlock | None = None
    right: TextBlock | None = None


class Border(_ConfigModel):
    enabled: bool = False
    color: str = "#000000"
    thickness: float = 1


class HeaderFooter(_ConfigModel):
    enabled: bool = False
    height: float = 40
    start_page: int = Field(default=1, alias="startPage")
    content: BandContent = Field(default_factory=BandContent)
    border: Border = Field(default_factory=Border)


class MergeSettings(_ConfigModel):
    page_numbering: str | None = Field(default=None, alias="pageNumbering")
    add_bookmarks: bool = Field(default=False, alias="addBookmarks")
    add_table_of_contents: bool = Field(default=False, alias="addTableOfContents")


class MergePlan(_ConfigModel):
    """Multi-section assembly plan (the ``pdfMerge`` block)."""

    settings: MergeSettings = Field(default_factory=MergeSettings)
    sections: list[SectionDescriptor] = Field(default_factory=list)
    conditional_sections: list[ConditionalSection] = Field(
        default_factory=list, alias="conditionalSections"
    )
    page_numbering: PageNumbering | None = Field(default=None, alias="pageNumbering")
    bookmarks: list[BookmarkSpec] = Field(default_factory=list)
    header: HeaderFooter | None = None
    footer: HeaderFooter | None = None
    add_bookmarks: bool = Field(default=False, alias="addBookmarks")

    @property
    def bookmarks_enabled(self) -> bool:
        return self.add_bookmarks or self.settings.add_bookmarks


class MappingDocument(_ConfigModel):
    """Composed configuration binding PDF fields and the assembly plan."""

    template: TemplateRef | None = None
    mapping: MappingBlock = Field(default_factory=MappingBlock)
    metadata: dict[str, Any] = Field(default_factory=dict)
    pdf_merge: MergePlan | None = Field(default=None, alias="pdfMerge")
    preprocessing: str | dict[str, Any] | None = None


class GenerateRequest(BaseModel):
    """Incoming generation request."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    template_name: str = Field(alias="templateName", min_length=1)
    client_service: str = Field(alias="clientService", min_length=1)
    label: str = "main"
    product_type: str | None = Field(default=None, alias="productType")
    market_category: str | None = Field(default=None, alias="marketCategory")
    state: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    mapping_override: str | None = Field(default=None, alias="mappingOverride")
