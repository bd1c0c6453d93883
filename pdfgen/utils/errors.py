"""Typed errors raised by the generation pipeline."""

from __future__ import annotations

from typing import Any


class PdfGenError(Exception):
    """Base class for fatal generation errors."""

    error_kind = "GENERATION_FAILED"

    def __init__(self, message: str, *, detail: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class MappingInvalidError(PdfGenError):
    """Raised when a composed mapping document fails typing."""

    error_kind = "MAPPING_INVALID"


class TemplateNotFoundError(PdfGenError):
    """Raised when a referenced template cannot be located by any loader."""

    error_kind = "TEMPLATE_NOT_FOUND"


class TemplateRenderError(PdfGenError):
    """Raised when template rendering or HTML conversion fails."""

    error_kind = "TEMPLATE_RENDER_FAILURE"


class UnknownEnricherError(PdfGenError):
    error_kind = "UNKNOWN_ENRICHER"


class UnknownSectionTypeError(PdfGenError):
    error_kind = "UNKNOWN_SECTION_TYPE"


class UnknownGeneratorError(PdfGenError):
    error_kind = "UNKNOWN_GENERATOR"


class UnknownFunctionError(PdfGenError):
    error_kind = "UNKNOWN_FUNCTION"


class PreprocessingRulesError(PdfGenError):
    """Raised when a preprocessing rule program cannot be loaded."""

    error_kind = "PREPROCESSING_RULES_INVALID"


class RendererUnavailableError(PdfGenError):
    """Raised when an optional output converter is not configured."""

    error_kind = "RENDERER_UNAVAILABLE"
