"""FastAPI wrapper for the pdfgen generation pipeline."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pdfgen.config.settings import load_settings
from pdfgen.mapping.enrollment import (
    EnrollmentSubmission,
    build_dynamic_composition,
    select_config_by_convention,
    select_config_by_rules,
)
from pdfgen.mapping.models import GenerateRequest
from pdfgen.orchestrator.pipeline import GeneratedDocument, GenerationService, build_service
from pdfgen.utils.errors import PdfGenError

app = FastAPI(title="pdfgen API", version="0.1.0")
logger = logging.getLogger("pdfgen.api")

REQUEST_ID_HEADER = "X-Pdfgen-Request-Id"

_STATUS_BY_ERROR_KIND = {
    "MAPPING_INVALID": 400,
    "PREPROCESSING_RULES_INVALID": 400,
    "UNKNOWN_ENRICHER": 400,
    "UNKNOWN_SECTION_TYPE": 400,
    "UNKNOWN_GENERATOR": 400,
    "UNKNOWN_FUNCTION": 400,
    "TEMPLATE_NOT_FOUND": 404,
    "TEMPLATE_RENDER_FAILURE": 500,
    "RENDERER_UNAVAILABLE": 503,
}

T = TypeVar("T")


class MergeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    config_name: str = Field(alias="configName", min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    label: str | None = None
    output_file_name: str | None = Field(default=None, alias="outputFileName")


class ExcelRequest(MergeRequest):
    as_pdf: bool = Field(default=False, alias="asPdf")


class EnrollmentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    enrollment: EnrollmentSubmission
    payload: dict[str, Any] = Field(default_factory=dict)
    label: str | None = None
    output_file_name: str | None = Field(default=None, alias="outputFileName")


class FlattenPreviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    payload: dict[str, Any] = Field(default_factory=dict)
    rules: str | None = None
    label: str | None = None


@dataclass
class _ConcurrencyLimiter:
    max_concurrency: int
    queue_timeout_seconds: float
    semaphore: threading.BoundedSemaphore


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


_service_lock = threading.Lock()
_service_cache: GenerationService | None = None
_limiter_lock = threading.Lock()
_limiter_cache: _ConcurrencyLimiter | None = None


def get_service() -> GenerationService:
    global _service_cache

    with _service_lock:
        if _service_cache is None:
            _service_cache = build_service(load_settings())
        return _service_cache


def set_service(service: GenerationService | None) -> None:
    """Replace the process-wide service; ``None`` rebuilds it from settings on demand."""

    global _service_cache

    with _service_lock:
        _service_cache = service


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        logger.exception("unhandled error for %s", request.url.path)
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.post("/generate", response_model=None)
async def generate(request: Request) -> Response:
    """Compose the mapping for a request and return the generated PDF."""

    return await _run_guarded(
        request, "generate", GenerateRequest, lambda service, parsed: service.generate(parsed)
    )


@app.post("/api/pdf/merge", response_model=None)
async def merge_pdf(request: Request) -> Response:
    """Assemble a named merge configuration."""

    return await _run_guarded(
        request,
        "merge",
        MergeRequest,
        lambda service, parsed: service.merge(
            parsed.config_name,
            parsed.payload,
            label=parsed.label,
            output_file_name=parsed.output_file_name,
        ),
    )


@app.post("/api/excel/generate", response_model=None)
async def generate_excel(request: Request) -> Response:
    return await _run_guarded(
        request,
        "excel",
        ExcelRequest,
        lambda service, parsed: service.generate_excel(
            parsed.config_name,
            parsed.payload,
            label=parsed.label,
            as_pdf=parsed.as_pdf,
            output_file_name=parsed.output_file_name,
        ),
    )


@app.post("/api/mapping/preview", response_model=None)
async def preview_mapping(request: Request) -> JSONResponse:
    """Return candidates and the composed mapping tree without rendering."""

    request_id = _request_id_from_request(request)
    try:
        parsed = _parse(GenerateRequest, await _json_body(request))
        composed = await asyncio.to_thread(get_service().compose, parsed)
    except ApiRequestError as exc:
        return _api_error(exc, request_id, failure_stage="preview")
    except PdfGenError as exc:
        return _api_error(_from_generation_error(exc), request_id, failure_stage="preview")
    return JSONResponse(
        headers={REQUEST_ID_HEADER: request_id},
        content={"candidates": composed.candidates, "mapping": composed.tree},
    )


@app.post("/api/enrollment/generate", response_model=None)
async def generate_enrollment(request: Request) -> Response:
    """Assemble the configuration named by enrollment convention."""

    return await _run_guarded(
        request,
        "enrollment",
        EnrollmentRequest,
        lambda service, parsed: service.generate_enrollment(
            parsed.enrollment,
            parsed.payload,
            label=parsed.label,
            output_file_name=parsed.output_file_name,
        ),
    )


@app.post("/api/enrollment/generate-with-rules", response_model=None)
async def generate_enrollment_with_rules(request: Request) -> Response:
    return await _run_guarded(
        request,
        "enrollment",
        EnrollmentRequest,
        lambda service, parsed: service.generate_enrollment(
            parsed.enrollment,
            parsed.payload,
            use_rules=True,
            label=parsed.label,
            output_file_name=parsed.output_file_name,
        ),
    )


@app.post("/api/enrollment/preview-config", response_model=None)
async def preview_enrollment_config(request: Request) -> JSONResponse:
    """Show every selection strategy's result without rendering."""

    request_id = _request_id_from_request(request)
    try:
        enrollment = _parse(EnrollmentSubmission, await _json_body(request))
    except ApiRequestError as exc:
        return _api_error(exc, request_id, failure_stage="preview_config")
    return JSONResponse(
        headers={REQUEST_ID_HEADER: request_id},
        content={
            "conventionBasedConfig": select_config_by_convention(enrollment),
            "ruleBasedConfig": select_config_by_rules(enrollment),
            "dynamicComposition": build_dynamic_composition(enrollment),
            "enrollmentSummary": enrollment.summary(),
        },
    )


@app.post("/api/enrollment/preview-flattened", response_model=None)
async def preview_flattened(request: Request) -> JSONResponse:
    """Return the keys the preprocessing rules derive from a payload."""

    request_id = _request_id_from_request(request)
    try:
        parsed = _parse(FlattenPreviewRequest, await _json_body(request))
        flattened = await asyncio.to_thread(
            get_service().preview_flattened,
            parsed.payload,
            rules=parsed.rules,
            label=parsed.label,
        )
    except ApiRequestError as exc:
        return _api_error(exc, request_id, failure_stage="preview_flattened")
    except PdfGenError as exc:
        return _api_error(
            _from_generation_error(exc), request_id, failure_stage="preview_flattened"
        )
    return JSONResponse(
        headers={REQUEST_ID_HEADER: request_id},
        content=jsonable_encoder(flattened),
    )


@app.get("/api/cache/stats")
async def cache_stats() -> dict[str, dict[str, Any]]:
    return get_service().caches.stats()


@app.get("/api/cache/health")
async def cache_health() -> dict[str, Any]:
    return get_service().caches.health()


@app.delete("/api/cache", response_model=None)
async def clear_all_caches(request: Request) -> JSONResponse:
    request_id = _request_id_from_request(request)
    get_service().caches.clear_all()
    _log_event(logging.INFO, "cache_cleared", request_id, cache="*")
    return JSONResponse(
        headers={REQUEST_ID_HEADER: request_id},
        content={"cleared": get_service().caches.names()},
    )


@app.delete("/api/cache/{name}", response_model=None)
async def clear_cache(name: str, request: Request) -> JSONResponse:
    request_id = _request_id_from_request(request)
    try:
        get_service().caches.clear(name)
    except ValueError as exc:
        return _error_response(
            status_code=404,
            error_code="CACHE_NOT_FOUND",
            message=str(exc),
            request_id=request_id,
            detail={"cache": name},
        )
    _log_event(logging.INFO, "cache_cleared", request_id, cache=name)
    return JSONResponse(headers={REQUEST_ID_HEADER: request_id}, content={"cleared": [name]})


async def _run_guarded(
    request: Request,
    operation: str,
    model: type[T],
    run: Callable[[GenerationService, T], GeneratedDocument],
) -> Response:
    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "validate_inputs"
    slot_acquired = False
    limiter = _get_concurrency_limiter()
    queue_wait_ms = 0

    try:
        parsed = _parse(model, await _json_body(request))

        failure_stage = "acquire_slot"
        slot_acquired, queue_wait_ms = await _try_acquire_concurrency_slot(limiter)
        if not slot_acquired:
            raise ApiRequestError(
                status_code=429,
                error_code="TOO_MANY_REQUESTS",
                message="server busy",
                detail={
                    "max_concurrency": limiter.max_concurrency,
                    "queue_timeout_seconds": limiter.queue_timeout_seconds,
                },
            )

        _log_event(
            logging.INFO,
            "start",
            request_id,
            operation=operation,
            queue_wait_ms=queue_wait_ms,
            document=_document_name(parsed),
        )

        failure_stage = operation
        service = get_service()
        document = await asyncio.to_thread(run, service, parsed)
    except ApiRequestError as exc:
        return _api_error(exc, request_id, failure_stage=failure_stage)
    except PdfGenError as exc:
        return _api_error(_from_generation_error(exc), request_id, failure_stage=failure_stage)
    finally:
        if slot_acquired:
            limiter.semaphore.release()

    _log_event(
        logging.INFO,
        "done",
        request_id,
        operation=operation,
        filename=document.filename,
        size_bytes=len(document.content),
        total_ms=_elapsed_ms(request_started),
    )
    return Response(
        content=document.content,
        media_type=document.media_type,
        headers={
            REQUEST_ID_HEADER: request_id,
            "Content-Disposition": f'attachment; filename="{document.filename}"',
        },
    )


async def _json_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    try:
        body = json.loads(raw or b"{}")
    except json.JSONDecodeError as exc:
        raise ApiRequestError(
            status_code=422,
            error_code="INVALID_REQUEST_BODY",
            message="request body must be valid JSON",
        ) from exc
    if not isinstance(body, dict):
        raise ApiRequestError(
            status_code=422,
            error_code="INVALID_REQUEST_BODY",
            message="request body must be a JSON object",
        )
    return body


def _parse(model: type[T], body: dict[str, Any]) -> T:
    try:
        return model.model_validate(body)  # type: ignore[attr-defined]
    except ValidationError as exc:
        raise ApiRequestError(
            status_code=422,
            error_code="INVALID_REQUEST_BODY",
            message="request body failed validation",
            detail={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def _from_generation_error(exc: PdfGenError) -> ApiRequestError:
    return ApiRequestError(
        status_code=_STATUS_BY_ERROR_KIND.get(exc.error_kind, 500),
        error_code=exc.error_kind,
        message=exc.message,
        detail=exc.detail,
    )


def _api_error(exc: ApiRequestError, request_id: str, *, failure_stage: str) -> JSONResponse:
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code=exc.error_code,
        status_code=exc.status_code,
        failure_stage=failure_stage,
    )
    return _error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        request_id=request_id,
        detail=exc.detail,
    )


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    generated = uuid.uuid4().hex
    request.state.request_id = generated
    return generated


def _get_concurrency_limiter() -> _ConcurrencyLimiter:
    global _limiter_cache

    settings = load_settings()
    max_concurrency = settings.max_concurrency
    queue_timeout = settings.queue_timeout_seconds

    with _limiter_lock:
        if (
            _limiter_cache is None
            or _limiter_cache.max_concurrency != max_concurrency
            or _limiter_cache.queue_timeout_seconds != queue_timeout
        ):
            _limiter_cache = _ConcurrencyLimiter(
                max_concurrency=max_concurrency,
                queue_timeout_seconds=queue_timeout,
                semaphore=threading.BoundedSemaphore(value=max_concurrency),
            )
        return _limiter_cache


async def _try_acquire_concurrency_slot(limiter: _ConcurrencyLimiter) -> tuple[bool, int]:
    waited_started = time.perf_counter()
    timeout_seconds = limiter.queue_timeout_seconds

    if timeout_seconds == 0:
        acquired_now = limiter.semaphore.acquire(blocking=False)
        return acquired_now, _elapsed_ms(waited_started)

    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if limiter.semaphore.acquire(blocking=False):
            return True, _elapsed_ms(waited_started)
        await asyncio.sleep(0.01)

    return False, _elapsed_ms(waited_started)


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(
        payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str
    )


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={REQUEST_ID_HEADER: request_id},
        content={
            "error": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))


def _document_name(parsed: Any) -> str | None:
    return getattr(parsed, "template_name", None) or getattr(parsed, "config_name", None)
