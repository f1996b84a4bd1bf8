"""FastAPI wrapper for protocol extraction and plan rendering."""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Annotated, Any, cast
from urllib.parse import quote

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from rplan.config.models import PlanSettings
from rplan.config.settings_loader import load_settings
from rplan.extraction.engine import MERGE_MODES, run_extraction
from rplan.extraction.models import FIELD_NAMES, MergeMode, new_field_map
from rplan.render.aliases import CANONICAL_KEYS
from rplan.session.controller import PlanSession
from rplan.sources.adapter import SourceAdapterConfig, SourceTextAdapter
from rplan.templates.archive import load_template
from rplan.templates.token_scanner import parse_template_tokens
from rplan.utils.errors import MissingTokenError, SourceReadError, TemplateParseError

app = FastAPI(title="rplan API", version="0.1.0")
logger = logging.getLogger("rplan.api")

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
_DEFAULT_MAX_UPLOAD_BYTES = 25 * 1024 * 1024
_REQUEST_ID_HEADER = "X-Rplan-Request-Id"


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


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
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
    response.headers.setdefault(_REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/v1/meta")
async def meta_v1(request: Request) -> JSONResponse:
    """Field names, canonical template keys and merge modes for clients."""

    request_id = _request_id_from_request(request)
    settings = _settings()
    payload = {
        "fields": list(FIELD_NAMES),
        "canonical_keys": dict(CANONICAL_KEYS),
        "token_aliases": settings.token_aliases,
        "merge_modes": list(MERGE_MODES),
        "default_merge_mode": settings.merge_mode,
        "version": app.version,
    }
    return JSONResponse(status_code=200, headers={_REQUEST_ID_HEADER: request_id}, content=payload)


@app.post("/v1/extract", response_model=None)
async def extract_v1(
    request: Request,
    protocol: Annotated[UploadFile, File(...)],
    merge_mode: Annotated[str | None, Form()] = None,
) -> JSONResponse:
    """Extract protocol metadata into a fresh field map."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "validate_inputs"
        settings = _settings()
        mode = _resolve_merge_mode(merge_mode, settings)

        failure_stage = "upload"
        data = _read_upload_with_limit(protocol, _max_upload_bytes(), "protocol")

        failure_stage = "extract"
        adapter = SourceTextAdapter(SourceAdapterConfig(pdf_strict=settings.pdf_strict))
        try:
            text = await adapter.aextract_text(data, protocol.filename)
        except SourceReadError as exc:
            raise ApiRequestError(
                status_code=422,
                error_code="SOURCE_READ_ERROR",
                message="protocol document cannot be read",
                detail={"field": "protocol", "error": str(exc)},
            ) from exc

        field_map = new_field_map(settings.default_version)
        changed = run_extraction(field_map, text, mode)
        _log_event(
            logging.INFO,
            "done",
            request_id,
            endpoint="extract",
            changed=changed,
            total_ms=_elapsed_ms(request_started),
        )
        return JSONResponse(
            status_code=200,
            headers={_REQUEST_ID_HEADER: request_id},
            content={"fields": field_map, "changed": changed},
        )
    except ApiRequestError as exc:
        return _request_error(exc, request_id, failure_stage)
    except Exception as exc:  # noqa: BLE001
        return _internal_error(exc, request_id, failure_stage, request_started)


@app.post("/v1/tokens", response_model=None)
async def tokens_v1(
    request: Request,
    template: Annotated[UploadFile, File(...)],
) -> JSONResponse:
    """Scan an uploaded template and list its tokens."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "upload"
        _validate_upload_name(template.filename, expected_suffix=".docx", field_name="template")
        data = _read_upload_with_limit(template, _max_upload_bytes(), "template")

        failure_stage = "scan"
        try:
            scan = parse_template_tokens(load_template(data))
        except TemplateParseError as exc:
            raise _template_request_error(exc) from exc

        return JSONResponse(
            status_code=200,
            headers={_REQUEST_ID_HEADER: request_id},
            content={
                "tokens": scan.tokens,
                "issues": [issue.explain() for issue in scan.issues],
            },
        )
    except ApiRequestError as exc:
        return _request_error(exc, request_id, failure_stage)
    except Exception as exc:  # noqa: BLE001
        return _internal_error(exc, request_id, failure_stage, request_started)


@app.post("/v1/render", response_model=None)
async def render_v1(
    request: Request,
    template: Annotated[UploadFile | None, File()] = None,
    protocol: Annotated[UploadFile | None, File()] = None,
    fields: Annotated[str | None, Form()] = None,
    merge_mode: Annotated[str | None, Form()] = None,
    black_text: Annotated[bool, Form()] = False,
) -> Response:
    """Run one extract -> edit -> render session and return the DOCX."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "init"

    try:
        failure_stage = "validate_inputs"
        settings = _settings()
        mode = _resolve_merge_mode(merge_mode, settings)
        overrides = _parse_fields_json(fields)
        max_bytes = _max_upload_bytes()

        session = PlanSession(settings=settings)
        _log_event(
            logging.INFO,
            "start",
            request_id,
            endpoint="render",
            template_provided=template is not None,
            protocol_provided=protocol is not None,
            override_keys=sorted(overrides),
            merge_mode=mode,
        )

        if protocol is not None:
            failure_stage = "extract"
            data = _read_upload_with_limit(protocol, max_bytes, "protocol")
            await session.load_protocol(data, protocol.filename, mode)

        session.update_fields(overrides)

        if template is not None:
            failure_stage = "load_template"
            _validate_upload_name(
                template.filename, expected_suffix=".docx", field_name="template"
            )
            data = _read_upload_with_limit(template, max_bytes, "template")
            try:
                await session.load_template(data)
            except TemplateParseError as exc:
                raise _template_request_error(exc) from exc

        failure_stage = "render"
        try:
            plan = await session.generate(black_text=black_text)
        except MissingTokenError as exc:
            raise ApiRequestError(
                status_code=422,
                error_code="MISSING_TOKENS",
                message="template tokens have no value",
                detail={"missing": exc.missing, "fields": session.field_map},
            ) from exc
        except TemplateParseError as exc:
            raise _template_request_error(exc) from exc

        _log_event(
            logging.INFO,
            "done",
            request_id,
            endpoint="render",
            filename=plan.filename,
            replaced_count=plan.report.summary.replaced_count,
            total_ms=_elapsed_ms(request_started),
        )
        headers = {
            _REQUEST_ID_HEADER: request_id,
            "X-Rplan-Replaced-Count": str(plan.report.summary.replaced_count),
            "Content-Disposition": _content_disposition(plan.filename),
        }
        return Response(content=plan.content, media_type=DOCX_MEDIA_TYPE, headers=headers)
    except ApiRequestError as exc:
        return _request_error(exc, request_id, failure_stage)
    except Exception as exc:  # noqa: BLE001
        return _internal_error(exc, request_id, failure_stage, request_started)


def _settings() -> PlanSettings:
    raw = os.getenv("RPLAN_SETTINGS_PATH")
    path = Path(raw) if raw else None
    try:
        return load_settings(path)
    except ValueError as exc:
        raise ApiRequestError(
            status_code=500,
            error_code="INVALID_SETTINGS",
            message="server settings are invalid",
            detail={"error": str(exc)},
        ) from exc


def _resolve_merge_mode(value: str | None, settings: PlanSettings) -> MergeMode:
    if value is None:
        return settings.merge_mode
    normalized = value.strip().lower()
    if normalized not in MERGE_MODES:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="invalid merge_mode",
            detail={"field": "merge_mode", "allowed": list(MERGE_MODES)},
        )
    return cast(MergeMode, normalized)


def _parse_fields_json(raw: str | None) -> dict[str, str]:
    if raw is None or not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="fields must be valid JSON",
            detail={"field": "fields", "error": str(exc)},
        ) from exc
    if not isinstance(payload, dict):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="fields must be a JSON object",
            detail={"field": "fields"},
        )
    return {str(key): "" if value is None else str(value) for key, value in payload.items()}


def _template_request_error(exc: TemplateParseError) -> ApiRequestError:
    return ApiRequestError(
        status_code=400,
        error_code="TEMPLATE_PARSE_ERROR",
        message=str(exc),
        detail={"field": "template", "part": exc.part, "errors": exc.explanations()},
    )


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    generated = uuid.uuid4().hex
    request.state.request_id = generated
    return generated


def _validate_upload_name(filename: str | None, *, expected_suffix: str, field_name: str) -> None:
    if filename and filename.lower().endswith(expected_suffix):
        return
    raise ApiRequestError(
        status_code=400,
        error_code="INVALID_ARGUMENT",
        message=f"{field_name} must be a {expected_suffix} file",
        detail={"field": field_name},
    )


def _read_upload_with_limit(upload: UploadFile, max_bytes: int, field_name: str) -> bytes:
    chunks: list[bytes] = []
    total_size = 0

    source = upload.file
    source.seek(0)
    while True:
        chunk = source.read(1024 * 1024)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise ApiRequestError(
                status_code=413,
                error_code="PAYLOAD_TOO_LARGE",
                message=f"{field_name} exceeds upload size limit",
                detail={
                    "field": field_name,
                    "max_bytes": max_bytes,
                    "received_bytes": total_size,
                },
            )
        chunks.append(chunk)

    source.close()
    return b"".join(chunks)


def _max_upload_bytes() -> int:
    raw = os.getenv("RPLAN_MAX_UPLOAD_BYTES")
    if raw is None:
        return _DEFAULT_MAX_UPLOAD_BYTES
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_UPLOAD_BYTES
    return parsed if parsed > 0 else _DEFAULT_MAX_UPLOAD_BYTES


def _content_disposition(filename: str) -> str:
    ascii_name = filename.encode("ascii", "replace").decode("ascii").replace("?", "_")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


def _request_error(exc: ApiRequestError, request_id: str, failure_stage: str) -> JSONResponse:
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


def _internal_error(
    exc: Exception, request_id: str, failure_stage: str, request_started: float
) -> JSONResponse:
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code="INTERNAL_ERROR",
        status_code=500,
        failure_stage=failure_stage,
    )
    return _error_response(
        status_code=500,
        error_code="INTERNAL_ERROR",
        message="internal server error",
        request_id=request_id,
        detail={"error": str(exc), "total_ms": _elapsed_ms(request_started)},
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
        headers={_REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))
