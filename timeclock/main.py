import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from timeclock.audit import client_ip
from timeclock.db import SessionLocal, engine
from timeclock.errors import ApiError, error_response
from timeclock.logging_utils import setup_json_logging
from timeclock.routers import absences, adjustments, auth, companies, time_records, users
from timeclock.services.api_logs import record_api_error
from timeclock.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from timeclock.settings import get_cors_origins, get_settings

settings = get_settings()
setup_json_logging(settings.log_level)
logger = logging.getLogger("timeclock.request")
startup_logger = logging.getLogger("timeclock.startup")

app = FastAPI(title=settings.app_name, version="0.1.0")
app.state.api_log_session_factory = SessionLocal
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id
    request.state.actor = getattr(request.state, "actor", "anonymous")
    request.state.actor_id = getattr(request.state, "actor_id", None)

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": latency_ms,
                "actor": getattr(request.state, "actor", "anonymous"),
                "actor_id": getattr(request.state, "actor_id", None),
                "time_record_id": getattr(request.state, "time_record_id", None),
            },
        )


def _persist_api_log(
    request: Request,
    *,
    level: str,
    exc: BaseException,
    message: str,
    body: Any = None,
) -> None:
    payload: dict[str, Any] = {}
    if request.query_params:
        payload["query"] = dict(request.query_params)
    if body is not None:
        payload["body"] = body

    db = request.app.state.api_log_session_factory()
    try:
        record_api_error(
            db,
            level=level,
            url=str(request.url),
            method=request.method,
            ip=client_ip(request),
            payload=payload or None,
            exc=exc,
            message=message,
        )
    except Exception:
        logger.exception("api_log_unavailable", extra={"path": request.url.path})
    finally:
        db.close()


def _validation_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        key = ".".join(location) or "request"
        errors.setdefault(key, []).append(str(item.get("msg", "Invalid value")))
    return errors


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    level = "error" if exc.status_code >= 500 else "warning"
    _persist_api_log(request, level=level, exc=exc, message=exc.message)
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        errors=exc.errors,
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    status_code = exc.status_code
    code_map = {
        401: "INVALID_TOKEN",
        403: "FORBIDDEN",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        429: "TOO_MANY_ATTEMPTS",
    }
    code = code_map.get(status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else "Request failed."
    _persist_api_log(request, level="warning", exc=exc, message=message)
    return error_response(
        request,
        status_code=status_code,
        code=code,
        message=message,
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _validation_errors(exc)
    body = exc.body if isinstance(exc.body, (dict, list)) else None
    _persist_api_log(request, level="warning", exc=exc, message="Request validation failed", body=body)
    return error_response(
        request,
        status_code=422,
        code="VALIDATION_ERROR",
        message="Request validation failed.",
        errors=errors,
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
        },
    )
    _persist_api_log(request, level="error", exc=exc, message=str(exc) or exc.__class__.__name__)
    message = f"Unexpected server error: {exc}" if settings.debug else "Unexpected server error."
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message=message,
    )


app.include_router(auth.router)
app.include_router(companies.router)
app.include_router(users.router)
app.include_router(time_records.router)
app.include_router(absences.router)
app.include_router(adjustments.router)


def _default_schema_guard_result() -> SchemaGuardResult:
    return SchemaGuardResult(
        ok=False,
        checked_at_utc=datetime.now(timezone.utc),
        issues=["SCHEMA_GUARD_NOT_RUN"],
        warnings=[],
    )


@app.on_event("startup")
async def run_schema_guard() -> None:
    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        startup_logger.info("schema_guard_ok", extra=result.to_dict())
        return

    startup_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        joined_issues = "; ".join(result.issues)
        raise RuntimeError(f"Runtime schema guard failed: {joined_issues}")


@app.get("/health")
def health() -> dict[str, Any]:
    schema_guard_result: SchemaGuardResult = getattr(app.state, "schema_guard_result", _default_schema_guard_result())
    return {
        "status": "ok",
        "app_name": settings.app_name,
        "schema_guard": schema_guard_result.to_dict(),
    }
