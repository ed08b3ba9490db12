from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        errors: dict[str, list[str]] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.errors = errors


class NotFoundError(ApiError):
    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(status_code=404, code=code, message=message)


class ValidationFailure(ApiError):
    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        errors: dict[str, list[str]] | None = None,
    ):
        super().__init__(status_code=422, code=code, message=message, errors=errors)


class PersistenceFailure(ValidationFailure):
    """Constraint violation reported by the database, with driver detail kept aside."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message, code="PERSISTENCE_ERROR")
        self.detail = detail


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    errors: dict[str, Any] | None = None,
) -> JSONResponse:
    payload = {
        "success": False,
        "message": message,
        "code": code,
        "errors": errors,
        "request_id": get_request_id(request),
    }
    return JSONResponse(status_code=status_code, content=payload)
