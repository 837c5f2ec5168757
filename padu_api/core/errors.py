"""Error handling and exception management.

Every failure leaving the API is rendered as
``{"error": {"code", "message", "request_id", "details"}}``. Import-specific
failures (unknown integration, oversized chunk, finished job) are raised as
``APIError`` subclasses by the service layer; database and unexpected errors
fall through to generic 500 handlers.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import DatabaseError, IntegrityError

from padu_api.core.metrics import emit_error

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors.

    Attributes:
        status_code: HTTP status code
        error_code: Application-specific error code
        message: Human-readable error message
        details: Optional additional error details
    """

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationAPIError(APIError):
    """Rejected import request (bad mapping, wrong file type, row count mismatch)."""

    def __init__(
        self,
        message: str = "Validation error",
        errors: list[dict[str, Any]] | None = None,
    ):
        super().__init__(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            "validation_error",
            message,
            {"errors": errors or []},
        )


class NotFoundError(APIError):
    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found: {identifier}" if identifier else f"{resource} not found"
        super().__init__(
            status.HTTP_404_NOT_FOUND,
            "not_found",
            message,
            {"resource": resource, "identifier": identifier},
        )


class ConflictError(APIError):
    """The job is in a state that does not allow the request."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(status.HTTP_409_CONFLICT, "conflict", message, details)


class PayloadTooLargeError(APIError):
    """Uploaded file or chunk exceeds a configured ceiling."""

    def __init__(self, message: str, limit: int):
        super().__init__(
            status.HTTP_413_CONTENT_TOO_LARGE,
            "payload_too_large",
            message,
            {"limit": limit},
        )


def _debug(request: Request) -> bool:
    return getattr(request.app.state, "debug", False)


def _envelope(
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "request_id": getattr(request.state, "request_id", None),
    }
    if details is not None:
        body["details"] = details
    return {"error": body}


def _record(request: Request, level: int, code: str, status_code: int, message: str, **extra) -> None:
    logger.log(
        level,
        message,
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "path": request.url.path,
            "method": request.method,
            "error_code": code,
            **extra,
        },
        exc_info=level >= logging.ERROR,
    )
    emit_error(
        error_code=code,
        status_code=status_code,
        path=request.url.path,
        method=request.method,
    )


def _validation_errors(exc: RequestValidationError | ValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
            "type": err.get("type", "validation_error"),
        }
        for err in exc.errors()
    ]


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    _record(
        request,
        logging.WARNING,
        exc.error_code,
        exc.status_code,
        f"API error: {exc.error_code} - {exc.message}",
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope(request, exc.error_code, exc.message, exc.details),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    # Client errors, not bugs
    _record(
        request,
        logging.INFO,
        "validation_error",
        status.HTTP_422_UNPROCESSABLE_CONTENT,
        f"Request validation failed: {len(exc.errors())} error(s)",
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        content=_envelope(
            request,
            "validation_error",
            "Validation failed",
            {"errors": _validation_errors(exc)},
        ),
    )


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    _record(
        request,
        logging.ERROR,
        "database_error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        f"Database error: {exc}",
        exception_type=type(exc).__name__,
    )
    message = (
        "Database integrity constraint violated"
        if isinstance(exc, IntegrityError)
        else "A database error occurred"
    )
    details = {"type": type(exc).__name__, "message": str(exc)} if _debug(request) else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(request, "database_error", message, details),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    _record(
        request,
        logging.ERROR,
        "internal_error",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exception_type=type(exc).__name__,
    )
    details = None
    # Never expose internals outside debug
    if _debug(request):
        details = {
            "type": type(exc).__name__,
            "message": str(exc),
            "traceback": traceback.format_exc().splitlines(),
        }
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(request, "internal_error", "An internal error occurred", details),
    )


def setup_error_handlers(app: FastAPI, debug: bool = False) -> None:
    """Register the exception handlers on ``app``.

    ``debug`` adds exception type and message to 500 responses.
    """
    app.state.debug = debug

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
