"""Starlette middleware: request ids, structured access logs, CORS and gzip."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from padu_api.core.config import settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = ("/health", "/api/v1/ping", "/docs", "/openapi.json", "/redoc")
DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8000",
]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Propagate the caller's X-Request-ID or mint a UUID4."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _status_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Emit one ``http_request`` and one ``http_response`` JSON line per call.

    Chunk submissions carry the body size so oversized uploads can be traced
    without logging row contents.
    """

    def __init__(self, app, exclude_paths: tuple[str, ...] | list[str] | None = None):
        super().__init__(app)
        self.exclude_paths = tuple(exclude_paths or QUIET_PATHS)

    def _emit(self, level: int, entry: dict) -> None:
        logger.log(level, json.dumps(entry, default=str), extra={"request_id": entry["request_id"]})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(self.exclude_paths):
            return await call_next(request)

        base = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
        }
        entry = {
            "type": "http_request",
            **base,
            "query_params": dict(request.query_params),
            "client_host": request.client.host if request.client else None,
        }
        content_length = request.headers.get("content-length", "")
        if request.method in ("POST", "PUT", "PATCH") and content_length.isdigit():
            entry["request_body_size"] = int(content_length)
        self._emit(logging.INFO, entry)

        started = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            logger.error(
                f"Request processing error: {type(exc).__name__}: {exc}",
                extra=base,
                exc_info=True,
            )
            raise
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            self._emit(
                _status_level(status_code),
                {
                    "type": "http_response",
                    **base,
                    "status_code": status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )

        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"
        return response


def setup_cors(app: FastAPI) -> None:
    if settings.cors_origins:
        origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    else:
        origins = [] if settings.app_env == "production" else DEV_ORIGINS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "X-Process-Time"],
    )


def setup_gzip(app: FastAPI) -> None:
    app.add_middleware(GZipMiddleware, minimum_size=500, compresslevel=6)
