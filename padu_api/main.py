"""Main FastAPI application with middleware and logging setup."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from padu_api.core.config import settings
from padu_api.core.errors import setup_error_handlers
from padu_api.core.log_config import setup_logging
from padu_api.core.otel_setup import setup_opentelemetry
from padu_api.core.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    setup_cors,
    setup_gzip,
)
from padu_api.imports.routes import router as imports_router

# API prefix constant
API_PREFIX = "/api/v1"


# Setup logging before creating app
setup_logging()

# Setup OpenTelemetry (must be done before app creation)
setup_opentelemetry()

app = FastAPI(
    title=f"{settings.app_name} Ingestion API",
    version="0.1.0",
)

# Setup error handlers (must be done before routes are added)
setup_error_handlers(app, debug=(settings.app_env != "production"))

# Add middleware (last added = first executed)

# 1. Request Logging (after request ID is set)
if settings.enable_request_logging:
    app.add_middleware(RequestLoggingMiddleware)

# 2. Request ID
app.add_middleware(RequestIDMiddleware)

# 3. CORS
setup_cors(app)

# 4. GZip Compression
if settings.enable_gzip:
    setup_gzip(app)

# Include routers
app.include_router(imports_router, prefix=API_PREFIX)


@app.get("/health")
async def health() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(
        {
            "status": "ok",
            "env": settings.app_env,
            "version": app.version,
        }
    )


@app.get(f"{API_PREFIX}/ping")
async def ping() -> dict:
    """Simple ping endpoint for connectivity checks."""
    return {"message": "pong"}
