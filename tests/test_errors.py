"""Tests for error handling and exception management."""

from __future__ import annotations

from fastapi import FastAPI, status
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError, OperationalError

from padu_api.core.errors import (
    APIError,
    ConflictError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationAPIError,
    setup_error_handlers,
)


class TestAPIError:
    """Test APIError exception classes."""

    def test_api_error_creation(self):
        error = APIError(
            status_code=400,
            error_code="test_error",
            message="Test error message",
            details={"key": "value"},
        )

        assert error.status_code == 400
        assert error.details == {"key": "value"}
        assert str(error) == "Test error message"

    def test_validation_api_error(self):
        error = ValidationAPIError(errors=[{"field": "column_mapping", "message": "bad"}])

        assert error.status_code == status.HTTP_422_UNPROCESSABLE_CONTENT
        assert error.error_code == "validation_error"
        assert error.details["errors"][0]["field"] == "column_mapping"

    def test_not_found_error(self):
        error = NotFoundError("Import job", "abc")

        assert error.status_code == 404
        assert error.message == "Import job not found: abc"

    def test_conflict_error(self):
        error = ConflictError("already finished", details={"status": "completed"})

        assert error.status_code == 409
        assert error.details == {"status": "completed"}

    def test_payload_too_large_error(self):
        error = PayloadTooLargeError("too big", limit=10)

        assert error.status_code == 413
        assert error.details == {"limit": 10}


def _app(debug: bool = False) -> FastAPI:
    app = FastAPI()
    setup_error_handlers(app, debug=debug)

    @app.get("/conflict")
    async def conflict():
        raise ConflictError("Import job already completed", details={"status": "completed"})

    @app.get("/integrity")
    async def integrity():
        raise IntegrityError("INSERT", {}, Exception("duplicate key"))

    @app.get("/operational")
    async def operational():
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    @app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    @app.get("/items/{item_id}")
    async def item(item_id: int):
        return {"item_id": item_id}

    return app


class TestErrorHandlers:
    """Test the structured error envelope."""

    def test_api_error_envelope(self):
        response = TestClient(_app()).get("/conflict")

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "conflict"
        assert error["message"] == "Import job already completed"
        assert error["details"] == {"status": "completed"}
        assert "request_id" in error

    def test_request_validation_error(self):
        response = TestClient(_app()).get("/items/abc")

        assert response.status_code == 422
        errors = response.json()["error"]["details"]["errors"]
        assert errors[0]["field"] == "path.item_id"

    def test_integrity_error(self):
        response = TestClient(_app(), raise_server_exceptions=False).get("/integrity")

        assert response.status_code == 500
        assert response.json()["error"]["message"] == "Database integrity constraint violated"
        assert "details" not in response.json()["error"]

    def test_database_error_details_in_debug(self):
        response = TestClient(_app(debug=True), raise_server_exceptions=False).get("/operational")

        error = response.json()["error"]
        assert error["code"] == "database_error"
        assert error["details"]["type"] == "OperationalError"

    def test_unhandled_exception(self):
        response = TestClient(_app(), raise_server_exceptions=False).get("/boom")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "internal_error"
        assert "details" not in response.json()["error"]
