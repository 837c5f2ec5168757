"""Tests for FastAPI middleware functionality."""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from padu_api.core.middleware import RequestIDMiddleware, RequestLoggingMiddleware


class TestRequestIDMiddleware:
    """Test RequestIDMiddleware functionality."""

    def test_adds_request_id_when_missing(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert len(response.headers["X-Request-ID"]) == 36  # UUID format

    def test_preserves_existing_request_id(self, client: TestClient):
        response = client.get("/health", headers={"X-Request-ID": "custom-request-id-12345"})

        assert response.headers["X-Request-ID"] == "custom-request-id-12345"

    def test_request_id_in_state(self):
        test_app = FastAPI()

        @test_app.get("/test")
        async def test_endpoint(request: Request):
            return {"request_id": getattr(request.state, "request_id", None)}

        test_app.add_middleware(RequestIDMiddleware)

        response = TestClient(test_app).get("/test", headers={"X-Request-ID": "abc"})

        assert response.json() == {"request_id": "abc"}


class TestRequestLoggingMiddleware:
    """Test request/response logging."""

    def _app(self) -> FastAPI:
        test_app = FastAPI()

        @test_app.post("/imports")
        async def create():
            return {"ok": True}

        @test_app.get("/health")
        async def health():
            return {"status": "ok"}

        test_app.add_middleware(RequestLoggingMiddleware)
        test_app.add_middleware(RequestIDMiddleware)
        return test_app

    def test_logs_request_and_response(self, caplog):
        with caplog.at_level(logging.INFO, logger="padu_api.core.middleware"):
            response = TestClient(self._app()).post(
                "/imports", json={"rows": [1]}, headers={"X-Request-ID": "req-1"}
            )

        assert response.status_code == 200
        assert response.headers["X-Process-Time"].endswith("ms")
        entries = [
            json.loads(record.getMessage())
            for record in caplog.records
            if record.name == "padu_api.core.middleware"
        ]
        assert [entry["type"] for entry in entries] == ["http_request", "http_response"]
        assert entries[0]["request_id"] == "req-1"
        assert entries[0]["request_body_size"] > 0
        assert entries[1]["status_code"] == 200

    def test_excluded_paths_are_not_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="padu_api.core.middleware"):
            TestClient(self._app()).get("/health")

        assert not [r for r in caplog.records if r.name == "padu_api.core.middleware"]
