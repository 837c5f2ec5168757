"""Clients that hand import chunks to the ingestion API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
TERMINAL_STATUSES = frozenset({"completed", "completed_with_errors", "failed", "cancelled"})


class IngestionClientError(Exception):
    """The ingestion API rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        self.status_code = status_code
        self.details = details
        super().__init__(message)


@dataclass
class ImportChunk:
    """One batch of accepted rows, addressed by column index."""

    integration_id: str
    filename: str
    file_size: int
    headers: list[str]
    column_mapping: dict[str, str]
    rows: list[list[str]] = field(default_factory=list)
    row_numbers: list[int] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "integration_id": str(self.integration_id),
            "filename": self.filename,
            "file_size": self.file_size,
            "headers": self.headers,
            "column_mapping": self.column_mapping,
            "csv_rows": self.rows,
            "row_numbers": self.row_numbers,
        }

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class JobStatus:
    id: str
    status: str
    total_rows: int = 0
    processed_rows: int = 0
    imported_rows: int = 0
    updated_rows: int = 0
    failed_rows: int = 0
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def inserted_rows(self) -> int:
        return self.imported_rows - self.updated_rows

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobStatus":
        return cls(
            id=str(data["id"]),
            status=data["status"],
            total_rows=data.get("total_rows", 0),
            processed_rows=data.get("processed_rows", 0),
            imported_rows=data.get("imported_rows", 0),
            updated_rows=data.get("updated_rows", 0),
            failed_rows=data.get("failed_rows", 0),
            error_message=data.get("error_message"),
        )


@dataclass
class RowError:
    row_number: int
    error_type: str
    error_message: str
    row_data: Optional[dict[str, Any]] = None


class IngestionClient(Protocol):
    """What the orchestrator needs from the server side."""

    def submit_chunk(self, chunk: ImportChunk) -> str:
        """Create a job for the chunk and return its id."""

    def get_job(self, job_id: str) -> JobStatus:
        """Current status and counters of a job."""

    def list_errors(self, job_id: str) -> list[RowError]:
        """Per-row errors of a job, ordered by row number."""


class HttpIngestionClient:
    """IngestionClient over the HTTP API using httpx.

    Args:
        base_url: Server root, e.g. ``http://localhost:8000``
        token: Bearer access token
        client: Pre-built ``httpx.Client`` (a FastAPI ``TestClient`` works too)
        timeout: Request timeout in seconds when building the client here
    """

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self._owns_client = client is None
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self.client.request(
                method, f"{API_PREFIX}{path}", headers=self.headers, **kwargs
            )
        except httpx.HTTPError as e:
            raise IngestionClientError(f"Request to {path} failed: {e}") from e

        if response.status_code >= 400:
            message = response.text
            details = None
            try:
                body = response.json()
                error = body.get("error") or {}
                message = error.get("message") or body.get("detail") or message
                details = error.get("details")
            except ValueError:
                pass
            logger.warning(f"Ingestion API {method} {path} returned {response.status_code}: {message}")
            raise IngestionClientError(
                str(message), status_code=response.status_code, details=details
            )
        return response.json()

    def submit_chunk(self, chunk: ImportChunk) -> str:
        data = self._request("POST", "/imports/jobs", json=chunk.to_payload())
        if not data.get("success"):
            raise IngestionClientError(data.get("message") or "Import was not accepted")
        return str(data["import_job_id"])

    def get_job(self, job_id: str) -> JobStatus:
        return JobStatus.from_dict(self._request("GET", f"/imports/jobs/{job_id}"))

    def list_errors(self, job_id: str) -> list[RowError]:
        data = self._request("GET", f"/imports/jobs/{job_id}/errors")
        return [
            RowError(
                row_number=item["row_number"],
                error_type=item["error_type"],
                error_message=item["error_message"],
                row_data=item.get("row_data"),
            )
            for item in data
        ]

    def download_template(self) -> bytes:
        try:
            response = self.client.get(f"{API_PREFIX}/imports/template")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise IngestionClientError(f"Template download failed: {e}") from e
        return response.content

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "HttpIngestionClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
