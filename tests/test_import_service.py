"""Tests for import service layer."""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from padu_api.common.models import Integration
from padu_api.core.config import settings
from padu_api.core.errors import (
    ConflictError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationAPIError,
)
from padu_api.imports.models import ImportJob, ImportJobStatus
from padu_api.imports.schemas import ImportJobCreateRequest
from padu_api.imports.service import ImportService

HEADERS = ["platform", "stars", "when", "comments"]
MAPPING = {"0": "provider", "1": "rating", "2": "created_at", "3": "text"}


def _request(integration, **overrides) -> ImportJobCreateRequest:
    values = {
        "integration_id": integration.id,
        "filename": "reviews.csv",
        "file_size": 2048,
        "headers": HEADERS,
        "column_mapping": MAPPING,
        "csv_rows": [
            ["google", "5", "2025-07-22T14:05:00Z", "Great"],
            ["booking", "3", "07/04/2024", None],
        ],
    }
    values.update(overrides)
    return ImportJobCreateRequest(**values)


class TestCreateJob:
    """Tests for ImportService.create_job."""

    def test_create_job_stages_rows(self, db, user_id, integration, fake_s3):
        """The chunk is staged in object storage and a pending job is created."""
        job = ImportService.create_job(db, user_id, _request(integration))

        assert job.status == "pending"
        assert job.total_rows == 2
        assert job.processed_rows == 0
        assert job.payload_path == f"imports/{user_id}/{job.id}.json"

        payload = fake_s3.download_json(job.payload_path)
        assert payload["headers"] == HEADERS
        assert payload["rows"][1][3] == ""
        assert payload["row_numbers"] == [1, 2]

    def test_row_numbers_are_staged(self, db, user_id, integration, fake_s3):
        job = ImportService.create_job(
            db, user_id, _request(integration, row_numbers=[41, 44])
        )

        assert fake_s3.download_json(job.payload_path)["row_numbers"] == [41, 44]

    def test_header_keyed_mapping_is_indexed(self, db, user_id, integration, fake_s3):
        """Header names in the mapping are stored as column indexes."""
        mapping = {"platform": "provider", "stars": "rating", "when": "created_at"}

        job = ImportService.create_job(
            db, user_id, _request(integration, column_mapping=mapping)
        )

        assert job.column_mapping == {"0": "provider", "1": "rating", "2": "created_at"}

    def test_unknown_integration(self, db, user_id, integration, fake_s3):
        request = _request(integration, integration_id=uuid4())

        with pytest.raises(NotFoundError):
            ImportService.create_job(db, user_id, request)

    def test_other_users_integration(self, db, integration, fake_s3):
        with pytest.raises(NotFoundError):
            ImportService.create_job(db, uuid4(), _request(integration))

    def test_file_too_large(self, db, user_id, integration, fake_s3):
        request = _request(integration, file_size=settings.max_upload_bytes + 1)

        with pytest.raises(PayloadTooLargeError):
            ImportService.create_job(db, user_id, request)
        assert fake_s3.objects == {}

    def test_chunk_too_large(self, db, user_id, integration, fake_s3, monkeypatch):
        monkeypatch.setattr(settings, "import_max_chunk_rows", 1)

        with pytest.raises(PayloadTooLargeError):
            ImportService.create_job(db, user_id, _request(integration))

    def test_not_a_csv(self, db, user_id, integration, fake_s3):
        with pytest.raises(ValidationAPIError):
            ImportService.create_job(
                db, user_id, _request(integration, filename="reviews.xlsx")
            )

    def test_incomplete_mapping(self, db, user_id, integration, fake_s3):
        """A mapping without every required field is rejected."""
        with pytest.raises(ValidationAPIError) as exc_info:
            ImportService.create_job(
                db, user_id, _request(integration, column_mapping={"0": "provider"})
            )

        errors = exc_info.value.details["errors"]
        assert errors[0]["field"] == "column_mapping"
        assert errors[0]["missing"] == ["rating", "created_at"]
        assert db.query(ImportJob).count() == 0


class TestJobQueries:
    """Tests for job lookups."""

    def test_get_job_scoped_to_user(self, db, user_id, integration, fake_s3):
        job = ImportService.create_job(db, user_id, _request(integration))

        assert ImportService.get_job(db, job.id, user_id).id == job.id
        with pytest.raises(NotFoundError):
            ImportService.get_job(db, job.id, uuid4())

    def test_list_jobs_newest_first(self, db, user_id, integration, fake_s3):
        older = ImportService.create_job(db, user_id, _request(integration))
        newer = ImportService.create_job(db, user_id, _request(integration))
        older.created_at = newer.created_at - timedelta(minutes=5)
        db.commit()

        jobs = ImportService.list_jobs(db, user_id)

        assert [job.id for job in jobs] == [newer.id, older.id]
        assert ImportService.list_jobs(db, user_id, limit=1, offset=1)[0].id == older.id

    def test_list_jobs_other_user(self, db, user_id, integration, fake_s3):
        ImportService.create_job(db, user_id, _request(integration))

        assert ImportService.list_jobs(db, uuid4()) == []


class TestCancelJob:
    """Tests for job cancellation."""

    def test_cancel_pending(self, db, user_id, integration, fake_s3):
        job = ImportService.create_job(db, user_id, _request(integration))

        cancelled = ImportService.cancel_job(db, job.id, user_id)

        assert cancelled.status == "cancelled"
        assert cancelled.completed_at is not None

    @pytest.mark.parametrize("status", ["completed", "completed_with_errors", "failed", "cancelled"])
    def test_cancel_terminal_conflicts(self, db, user_id, integration, fake_s3, status):
        job = ImportService.create_job(db, user_id, _request(integration))
        job.status = status
        db.commit()

        with pytest.raises(ConflictError) as exc_info:
            ImportService.cancel_job(db, job.id, user_id)

        assert exc_info.value.details == {"status": status}


class TestFailJob:
    def test_fail_pending_job(self, db, user_id, integration, fake_s3):
        job = ImportService.create_job(db, user_id, _request(integration))

        assert ImportService.fail_job(db, job.id, "boom") is True

        db.refresh(job)
        assert job.status == ImportJobStatus.FAILED.value
        assert job.error_message == "boom"

    def test_fail_terminal_job_is_noop(self, db, user_id, integration, fake_s3):
        job = ImportService.create_job(db, user_id, _request(integration))
        job.status = ImportJobStatus.COMPLETED.value
        db.commit()

        assert ImportService.fail_job(db, job.id, "late failure") is False

        db.refresh(job)
        assert job.status == "completed"
        assert job.error_message is None


def test_integration_model_defaults(db, user_id):
    integration = Integration(user_id=user_id, platform="csv")
    db.add(integration)
    db.commit()

    assert integration.type == "csv"
    assert integration.status == "pending"
    assert integration.total_reviews == 0
