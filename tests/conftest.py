from __future__ import annotations

import json
from typing import Generator
from unittest.mock import patch
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from padu_api.main import app
from padu_api.common.models import Base, Integration
from padu_api.imports import models as import_models  # noqa: F401
from padu_api.auth.utils import create_access_token

# In-memory SQLite shared across threads (TestClient runs the app in a worker thread)
TEST_DB_URL = "sqlite:///:memory:"
engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

CSV_HEADER = "provider,external_review_id,rating,text,language,created_at,response_text,responded_at"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh schema for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def auth_headers(user_id: UUID) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def integration(db: Session, user_id: UUID) -> Integration:
    integration = Integration(
        user_id=user_id,
        platform="csv",
        type="csv",
        name="CSV uploads",
    )
    db.add(integration)
    db.commit()
    db.refresh(integration)
    return integration


class FakeS3:
    """In-memory stand-in for the S3Client wrapper."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}

    def upload_file(self, file_content, key, content_type=None):
        self.objects[key] = file_content
        return key

    def download_file(self, key):
        return self.objects[key]

    def upload_json(self, payload, key):
        return self.upload_file(json.dumps(payload).encode("utf-8"), key)

    def download_json(self, key):
        return json.loads(self.objects[key].decode("utf-8"))

    def delete_file(self, key):
        self.objects.pop(key, None)


@pytest.fixture
def fake_s3(monkeypatch) -> FakeS3:
    """Route both the API and the worker to one in-memory bucket."""
    storage = FakeS3()
    monkeypatch.setattr("padu_api.imports.service.S3Client", lambda: storage)
    monkeypatch.setattr("padu_api.jobs.tasks.S3Client", lambda: storage)
    return storage


@pytest.fixture
def run_job(db: Session):
    """Run process_import_job against the test session."""
    from padu_api.jobs.tasks import process_import_job

    def run(job_id) -> None:
        with patch("padu_api.jobs.tasks.SessionLocal", return_value=db):
            with patch.object(db, "close"):  # Keep the test session open
                process_import_job(str(job_id))

    return run


class RecordingQueue:
    """Captures enqueue calls; optionally runs the task inline."""

    def __init__(self, runner=None):
        self.calls: list[tuple] = []
        self.runner = runner

    def enqueue(self, func_path, *args, **kwargs):
        self.calls.append((func_path, args))
        if self.runner:
            self.runner(*args)


@pytest.fixture
def fake_queue(monkeypatch) -> RecordingQueue:
    queue = RecordingQueue()
    monkeypatch.setattr("padu_api.imports.routes.imports_queue", queue)
    return queue


@pytest.fixture
def inline_queue(monkeypatch, run_job) -> RecordingQueue:
    """Queue that processes each job as soon as it is enqueued."""
    queue = RecordingQueue(runner=run_job)
    monkeypatch.setattr("padu_api.imports.routes.imports_queue", queue)
    return queue


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with dependency overrides."""

    def get_test_db():
        yield db

    from padu_api.common.db import get_db

    app.dependency_overrides[get_db] = get_test_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_csv():
    """Build CSV bytes from a header line and data lines."""

    def build(*rows: str, header: str = CSV_HEADER) -> bytes:
        return ("\n".join([header, *rows]) + "\n").encode("utf-8")

    return build
