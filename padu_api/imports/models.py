"""Import domain models (import jobs, import errors)."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import (
    String,
    ForeignKey,
    Index,
    Integer,
    JSON,
    TIMESTAMP,
    Uuid,
    Text,
    BigInteger,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from padu_api.common.models.base import Base, utcnow


class ImportJobStatus(str, Enum):
    """Lifecycle of an import job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {
        ImportJobStatus.COMPLETED,
        ImportJobStatus.COMPLETED_WITH_ERRORS,
        ImportJobStatus.FAILED,
        ImportJobStatus.CANCELLED,
    }
)

ALLOWED_TRANSITIONS: dict[ImportJobStatus, frozenset[ImportJobStatus]] = {
    ImportJobStatus.PENDING: frozenset(
        {
            ImportJobStatus.PROCESSING,
            ImportJobStatus.FAILED,
            ImportJobStatus.CANCELLED,
        }
    ),
    ImportJobStatus.PROCESSING: frozenset(
        {
            ImportJobStatus.COMPLETED,
            ImportJobStatus.COMPLETED_WITH_ERRORS,
            ImportJobStatus.FAILED,
            ImportJobStatus.CANCELLED,
        }
    ),
}


class InvalidJobTransition(Exception):
    """Raised when a job status change is not allowed by the state machine."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move import job from '{current}' to '{target}'")


def is_terminal(status: str) -> bool:
    return ImportJobStatus(status) in TERMINAL_STATUSES


def check_transition(current: str, target: str) -> ImportJobStatus:
    """Validate a status change and return the target status.

    Raises:
        InvalidJobTransition: if ``current -> target`` is not an allowed edge
            (terminal states have no outgoing edges).
    """
    current_status = ImportJobStatus(current)
    target_status = ImportJobStatus(target)
    if target_status not in ALLOWED_TRANSITIONS.get(current_status, frozenset()):
        raise InvalidJobTransition(current_status.value, target_status.value)
    return target_status


class ImportJob(Base):
    """Import job tracking table."""

    __tablename__ = "import_jobs"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True
    )
    integration_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("integrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)  # bytes
    payload_path: Mapped[Optional[str]] = mapped_column(
        String(1000), nullable=True
    )  # S3/MinIO key of the staged rows
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ImportJobStatus.PENDING.value,
    )
    column_mapping: Mapped[Optional[dict]] = mapped_column(
        JSON, nullable=True
    )  # {source column index: canonical field}
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    imported_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_import_jobs_user_created", "user_id", "created_at"),
        Index("ix_import_jobs_status", "status"),
    )


class ImportError(Base):
    """Per-row failure recorded while processing an import job."""

    __tablename__ = "import_errors"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    import_job_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    row_number: Mapped[int] = mapped_column(Integer, nullable=False)
    error_type: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # "validation", "hashing", "storage"
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    row_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "import_job_id", "row_number", name="uq_import_errors_job_row"
        ),
    )
