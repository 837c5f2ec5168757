"""Import service layer for review ingestion jobs."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from padu_api.common.models import Integration, utcnow
from padu_api.core.config import settings
from padu_api.core.errors import (
    ConflictError,
    NotFoundError,
    PayloadTooLargeError,
    ValidationAPIError,
)
from padu_api.core.metrics import ImportMetric, emit_import_metric
from padu_api.imports import schemas
from padu_api.imports.mappers import IncompleteMapping, validate_wire_mapping
from padu_api.imports.models import (
    ImportError,
    ImportJob,
    ImportJobStatus,
    InvalidJobTransition,
    check_transition,
)
from padu_api.imports.parsers import FileTooLarge, MalformedInput, check_upload
from padu_api.imports.s3_utils import S3Client

logger = logging.getLogger(__name__)


class ImportService:
    """Service for managing import jobs."""

    @staticmethod
    def _validate_request(request: schemas.ImportJobCreateRequest) -> None:
        try:
            check_upload(request.filename, request.file_size, settings.max_upload_bytes)
        except FileTooLarge as e:
            raise PayloadTooLargeError(str(e), limit=settings.max_upload_bytes) from e
        except MalformedInput as e:
            raise ValidationAPIError(
                str(e), errors=[{"field": "filename", "message": str(e)}]
            ) from e

        if len(request.csv_rows) > settings.import_max_chunk_rows:
            raise PayloadTooLargeError(
                f"Chunk has {len(request.csv_rows)} rows; "
                f"maximum is {settings.import_max_chunk_rows}",
                limit=settings.import_max_chunk_rows,
            )

        column_count = max(
            len(request.headers or []),
            max(len(row) for row in request.csv_rows),
        )
        try:
            validate_wire_mapping(request.column_mapping, column_count, request.headers)
        except IncompleteMapping as e:
            raise ValidationAPIError(
                str(e),
                errors=[
                    {"field": "column_mapping", "message": str(e), "missing": e.missing}
                ],
            ) from e

    @staticmethod
    def _index_mapping(
        column_mapping: dict[str, str], headers: Optional[list[str]]
    ) -> dict[str, str]:
        """Normalize header-keyed entries to column indexes."""
        normalized = {}
        for source, field_name in column_mapping.items():
            if not source.isdigit():
                source = str(headers.index(source))
            normalized[source] = field_name
        return normalized

    @staticmethod
    def create_job(
        db: Session,
        user_id: UUID,
        request: schemas.ImportJobCreateRequest,
    ) -> ImportJob:
        """
        Validate a submitted chunk, stage its rows and create a pending job.

        Args:
            db: Database session
            user_id: Owner of the job and of the target integration
            request: Submitted chunk

        Returns:
            Created ImportJob (status ``pending``)

        Raises:
            NotFoundError: integration missing or owned by another user
            PayloadTooLargeError: file or chunk above the configured ceilings
            ValidationAPIError: bad filename or column mapping
        """
        integration = db.get(Integration, request.integration_id)
        if not integration or integration.user_id != user_id:
            raise NotFoundError("Integration", str(request.integration_id))

        ImportService._validate_request(request)

        job_id = uuid4()
        row_numbers = request.row_numbers or list(range(1, len(request.csv_rows) + 1))
        payload_key = f"imports/{user_id}/{job_id}.json"
        S3Client().upload_json(
            {
                "headers": request.headers or [],
                "rows": [["" if v is None else v for v in row] for row in request.csv_rows],
                "row_numbers": row_numbers,
            },
            payload_key,
        )

        job = ImportJob(
            id=job_id,
            user_id=user_id,
            integration_id=integration.id,
            filename=request.filename,
            file_size=request.file_size,
            payload_path=payload_key,
            status=ImportJobStatus.PENDING.value,
            column_mapping=ImportService._index_mapping(
                request.column_mapping, request.headers
            ),
            total_rows=len(request.csv_rows),
        )
        db.add(job)
        db.commit()
        db.refresh(job)

        logger.info(
            f"Created import job {job.id} with {job.total_rows} rows",
            extra={"import_job_id": str(job.id)},
        )
        emit_import_metric(
            ImportMetric.IMPORT_JOB_CREATED,
            user_id=user_id,
            integration_id=integration.id,
            rows=job.total_rows,
        )
        return job

    @staticmethod
    def get_job(db: Session, job_id: UUID, user_id: UUID) -> ImportJob:
        """Get one of the user's jobs, or raise NotFoundError."""
        job = db.get(ImportJob, job_id)
        if not job or job.user_id != user_id:
            raise NotFoundError("Import job", str(job_id))
        return job

    @staticmethod
    def list_jobs(
        db: Session, user_id: UUID, limit: int = 100, offset: int = 0
    ) -> list[ImportJob]:
        """List user's import jobs, newest first."""
        return list(
            db.execute(
                select(ImportJob)
                .where(ImportJob.user_id == user_id)
                .order_by(ImportJob.created_at.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )

    @staticmethod
    def list_errors(db: Session, job_id: UUID, user_id: UUID) -> list[ImportError]:
        """Per-row errors of a job, ordered by row number."""
        ImportService.get_job(db, job_id, user_id)
        return list(
            db.execute(
                select(ImportError)
                .where(ImportError.import_job_id == job_id)
                .order_by(ImportError.row_number)
            ).scalars()
        )

    @staticmethod
    def cancel_job(db: Session, job_id: UUID, user_id: UUID) -> ImportJob:
        """
        Cancel a pending or processing job.

        The status write is conditional on the status read here, so a worker
        finishing concurrently wins and the caller gets a conflict.

        Raises:
            NotFoundError: unknown job
            ConflictError: job already terminal
        """
        job = ImportService.get_job(db, job_id, user_id)
        current = job.status
        try:
            check_transition(current, ImportJobStatus.CANCELLED.value)
        except InvalidJobTransition as e:
            raise ConflictError(str(e), details={"status": current}) from e

        result = db.execute(
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.status == current)
            .values(status=ImportJobStatus.CANCELLED.value, completed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        db.commit()
        db.refresh(job)
        if result.rowcount == 0:
            raise ConflictError(
                f"Import job changed state to '{job.status}' before it could be cancelled",
                details={"status": job.status},
            )

        logger.info(f"Cancelled import job {job_id}", extra={"import_job_id": str(job_id)})
        emit_import_metric(ImportMetric.IMPORT_JOB_CANCELLED, user_id=user_id)
        return job

    @staticmethod
    def fail_job(db: Session, job_id: UUID, message: str) -> bool:
        """Mark a non-terminal job failed; returns False if it was already terminal."""
        result = db.execute(
            update(ImportJob)
            .where(
                ImportJob.id == job_id,
                ImportJob.status.in_(
                    [ImportJobStatus.PENDING.value, ImportJobStatus.PROCESSING.value]
                ),
            )
            .values(
                status=ImportJobStatus.FAILED.value,
                error_message=message,
                completed_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount > 0
