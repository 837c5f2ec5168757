"""Background job tasks for review ingestion."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from padu_api.common.db import SessionLocal
from padu_api.common.models import Integration, IntegrationStatus, utcnow
from padu_api.core.config import settings
from padu_api.core.metrics import ImportMetric, emit_import_metric
from padu_api.imports.models import (
    ImportError,
    ImportJob,
    ImportJobStatus,
    check_transition,
)
from padu_api.imports.processors import (
    OUTCOME_UPDATED,
    ProcessResult,
    ReviewRowProcessor,
)
from padu_api.imports.s3_utils import S3Client
from padu_api.imports.service import ImportService
from padu_api.reviews.store import SqlReviewStore

logger = logging.getLogger(__name__)


@dataclass
class JobCounters:
    """In-memory progress of one job; only ever incremented."""

    processed_rows: int = 0
    imported_rows: int = 0
    updated_rows: int = 0
    failed_rows: int = 0

    def record(self, result: ProcessResult) -> None:
        self.processed_rows += 1
        if result.success:
            self.imported_rows += 1
            if result.outcome == OUTCOME_UPDATED:
                self.updated_rows += 1
        else:
            self.failed_rows += 1

    def as_values(self) -> dict[str, int]:
        return {
            "processed_rows": self.processed_rows,
            "imported_rows": self.imported_rows,
            "updated_rows": self.updated_rows,
            "failed_rows": self.failed_rows,
        }


def _row_data(values: list[Any], headers: list[str]) -> dict[str, Any]:
    """Label a positional row with its headers for the error report."""
    if headers and len(headers) >= len(values):
        return {header: value for header, value in zip(headers, values)}
    return {str(index): value for index, value in enumerate(values)}


def _mark_processing(db: Session, job: ImportJob) -> bool:
    """Move ``pending -> processing``; False if the job is not pending any more."""
    check_transition(job.status, ImportJobStatus.PROCESSING.value)
    result = db.execute(
        update(ImportJob)
        .where(
            ImportJob.id == job.id,
            ImportJob.status == ImportJobStatus.PENDING.value,
        )
        .values(status=ImportJobStatus.PROCESSING.value, started_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount > 0


def _persist_progress(
    db: Session,
    job_id: UUID,
    counters: JobCounters,
    status: Optional[str] = None,
) -> bool:
    """
    Write counters (and optionally a terminal status) while still processing.

    Returns:
        False when the job left ``processing`` (e.g. it was cancelled); the
        row is then left untouched.
    """
    values: dict[str, Any] = counters.as_values()
    if status:
        check_transition(ImportJobStatus.PROCESSING.value, status)
        values.update(status=status, completed_at=utcnow())
    result = db.execute(
        update(ImportJob)
        .where(
            ImportJob.id == job_id,
            ImportJob.status == ImportJobStatus.PROCESSING.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount > 0


def _is_cancelled(db: Session, job_id: UUID) -> bool:
    status = db.execute(
        select(ImportJob.status).where(ImportJob.id == job_id)
    ).scalar_one()
    return status == ImportJobStatus.CANCELLED.value


def _record_row_error(
    db: Session,
    job_id: UUID,
    row_number: int,
    result: ProcessResult,
    values: list[Any],
    headers: list[str],
) -> None:
    """Store the first (and only) failure of a row."""
    db.add(
        ImportError(
            import_job_id=job_id,
            row_number=row_number,
            error_type=result.error_type,
            error_message=result.error_message,
            row_data=_row_data(values, headers),
        )
    )
    db.commit()
    logger.warning(
        f"Import job {job_id} row {row_number} failed ({result.error_type}): "
        f"{result.error_message}",
        extra={"import_job_id": str(job_id), "row_number": row_number},
    )


def _update_integration(
    db: Session,
    job: ImportJob,
    store: SqlReviewStore,
    counters: JobCounters,
    status: str,
) -> None:
    """Refresh the parent integration's aggregate count and sync metadata."""
    integration = db.get(Integration, job.integration_id)
    if not integration:
        logger.warning(f"Integration {job.integration_id} not found for job {job.id}")
        return

    now = utcnow()
    metadata = dict(integration.metadata_ or {})
    metadata["last_import"] = {
        "import_job_id": str(job.id),
        "filename": job.filename,
        "status": status,
        "imported_rows": counters.imported_rows,
        "updated_rows": counters.updated_rows,
        "failed_rows": counters.failed_rows,
        "completed_at": now.isoformat(),
    }
    integration.metadata_ = metadata
    integration.total_reviews = store.count_for_integration(integration.id)
    integration.last_sync_at = now
    integration.status = IntegrationStatus.CONNECTED.value
    db.commit()


def process_import_job(job_id: str) -> None:
    """
    Process an import job: upsert every staged row, one at a time.

    A row that fails validation, hashing or storage gets an ImportError and
    processing moves on. Counters are persisted every
    ``import_progress_interval`` rows. Anything escaping the per-row boundary
    (including lost database connectivity) fails the job; counters keep their
    last persisted values. The staged payload is removed once the job completes.

    Args:
        job_id: UUID of the import job
    """
    db = SessionLocal()
    job_uuid = UUID(job_id)
    log_extra = {"import_job_id": job_id}
    try:
        job = db.get(ImportJob, job_uuid)
        if not job:
            logger.error(f"Import job {job_id} not found", extra=log_extra)
            return

        if job.status != ImportJobStatus.PENDING.value or not _mark_processing(db, job):
            logger.info(
                f"Import job {job_id} is '{job.status}', skipping", extra=log_extra
            )
            return

        logger.info(f"Processing import job {job_id}", extra=log_extra)

        storage = S3Client()
        payload = storage.download_json(job.payload_path)
        rows: list[list[Any]] = payload["rows"]
        headers: list[str] = payload.get("headers") or []
        row_numbers: list[int] = payload.get("row_numbers") or list(
            range(1, len(rows) + 1)
        )

        store = SqlReviewStore(db)
        processor = ReviewRowProcessor(store, job.user_id, job.integration_id)
        column_mapping = dict(job.column_mapping or {})
        interval = max(1, settings.import_progress_interval)
        counters = JobCounters()

        for index, (row_number, values) in enumerate(zip(row_numbers, rows), start=1):
            if _is_cancelled(db, job_uuid):
                logger.info(
                    f"Import job {job_id} cancelled after {counters.processed_rows} rows",
                    extra=log_extra,
                )
                return

            result = processor.process_row(values, row_number, column_mapping)
            counters.record(result)
            if not result.success:
                _record_row_error(db, job_uuid, row_number, result, values, headers)

            if index % interval == 0 and not _persist_progress(db, job_uuid, counters):
                logger.info(f"Import job {job_id} left processing, stopping", extra=log_extra)
                return

        final_status = (
            ImportJobStatus.COMPLETED.value
            if counters.failed_rows == 0
            else ImportJobStatus.COMPLETED_WITH_ERRORS.value
        )
        if not _persist_progress(db, job_uuid, counters, status=final_status):
            logger.info(f"Import job {job_id} left processing, stopping", extra=log_extra)
            return

        _update_integration(db, job, store, counters, final_status)
        storage.delete_file(job.payload_path)

        logger.info(
            f"Import job {job_id} {final_status}: {counters.imported_rows} imported "
            f"({counters.updated_rows} updated), {counters.failed_rows} failed",
            extra=log_extra,
        )
        emit_import_metric(
            ImportMetric.IMPORT_JOB_COMPLETED,
            user_id=job.user_id,
            status=final_status,
        )
        if counters.failed_rows:
            emit_import_metric(
                ImportMetric.IMPORT_ROW_FAILED,
                value=counters.failed_rows,
                user_id=job.user_id,
            )

    except Exception as e:
        logger.error(
            f"Import job {job_id} failed: {type(e).__name__}: {e}",
            extra=log_extra,
            exc_info=True,
        )
        db.rollback()
        try:
            if ImportService.fail_job(db, job_uuid, str(e) or type(e).__name__):
                emit_import_metric(ImportMetric.IMPORT_JOB_FAILED, import_job_id=job_id)
        except Exception as inner_e:
            logger.error(
                f"Failed to mark import job {job_id} as failed: {inner_e}",
                extra=log_extra,
                exc_info=True,
            )
    finally:
        db.close()
