"""Import API routes."""

from __future__ import annotations

import asyncio
import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from padu_api.auth.dependencies import get_current_user_id
from padu_api.common.db import get_db
from padu_api.imports import schemas
from padu_api.imports.models import ImportJob, is_terminal
from padu_api.imports.service import ImportService
from padu_api.imports.templates import TEMPLATE_FILENAME, build_template_csv
from padu_api.jobs.queue import imports_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/imports", tags=["imports"])

SSE_TIMEOUT_SECONDS = 300
SSE_POLL_SECONDS = 1


def _progress_payload(job: ImportJob) -> dict:
    progress_percent = None
    if job.total_rows:
        progress_percent = round(job.processed_rows / job.total_rows * 100, 2)
    return {
        "job_id": str(job.id),
        "status": job.status,
        "total_rows": job.total_rows,
        "processed_rows": job.processed_rows,
        "imported_rows": job.imported_rows,
        "updated_rows": job.updated_rows,
        "failed_rows": job.failed_rows,
        "error_message": job.error_message,
        "progress_percent": progress_percent,
    }


@router.post(
    "/jobs",
    response_model=schemas.ImportJobCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_import_job(
    request: schemas.ImportJobCreateRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create an import job for one chunk of rows and queue it for processing."""
    job = ImportService.create_job(db, user_id, request)

    try:
        imports_queue.enqueue("padu_api.jobs.tasks.process_import_job", str(job.id))
    except Exception as e:
        logger.error(f"Failed to enqueue import job {job.id}: {e}", exc_info=True)
        ImportService.fail_job(db, job.id, "Could not queue import job for processing")
        raise

    return schemas.ImportJobCreateResponse(
        success=True,
        import_job_id=job.id,
        message=f"Import started for {job.total_rows} rows",
    )


@router.get("/jobs", response_model=list[schemas.ImportJobResponse])
async def list_import_jobs(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """List user's import jobs."""
    jobs = ImportService.list_jobs(db, user_id, limit=limit, offset=offset)
    return [schemas.ImportJobResponse.model_validate(job) for job in jobs]


@router.get("/jobs/{job_id}", response_model=schemas.ImportJobResponse)
async def get_import_job(
    job_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Get import job status."""
    job = ImportService.get_job(db, job_id, user_id)
    return schemas.ImportJobResponse.model_validate(job)


@router.get("/jobs/{job_id}/errors", response_model=list[schemas.ImportErrorResponse])
async def list_import_errors(
    job_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Per-row errors, ordered by row number."""
    errors = ImportService.list_errors(db, job_id, user_id)
    return [schemas.ImportErrorResponse.model_validate(error) for error in errors]


@router.post("/jobs/{job_id}/cancel", response_model=schemas.ImportJobResponse)
async def cancel_import_job(
    job_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Cancel a pending or processing job (409 once it is terminal)."""
    job = ImportService.cancel_job(db, job_id, user_id)
    return schemas.ImportJobResponse.model_validate(job)


@router.get("/jobs/{job_id}/stream")
async def stream_import_progress(
    job_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Stream import job progress via Server-Sent Events (SSE).

    Emits a ``progress`` event whenever the counters or status change and a
    final ``complete`` event once the job is terminal.
    """
    ImportService.get_job(db, job_id, user_id)

    async def event_generator():
        """Generate SSE events for import progress."""
        last_snapshot = None
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        try:
            while True:
                if loop.time() - start_time > SSE_TIMEOUT_SECONDS:
                    yield f"event: timeout\ndata: {json.dumps({'message': 'Connection timeout'})}\n\n"
                    break

                current_job = ImportService.get_job(db, job_id, user_id)
                db.refresh(current_job)
                data = _progress_payload(current_job)

                snapshot = (data["status"], data["processed_rows"])
                if snapshot != last_snapshot:
                    yield f"event: progress\ndata: {json.dumps(data)}\n\n"
                    last_snapshot = snapshot

                if is_terminal(current_job.status):
                    yield f"event: complete\ndata: {json.dumps(data)}\n\n"
                    break

                await asyncio.sleep(SSE_POLL_SECONDS)

        except asyncio.CancelledError:
            logger.info(f"SSE connection cancelled for import job {job_id}")
        except Exception as e:
            logger.error(f"Error in SSE stream for import job {job_id}: {e}", exc_info=True)
            yield f"event: error\ndata: {json.dumps({'message': str(e)})}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/template")
async def download_template():
    """Download the CSV template (every cell quoted)."""
    return Response(
        content=build_template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{TEMPLATE_FILENAME}"'},
    )
