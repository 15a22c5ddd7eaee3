"""Endpoints for bulk report upload orchestration and tracking."""

from __future__ import annotations

import logging

from fastapi import (
    APIRouter,
    Depends,
    File,
    HTTPException,
    Response,
    UploadFile,
    status,
)
from sqlalchemy.exc import SQLAlchemyError

from impact_tracker.api.dependencies.services import get_job_engine
from impact_tracker.api.routers.job_helpers import serialize_job
from impact_tracker.api.schemas.job import BulkUploadRequest, JobStatus
from impact_tracker.core.errors import EmptyPayloadError, JobPersistenceError, NotFoundError
from impact_tracker.services.csv_ingest import decode_upload
from impact_tracker.services.job_engine import JobEngine

logger = logging.getLogger(__name__)

router = APIRouter()


def _start_job(engine: JobEngine, raw_payload: str, source: str) -> JobStatus:
    """Create the job and return its first snapshot without waiting on rows."""
    try:
        job_id = engine.create_job(raw_payload)
    except EmptyPayloadError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SQLAlchemyError as exc:
        logger.error(f"Database error creating import job: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create import job",
        ) from exc

    snapshot = engine.get_status(job_id)
    logger.info(f"Created import job {job_id} from {source}")
    return serialize_job(snapshot)


@router.post(
    "/",
    summary="Start a CSV import job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobStatus,
)
async def enqueue_import(
    file: UploadFile = File(...),
    engine: JobEngine = Depends(get_job_engine),
) -> JobStatus:
    """Accept a CSV upload and return the async job id immediately."""
    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required",
        )
    if not file.filename.lower().endswith(".csv"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV uploads are supported",
        )

    content = await file.read()
    try:
        raw_payload = decode_upload(content)
    except UnicodeDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File encoding error: {exc}",
        ) from exc

    return _start_job(engine, raw_payload, file.filename)


@router.post(
    "/text",
    summary="Start an import job from raw delimited text",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobStatus,
)
async def enqueue_text_import(
    payload: BulkUploadRequest,
    engine: JobEngine = Depends(get_job_engine),
) -> JobStatus:
    return _start_job(engine, payload.content, "text payload")


@router.get(
    "/{job_id}/status",
    summary="Check import progress",
    response_model=JobStatus,
)
async def get_import_status(
    job_id: str,
    engine: JobEngine = Depends(get_job_engine),
) -> JobStatus:
    """Expose latest processing stats to power UI progress bars (polling)."""
    try:
        snapshot = engine.get_status(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc
    except SQLAlchemyError as exc:
        logger.error(
            f"Database error fetching job status {job_id}: {exc}", exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve job status",
        ) from exc

    return serialize_job(snapshot, engine.progress.fetch(job_id))


@router.delete(
    "/{job_id}",
    summary="Stop scheduling further chunks of an import",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def cancel_import(
    job_id: str,
    engine: JobEngine = Depends(get_job_engine),
) -> Response:
    try:
        cancelled = engine.cancel(job_id)
    except JobPersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    if not cancelled:
        raise HTTPException(status_code=404, detail="No running import with that id")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
