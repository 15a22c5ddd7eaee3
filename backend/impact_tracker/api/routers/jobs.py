"""Async job tracking endpoints (listing, polling, SSE streaming)."""
from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from impact_tracker.api.dependencies.services import get_app_settings, get_job_engine
from impact_tracker.api.routers.job_helpers import serialize_job
from impact_tracker.api.schemas.job import JobStatus
from impact_tracker.core.config import Settings
from impact_tracker.core.errors import NotFoundError
from impact_tracker.services.job_engine import JobEngine
from impact_tracker.services.job_store import JobState

router = APIRouter()

# Stop streaming a job whose counters have not moved for this many polls
MAX_IDLE_POLLS = 300


@router.get(
    "/",
    summary="List import jobs",
    response_model=list[JobStatus],
)
async def list_jobs(
    limit: int = Query(50, ge=1, le=500, description="Maximum number of jobs to return"),
    status: JobState | None = Query(None, description="Filter by status"),
    engine: JobEngine = Depends(get_job_engine),
) -> list[JobStatus]:
    """Return import jobs in reverse chronological order (newest first)."""
    return [serialize_job(snapshot) for snapshot in engine.list_jobs(limit=limit, status=status)]


@router.get(
    "/{job_id}",
    summary="Fetch job metadata and latest progress",
    response_model=JobStatus,
)
async def get_job(
    job_id: str,
    engine: JobEngine = Depends(get_job_engine),
) -> JobStatus:
    """Expose job state for polling dashboards."""
    try:
        snapshot = engine.get_status(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc
    return serialize_job(snapshot, engine.progress.fetch(job_id))


@router.get(
    "/{job_id}/stream",
    summary="Server-Sent Events stream for real-time progress",
)
async def stream_job_progress(
    job_id: str,
    engine: JobEngine = Depends(get_job_engine),
    settings: Settings = Depends(get_app_settings),
) -> StreamingResponse:
    """Stream job progress updates via Server-Sent Events (SSE).

    Each ``data:`` event carries the JSON job status. The stream closes with
    an ``event: close`` once the job completes, fails or is cancelled.
    """
    try:
        engine.get_status(job_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc

    interval = settings.status_poll_interval_seconds

    async def event_generator() -> AsyncGenerator[str, None]:
        last_processed = -1
        idle_polls = 0
        while True:
            try:
                snapshot = engine.get_status(job_id)
            except NotFoundError:
                yield 'event: error\ndata: {"error": "Job not found"}\n\n'
                break

            if snapshot.processed_rows != last_processed:
                last_processed = snapshot.processed_rows
                idle_polls = 0
            else:
                idle_polls += 1

            job_status = serialize_job(snapshot, engine.progress.fetch(job_id))
            yield f"data: {job_status.model_dump_json(by_alias=True)}\n\n"

            if snapshot.is_terminal or snapshot.is_cancelled:
                yield "event: close\ndata: {}\n\n"
                break
            if idle_polls > MAX_IDLE_POLLS:
                yield "event: timeout\ndata: {}\n\n"
                break

            await asyncio.sleep(interval)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
