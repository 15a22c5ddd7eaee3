"""Shared helpers for shaping job responses."""
from __future__ import annotations

from impact_tracker.api.schemas.job import JobStatus
from impact_tracker.services.job_store import JobSnapshot
from impact_tracker.services.progress_tracker import describe


def serialize_job(snapshot: JobSnapshot, progress_payload: dict | None = None) -> JobStatus:
    """Combine the persisted snapshot with the cached progress message."""
    progress_payload = progress_payload or {}

    # Counters and status always come from the persisted record
    message = progress_payload.get("message") or describe(snapshot)
    if snapshot.is_terminal or snapshot.is_cancelled:
        message = describe(snapshot)

    return JobStatus(
        id=snapshot.id,
        status=snapshot.status,
        progress=snapshot.progress,
        message=message,
        total_rows=snapshot.total_rows,
        processed_rows=snapshot.processed_rows,
        successful_rows=snapshot.successful_rows,
        failed_rows=snapshot.failed_rows,
        errors=list(snapshot.errors),
        error_message=snapshot.error_message,
        created_at=snapshot.created_at,
        started_at=snapshot.started_at,
        finished_at=snapshot.finished_at,
        cancelled_at=snapshot.cancelled_at,
    )
