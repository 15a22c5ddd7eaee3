"""Persistence for bulk import job records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from impact_tracker.core.errors import NotFoundError
from impact_tracker.db.models.import_job import ImportJob

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


@dataclass
class JobSnapshot:
    """Progress state of one import, as persisted after each chunk."""

    id: str
    status: JobState
    total_rows: int
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    errors: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error_message: str | None = None
    cancelled_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def progress(self) -> float:
        if not self.total_rows:
            return 1.0 if self.is_terminal else 0.0
        return self.processed_rows / self.total_rows

    def record_success(self) -> None:
        self.successful_rows += 1
        self.processed_rows += 1

    def record_failure(self, row_number: int, reason: str) -> None:
        self.failed_rows += 1
        self.errors.append(f"Row {row_number}: {reason}")
        self.processed_rows += 1

    def copy(self) -> "JobSnapshot":
        return replace(self, errors=list(self.errors))


def _to_snapshot(job: ImportJob) -> JobSnapshot:
    return JobSnapshot(
        id=job.id,
        status=JobState(job.status),
        total_rows=job.total_rows or 0,
        processed_rows=job.processed_rows or 0,
        successful_rows=job.successful_rows or 0,
        failed_rows=job.failed_rows or 0,
        errors=list(job.errors or []),
        created_at=job.created_at,
        started_at=job.started_at,
        finished_at=job.finished_at,
        error_message=job.error_message,
        cancelled_at=job.cancelled_at,
    )


class JobStore:
    """Reads and writes ImportJob rows; every write is a single transaction."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, total_rows: int, payload: str) -> JobSnapshot:
        with self._session_factory() as session, session.begin():
            job = ImportJob(
                status=JobState.PENDING.value,
                payload=payload,
                total_rows=total_rows,
                processed_rows=0,
                successful_rows=0,
                failed_rows=0,
                errors=[],
                created_at=datetime.now(timezone.utc),
            )
            session.add(job)
            session.flush()
            return _to_snapshot(job)

    def get(self, job_id: str) -> JobSnapshot | None:
        with self._session_factory() as session:
            job = session.get(ImportJob, job_id)
            return _to_snapshot(job) if job else None

    def load_payload(self, job_id: str) -> str | None:
        with self._session_factory() as session:
            job = session.get(ImportJob, job_id)
            if job is None:
                raise NotFoundError(job_id)
            return job.payload

    def save(self, snapshot: JobSnapshot) -> None:
        """Write the whole snapshot at once so readers never see half an update.

        The cancellation marker is left alone; only mark_cancelled writes it.
        """
        with self._session_factory() as session, session.begin():
            job = session.get(ImportJob, snapshot.id)
            if job is None:
                raise NotFoundError(snapshot.id)
            job.status = snapshot.status.value
            job.total_rows = snapshot.total_rows
            job.processed_rows = snapshot.processed_rows
            job.successful_rows = snapshot.successful_rows
            job.failed_rows = snapshot.failed_rows
            job.errors = list(snapshot.errors)
            job.started_at = snapshot.started_at
            job.finished_at = snapshot.finished_at
            job.error_message = snapshot.error_message

    def mark_cancelled(self, job_id: str, cancelled_at: datetime) -> JobSnapshot:
        with self._session_factory() as session, session.begin():
            job = session.get(ImportJob, job_id)
            if job is None:
                raise NotFoundError(job_id)
            job.cancelled_at = cancelled_at
            session.flush()
            return _to_snapshot(job)

    def list_jobs(self, limit: int = 50, status: JobState | None = None) -> list[JobSnapshot]:
        """Newest first, optionally filtered by status."""
        query = select(ImportJob)
        if status is not None:
            query = query.where(ImportJob.status == status.value)
        query = query.order_by(ImportJob.created_at.desc()).limit(limit)
        with self._session_factory() as session:
            return [_to_snapshot(job) for job in session.scalars(query)]

    def list_unfinished(self) -> list[str]:
        """Ids of jobs a previous process left pending or processing, oldest first.

        Cancelled jobs are skipped even though their status never changed.
        """
        query = (
            select(ImportJob.id)
            .where(
                ImportJob.status.in_(
                    [JobState.PENDING.value, JobState.PROCESSING.value]
                ),
                ImportJob.cancelled_at.is_(None),
            )
            .order_by(ImportJob.created_at)
        )
        with self._session_factory() as session:
            return list(session.scalars(query))
