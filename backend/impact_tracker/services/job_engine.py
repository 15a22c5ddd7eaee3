"""Job engine: accepts bulk payloads and drives them through chunked processing.

Each job gets one background worker thread (see ``workers.import_reports``)
that calls :meth:`JobEngine.run_batch` with a pause between chunks. A chunk
runs to completion without yielding and ends with exactly one write of the
job record, so pollers only ever observe chunk boundaries.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from impact_tracker.core.errors import (
    ConflictError,
    EmptyPayloadError,
    JobPersistenceError,
    NotFoundError,
)
from impact_tracker.services.csv_ingest import iter_row_chunks, split_payload
from impact_tracker.services.job_store import JobSnapshot, JobState, JobStore
from impact_tracker.services.progress_tracker import ProgressTracker
from impact_tracker.services.report_store import ReportStore
from impact_tracker.utils.csv_validator import ValidationError, parse_row
from impact_tracker.workers.import_reports import run_import_job

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
BATCH_DELAY_SECONDS = 1.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _ActiveRun:
    snapshot: JobSnapshot
    chunks: Iterator[list[tuple[int, str]]]
    stop_event: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None


class JobEngine:
    def __init__(
        self,
        report_store: ReportStore,
        job_store: JobStore,
        progress: ProgressTracker | None = None,
        *,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY_SECONDS,
        start_workers: bool = True,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._reports = report_store
        self._jobs = job_store
        self._progress = progress or ProgressTracker()
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._start_workers = start_workers
        self._runs: dict[str, _ActiveRun] = {}
        self._lock = threading.Lock()

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def batch_delay(self) -> float:
        return self._batch_delay

    @property
    def progress(self) -> ProgressTracker:
        return self._progress

    # -- public operations -------------------------------------------------

    def create_job(self, raw_payload: str) -> str:
        """Persist a pending job for the payload and start processing it.

        Returns the job id before any row has been looked at. A payload with
        no data rows is rejected with EmptyPayloadError.
        """
        _, rows = split_payload(raw_payload)
        if not rows:
            raise EmptyPayloadError()

        snapshot = self._jobs.create(total_rows=len(rows), payload=raw_payload)
        logger.info(f"Created import job {snapshot.id} with {snapshot.total_rows} rows")
        self._progress.publish(snapshot, message="Queued")
        self._register(snapshot, rows)
        return snapshot.id

    def get_status(self, job_id: str) -> JobSnapshot:
        """Most recently persisted snapshot; never waits on a running chunk."""
        snapshot = self._jobs.get(job_id)
        if snapshot is None:
            raise NotFoundError(job_id)
        return snapshot

    def list_jobs(self, limit: int = 50, status: JobState | None = None) -> list[JobSnapshot]:
        return self._jobs.list_jobs(limit=limit, status=status)

    def is_active(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._runs

    def cancel(self, job_id: str) -> bool:
        """Stop scheduling chunks for a job; its counters stay as last persisted.

        The cancellation is stored on the job record so a restarted engine
        does not resume it.
        """
        with self._lock:
            run = self._runs.get(job_id)
        if run is None:
            return False
        run.stop_event.set()
        try:
            snapshot = self._jobs.mark_cancelled(job_id, _utcnow())
        except SQLAlchemyError as exc:
            logger.error(f"Database error cancelling job {job_id}: {exc}", exc_info=True)
            raise JobPersistenceError(f"Could not record cancellation of job {job_id}") from exc
        self._progress.publish(snapshot)
        logger.info(
            f"Cancelled import job {job_id} after "
            f"{run.snapshot.processed_rows}/{run.snapshot.total_rows} rows"
        )
        if run.thread is None:
            self.release(job_id)
        return True

    def resume_unfinished(self) -> list[str]:
        """Restart jobs a previous process left pending or processing."""
        resumed: list[str] = []
        for job_id in self._jobs.list_unfinished():
            if self.is_active(job_id):
                continue
            snapshot = self.get_status(job_id)
            _, rows = split_payload(self._jobs.load_payload(job_id) or "")
            if len(rows) != snapshot.total_rows:
                logger.error(
                    f"Stored payload for job {job_id} has {len(rows)} rows, "
                    f"expected {snapshot.total_rows}"
                )
                self._mark_failed(snapshot, "Stored payload is missing or unreadable")
                continue
            logger.info(
                f"Resuming import job {job_id} at row {snapshot.processed_rows + 1}"
            )
            self._register(snapshot, rows)
            resumed.append(job_id)
        return resumed

    def shutdown(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            runs = list(self._runs.values())
        for run in runs:
            run.stop_event.set()
        for run in runs:
            if run.thread is not None and run.thread is not threading.current_thread():
                run.thread.join(timeout)

    # -- scheduling --------------------------------------------------------

    def _register(self, snapshot: JobSnapshot, rows: list[str]) -> None:
        run = _ActiveRun(
            snapshot=snapshot.copy(),
            chunks=iter_row_chunks(rows, self._batch_size, start=snapshot.processed_rows),
        )
        with self._lock:
            self._runs[snapshot.id] = run
        if self._start_workers:
            run.thread = threading.Thread(
                target=run_import_job,
                args=(self, snapshot.id, run.stop_event),
                name=f"import-{snapshot.id[:8]}",
                daemon=True,
            )
            run.thread.start()

    def release(self, job_id: str) -> None:
        with self._lock:
            self._runs.pop(job_id, None)

    def run_batch(self, job_id: str) -> bool:
        """Process the next chunk of a job and persist it once.

        Returns True while more chunks remain.
        """
        with self._lock:
            run = self._runs.get(job_id)
        if run is None:
            # Unknown ids raise; finished or cancelled jobs have nothing left
            self.get_status(job_id)
            return False

        snapshot = run.snapshot
        if snapshot.status is JobState.PENDING:
            snapshot.status = JobState.PROCESSING
            snapshot.started_at = _utcnow()
        before_chunk = snapshot.copy()

        chunk = next(run.chunks, [])
        for row_number, line in chunk:
            self._process_row(snapshot, row_number, line)

        exhausted = snapshot.processed_rows >= snapshot.total_rows
        if exhausted:
            snapshot.status = JobState.COMPLETED
            snapshot.finished_at = _utcnow()
        elif not chunk:
            raise JobPersistenceError(
                f"Payload for job {job_id} ended after {snapshot.processed_rows} rows"
            )

        try:
            self._persist(snapshot)
        except JobPersistenceError:
            # A later failure write keeps the counters that were last stored
            run.snapshot = before_chunk
            raise
        self._progress.publish(snapshot)
        logger.info(
            f"Job {job_id}: processed {snapshot.processed_rows}/{snapshot.total_rows} "
            f"rows ({snapshot.successful_rows} ok, {snapshot.failed_rows} failed)"
        )

        if snapshot.is_terminal:
            logger.info(f"Import job {job_id} completed")
            self.release(job_id)
            return False
        return True

    def _process_row(self, snapshot: JobSnapshot, row_number: int, line: str) -> None:
        try:
            row = parse_row(line)
            if self._reports.exists(row.organization_id, row.period):
                raise ConflictError(row.organization_id, row.period)
            self._reports.commit(row)
        except ValidationError as exc:
            snapshot.record_failure(row_number, str(exc))
        except ConflictError as exc:
            snapshot.record_failure(
                row_number, f"Duplicate entry for {exc.organization_id} - {exc.period}"
            )
        else:
            snapshot.record_success()

    def _persist(self, snapshot: JobSnapshot) -> None:
        try:
            self._jobs.save(snapshot)
        except SQLAlchemyError as exc:
            logger.error(f"Database error saving job {snapshot.id}: {exc}", exc_info=True)
            raise JobPersistenceError(f"Could not persist job {snapshot.id}") from exc

    # -- failures ----------------------------------------------------------

    def fail_job(self, job_id: str, reason: str) -> None:
        """Move a job to the failed state (worker-level errors only)."""
        with self._lock:
            run = self._runs.get(job_id)
        snapshot = run.snapshot if run is not None else self._jobs.get(job_id)
        if snapshot is None:
            raise NotFoundError(job_id)
        self._mark_failed(snapshot, reason)
        self.release(job_id)

    def _mark_failed(self, snapshot: JobSnapshot, reason: str) -> None:
        if snapshot.is_terminal:
            return
        snapshot.status = JobState.FAILED
        snapshot.error_message = reason
        snapshot.finished_at = _utcnow()
        try:
            self._jobs.save(snapshot)
        except SQLAlchemyError as exc:
            logger.error(
                f"Could not record failure of job {snapshot.id}: {exc}", exc_info=True
            )
            return
        self._progress.publish(snapshot)
        logger.warning(f"Import job {snapshot.id} failed: {reason}")
