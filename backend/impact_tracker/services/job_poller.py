"""Client-side polling of job status until a terminal state."""

from __future__ import annotations

import logging
import time
from typing import Callable

from impact_tracker.services.job_store import JobSnapshot

logger = logging.getLogger(__name__)


class JobPollTimeout(TimeoutError):
    """Job did not reach a terminal state within the allotted time."""

    def __init__(self, job_id: str, last: JobSnapshot):
        self.job_id = job_id
        self.last = last
        super().__init__(
            f"Job {job_id} still {last.status.value} after polling "
            f"({last.processed_rows}/{last.total_rows} rows)"
        )


def poll_job(
    get_status: Callable[[str], JobSnapshot],
    job_id: str,
    *,
    interval: float = 1.0,
    timeout: float | None = None,
    on_update: Callable[[JobSnapshot], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> JobSnapshot:
    """Call ``get_status`` every ``interval`` seconds until the job is terminal
    or cancelled.

    NotFoundError from ``get_status`` is not retried: job creation is
    synchronous, so a missing job after ``create_job`` returned is a bug.
    """
    deadline = clock() + timeout if timeout is not None else None
    while True:
        snapshot = get_status(job_id)
        if on_update is not None:
            on_update(snapshot)
        if snapshot.is_terminal or snapshot.is_cancelled:
            return snapshot
        if deadline is not None and clock() >= deadline:
            raise JobPollTimeout(job_id, snapshot)
        sleep(interval)
