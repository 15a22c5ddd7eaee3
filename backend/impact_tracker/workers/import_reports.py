"""Background worker loop for one bulk report import."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from impact_tracker.services.job_engine import JobEngine

logger = logging.getLogger(__name__)


def run_import_job(engine: "JobEngine", job_id: str, stop_event: threading.Event) -> None:
    """Run chunks until the job is exhausted or cancelled.

    The pause before every chunk doubles as the cancellation point: setting
    ``stop_event`` wakes the wait and ends the loop between chunks.
    """
    logger.info(f"Import worker started for job {job_id}")
    try:
        while not stop_event.wait(engine.batch_delay):
            if not engine.run_batch(job_id):
                break
        else:
            logger.info(f"Import worker for job {job_id} stopped before completion")
    except Exception as exc:
        logger.error(f"Import job {job_id} aborted: {exc}", exc_info=True)
        engine.fail_job(job_id, str(exc))
    finally:
        engine.release(job_id)
        logger.info(f"Import worker finished for job {job_id}")
