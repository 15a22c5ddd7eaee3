#!/usr/bin/env python3
"""Import a CSV of monthly reports in-process and print progress until it finishes."""

import argparse
import sys
from pathlib import Path

from impact_tracker.core.config import get_settings
from impact_tracker.core.errors import EmptyPayloadError
from impact_tracker.db.session import create_db_engine, create_session_factory, init_db
from impact_tracker.services.csv_ingest import decode_upload
from impact_tracker.services.job_engine import JobEngine
from impact_tracker.services.job_poller import JobPollTimeout, poll_job
from impact_tracker.services.job_store import JobSnapshot, JobStore
from impact_tracker.services.progress_tracker import build_progress_tracker
from impact_tracker.services.report_store import ReportStore


def _print_progress(snapshot: JobSnapshot) -> None:
    print(
        f"[{snapshot.status.value}] {snapshot.processed_rows}/{snapshot.total_rows} rows "
        f"(ok={snapshot.successful_rows}, failed={snapshot.failed_rows})"
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("csv_file", type=Path, help="CSV with header: organizationId,period,people,events,funds")
    parser.add_argument("--timeout", type=float, default=None, help="Give up after N seconds")
    args = parser.parse_args(argv)

    settings = get_settings()
    db_engine = create_db_engine(settings.database_url)
    init_db(db_engine)
    session_factory = create_session_factory(db_engine)
    engine = JobEngine(
        ReportStore(session_factory),
        JobStore(session_factory),
        build_progress_tracker(settings),
        batch_size=settings.import_batch_size,
        batch_delay=settings.import_batch_delay_seconds,
    )

    try:
        job_id = engine.create_job(decode_upload(args.csv_file.read_bytes()))
    except EmptyPayloadError as exc:
        print(f"Nothing to import: {exc}", file=sys.stderr)
        db_engine.dispose()
        return 1
    print(f"Started job {job_id}")

    try:
        final = poll_job(
            engine.get_status,
            job_id,
            interval=settings.status_poll_interval_seconds,
            timeout=args.timeout,
            on_update=_print_progress,
        )
    except JobPollTimeout as exc:
        print(str(exc), file=sys.stderr)
        return 2
    finally:
        engine.shutdown()
        db_engine.dispose()

    for error in final.errors:
        print(f"  {error}")
    if final.error_message:
        print(f"Job failed: {final.error_message}", file=sys.stderr)
        return 1
    if not final.is_terminal:
        print(f"Job {job_id} was cancelled", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
