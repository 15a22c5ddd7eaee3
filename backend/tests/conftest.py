"""
Shared pytest fixtures.

Every test gets its own SQLite file under tmp_path so worker threads and
the test body can open independent connections. Redis is never contacted:
progress caching is disabled unless a test injects a mock client.
"""

from __future__ import annotations

import os

# Keep the module-level app in impact_tracker.main off the network
os.environ.setdefault("PROGRESS_CACHE_ENABLED", "false")
os.environ.setdefault("RESUME_JOBS_ON_STARTUP", "false")

import pytest

from impact_tracker.core.config import Settings
from impact_tracker.db.session import create_db_engine, create_session_factory, init_db
from impact_tracker.services.job_engine import JobEngine
from impact_tracker.services.job_store import JobStore
from impact_tracker.services.report_store import ReportStore

HEADER = "organizationId,period,people,events,funds"


def _join_rows(*rows: str) -> str:
    return "\n".join([HEADER, *rows])


@pytest.fixture()
def make_payload():
    """Build a payload: header line plus the given data rows."""
    return _join_rows


@pytest.fixture()
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'impact_tracker.db'}"


@pytest.fixture()
def db_engine(database_url):
    engine = create_db_engine(database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture()
def report_store(session_factory) -> ReportStore:
    return ReportStore(session_factory)


@pytest.fixture()
def job_store(session_factory) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture()
def manual_engine(report_store, job_store):
    """Engine whose chunks are driven by the test via run_batch()."""
    engine = JobEngine(report_store, job_store, start_workers=False)
    yield engine
    engine.shutdown()


@pytest.fixture()
def threaded_engine(report_store, job_store):
    """Engine with real worker threads and a short inter-chunk pause."""
    engine = JobEngine(report_store, job_store, batch_delay=0.01)
    yield engine
    engine.shutdown()


@pytest.fixture()
def settings(database_url) -> Settings:
    return Settings(
        database_url=database_url,
        progress_cache_enabled=False,
        import_batch_size=5,
        import_batch_delay_seconds=0.01,
        status_poll_interval_seconds=0.01,
        resume_jobs_on_startup=False,
    )
