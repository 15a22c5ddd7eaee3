"""FastAPI application bootstrap: services, routers and middleware."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from impact_tracker.api.routers import health, jobs, reports, stats, uploads
from impact_tracker.core.config import Settings, get_settings
from impact_tracker.db.session import create_db_engine, create_session_factory, init_db
from impact_tracker.services.job_engine import JobEngine
from impact_tracker.services.job_store import JobStore
from impact_tracker.services.progress_tracker import build_progress_tracker
from impact_tracker.services.report_store import ReportStore

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def build_lifespan(settings: Settings):
    """Construct the stores and job engine once per process."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db_engine = create_db_engine(settings.database_url)
        init_db(db_engine)
        session_factory = create_session_factory(db_engine)

        report_store = ReportStore(session_factory)
        job_engine = JobEngine(
            report_store,
            JobStore(session_factory),
            build_progress_tracker(settings),
            batch_size=settings.import_batch_size,
            batch_delay=settings.import_batch_delay_seconds,
        )
        if settings.resume_jobs_on_startup:
            resumed = job_engine.resume_unfinished()
            if resumed:
                logger.info(f"Resumed {len(resumed)} unfinished import job(s)")

        app.state.settings = settings
        app.state.db_engine = db_engine
        app.state.report_store = report_store
        app.state.job_engine = job_engine
        try:
            yield
        finally:
            job_engine.shutdown()
            db_engine.dispose()
            logger.info("Import workers stopped and database pool disposed")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Instantiate the FastAPI app and include top-level routers."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        lifespan=build_lifespan(settings),
    )

    logger.info(f"[CORS] Allowed origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(uploads.router, prefix="/api/uploads", tags=["uploads"])
    app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
    app.include_router(reports.router, prefix="/api/reports", tags=["reports"])
    app.include_router(stats.router, prefix="/api/stats", tags=["stats"])

    return app


app = create_app()
