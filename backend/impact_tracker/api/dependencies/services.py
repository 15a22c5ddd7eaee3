"""Dependencies resolving the per-process services built at startup."""

from fastapi import Request

from impact_tracker.core.config import Settings
from impact_tracker.services.job_engine import JobEngine
from impact_tracker.services.report_store import ReportStore


def get_job_engine(request: Request) -> JobEngine:
    return request.app.state.job_engine


def get_report_store(request: Request) -> ReportStore:
    return request.app.state.report_store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
