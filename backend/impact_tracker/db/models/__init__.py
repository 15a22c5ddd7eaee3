"""Database models package."""
from impact_tracker.db.models.import_job import ImportJob
from impact_tracker.db.models.report import Report

__all__ = ["ImportJob", "Report"]
