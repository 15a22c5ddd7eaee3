"""Domain errors shared by the report store, the job engine and the API."""

from __future__ import annotations


class ImpactTrackerError(Exception):
    """Base class for errors raised by the ingestion services."""


class ConflictError(ImpactTrackerError):
    """A report already exists for the (organization, period) pair."""

    def __init__(self, organization_id: str, period: str):
        self.organization_id = organization_id
        self.period = period
        super().__init__(
            f"Report for organization {organization_id} in {period} already exists."
        )


class NotFoundError(ImpactTrackerError):
    """Unknown import job id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class EmptyPayloadError(ImpactTrackerError):
    """Bulk payload carried a header (or nothing) but no data rows."""

    def __init__(self, message: str = "Payload contains no data rows"):
        super().__init__(message)


class JobPersistenceError(ImpactTrackerError):
    """The job record could not be written back to storage."""
