"""Async job status payloads."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from impact_tracker.services.job_store import JobState


class JobStatus(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    type: str = Field("import_reports", description="Kind of background job")
    status: JobState = Field(..., description="pending|processing|completed|failed")
    progress: float = Field(0.0, description="0-1 range for UI progress bars")
    message: str | None = None
    total_rows: int = 0
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    errors: list[str] = Field(default_factory=list, description="Row-level failures in row order")
    error_message: str | None = Field(None, description="Job-level failure reason")
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    cancelled_at: datetime | None = Field(None, description="Set once no further chunks will run")


class BulkUploadRequest(BaseModel):
    """Raw delimited text: a header line followed by one report per line."""

    content: str = Field(..., description="organizationId,period,people,events,funds rows")
