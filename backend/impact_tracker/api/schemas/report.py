"""Pydantic models describing report payloads."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from impact_tracker.utils.csv_validator import (
    MAX_COUNT,
    MAX_ORGANIZATION_ID_LENGTH,
    PERIOD_PATTERN,
    ReportRow,
)

CAMEL_CONFIG = ConfigDict(
    alias_generator=to_camel, populate_by_name=True, from_attributes=True
)


class ReportBase(BaseModel):
    model_config = CAMEL_CONFIG

    organization_id: str = Field(..., min_length=1, max_length=MAX_ORGANIZATION_ID_LENGTH)
    period: str = Field(..., pattern=PERIOD_PATTERN.pattern, description="YYYY-MM")
    people_helped: int = Field(..., ge=0, le=MAX_COUNT)
    events_conducted: int = Field(..., ge=0, le=MAX_COUNT)
    funds_utilized: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)


class ReportCreate(ReportBase):
    """Schema for single form submissions."""

    @field_validator("organization_id", "period", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    def to_row(self) -> ReportRow:
        return ReportRow(
            organization_id=self.organization_id,
            period=self.period,
            people_helped=self.people_helped,
            events_conducted=self.events_conducted,
            funds_utilized=self.funds_utilized,
        )


class ReportRead(BaseModel):
    model_config = CAMEL_CONFIG

    id: str
    organization_id: str
    period: str
    people_helped: int
    events_conducted: int
    funds_utilized: Decimal
    submitted_at: datetime


class PeriodSummaryRead(BaseModel):
    model_config = CAMEL_CONFIG

    period: str
    organization_count: int
    total_people_helped: int
    total_events: int
    total_funds: Decimal
    report_count: int
