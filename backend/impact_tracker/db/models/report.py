"""SQLAlchemy model for committed impact reports."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.types import DateTime

from impact_tracker.db.base import Base


class Report(Base):
    __tablename__ = "reports"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id = Column(String(128), nullable=False, index=True)
    period = Column(String(7), nullable=False, index=True)
    people_helped = Column(Integer, nullable=False, default=0)
    events_conducted = Column(Integer, nullable=False, default=0)
    funds_utilized = Column(Numeric(14, 2), nullable=False, default=0)
    submitted_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "period", name="uq_reports_organization_period"
        ),
    )
