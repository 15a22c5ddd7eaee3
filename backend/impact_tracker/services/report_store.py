"""Durable report storage with the (organization, period) uniqueness rule."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import ContextManager

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from impact_tracker.core.errors import ConflictError
from impact_tracker.db.models.report import Report
from impact_tracker.utils.csv_validator import ReportRow

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PeriodSummary:
    """Dashboard totals for one period."""

    period: str
    organization_count: int
    total_people_helped: int
    total_events: int
    total_funds: Decimal
    report_count: int


class ReportStore:
    """Create-only report repository shared by the single and bulk paths.

    ``commit`` runs the existence check and the insert under ``guard`` so two
    writers racing on the same key cannot both succeed. The guard spans the
    whole store; the unique constraint on the table backs it up for writers
    in other processes.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        guard: ContextManager | None = None,
    ):
        self._session_factory = session_factory
        self._guard = guard if guard is not None else threading.Lock()

    @staticmethod
    def _find(session: Session, organization_id: str, period: str) -> Report | None:
        return session.scalars(
            select(Report).where(
                Report.organization_id == organization_id,
                Report.period == period,
            )
        ).first()

    def exists(self, organization_id: str, period: str) -> bool:
        with self._session_factory() as session:
            return self._find(session, organization_id, period) is not None

    def commit(self, row: ReportRow) -> Report:
        """Insert a new report or raise ConflictError without mutating anything."""
        with self._guard:
            with self._session_factory() as session:
                if self._find(session, row.organization_id, row.period) is not None:
                    raise ConflictError(row.organization_id, row.period)

                report = Report(
                    organization_id=row.organization_id,
                    period=row.period,
                    people_helped=row.people_helped,
                    events_conducted=row.events_conducted,
                    funds_utilized=row.funds_utilized.quantize(CENTS, rounding=ROUND_HALF_UP),
                )
                session.add(report)
                try:
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    logger.warning(
                        f"Unique index rejected report {row.organization_id}/{row.period}"
                    )
                    raise ConflictError(row.organization_id, row.period) from exc
                return report

    def aggregate(self, period: str) -> list[Report]:
        """Committed reports for one period, oldest submission first."""
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(Report)
                    .where(Report.period == period)
                    .order_by(Report.submitted_at, Report.id)
                )
            )

    def query_aggregate(self, period: str) -> PeriodSummary:
        reports = self.aggregate(period)
        return PeriodSummary(
            period=period,
            organization_count=len({r.organization_id for r in reports}),
            total_people_helped=sum(r.people_helped for r in reports),
            total_events=sum(r.events_conducted for r in reports),
            total_funds=sum((Decimal(r.funds_utilized) for r in reports), Decimal("0")),
            report_count=len(reports),
        )


def submit_single(store: ReportStore, row: ReportRow) -> Report:
    """Synchronous submission path; ConflictError reaches the caller."""
    report = store.commit(row)
    logger.info(f"Accepted report {report.id} for {row.organization_id} in {row.period}")
    return report
