"""Single report submission and per-period listing."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from impact_tracker.api.dependencies.services import get_report_store
from impact_tracker.api.schemas.report import ReportCreate, ReportRead
from impact_tracker.core.errors import ConflictError
from impact_tracker.services.report_store import ReportStore, submit_single
from impact_tracker.utils.csv_validator import PERIOD_PATTERN

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/",
    summary="Submit one monthly report",
    status_code=status.HTTP_201_CREATED,
    response_model=ReportRead,
)
async def create_report(
    payload: ReportCreate,
    store: ReportStore = Depends(get_report_store),
) -> ReportRead:
    """Persist a report from a form submission.

    Only one report per organization and period is accepted; a second
    submission for the same pair is rejected with 409.
    """
    try:
        report = submit_single(store, payload.to_row())
    except ConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.error(f"Database error creating report: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save report",
        ) from exc
    return ReportRead.model_validate(report)


@router.get(
    "/",
    summary="List committed reports for a period",
    response_model=list[ReportRead],
)
async def list_reports(
    period: str = Query(..., pattern=PERIOD_PATTERN.pattern, description="YYYY-MM"),
    store: ReportStore = Depends(get_report_store),
) -> list[ReportRead]:
    return [ReportRead.model_validate(report) for report in store.aggregate(period)]
