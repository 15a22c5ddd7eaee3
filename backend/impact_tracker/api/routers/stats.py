"""Read-only dashboard aggregates."""

from fastapi import APIRouter, Depends, Path

from impact_tracker.api.dependencies.services import get_report_store
from impact_tracker.api.schemas.report import PeriodSummaryRead
from impact_tracker.services.report_store import ReportStore
from impact_tracker.utils.csv_validator import PERIOD_PATTERN

router = APIRouter()


@router.get(
    "/{period}",
    summary="Totals across all reports for one period",
    response_model=PeriodSummaryRead,
)
async def period_summary(
    period: str = Path(..., pattern=PERIOD_PATTERN.pattern, description="YYYY-MM"),
    store: ReportStore = Depends(get_report_store),
) -> PeriodSummaryRead:
    return PeriodSummaryRead.model_validate(store.query_aggregate(period))
