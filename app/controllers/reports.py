"""Weekly report endpoints."""

from datetime import date

from fastapi import APIRouter, Query

from app.application.use_cases.weekly_report_use_cases import GenerateWeeklyReportUseCase
from app.controllers.dependencies import RepositoryDep
from app.views import WeeklyReportResponse

router = APIRouter(prefix="/reports", tags=["reports"])

_USER_ID_QUERY = Query(..., alias="userId", description="Owner of the recordings")
_WEEK_START_QUERY = Query(..., alias="weekStart", description="First day of the week (YYYY-MM-DD)")


@router.get("/weekly", response_model=WeeklyReportResponse)
async def get_weekly_report(
    repository: RepositoryDep,
    user_id: str = _USER_ID_QUERY,
    week_start: date = _WEEK_START_QUERY,
) -> WeeklyReportResponse:
    """Aggregate a user's completed recordings for the requested week."""

    report = await GenerateWeeklyReportUseCase(repository).execute(user_id, week_start)
    return WeeklyReportResponse(report=report, generated_for=week_start)
