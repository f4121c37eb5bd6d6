"""Pydantic schemas for report endpoints."""

from datetime import date

from pydantic import BaseModel, Field

from app.domain.reports import WeeklyReport


class WeeklyReportResponse(BaseModel):
    """Response for /reports/weekly."""

    report: WeeklyReport = Field(..., description="Aggregated weekly report")
    generated_for: date = Field(..., description="Requested week start")
