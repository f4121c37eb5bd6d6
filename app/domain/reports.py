from datetime import date
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WeeklyTotals(BaseModel):
    """Skill totals summed across a week's completed recordings."""

    praise: int = 0
    echo: int = 0
    narration: int = 0
    questions: int = 0
    commands: int = 0
    criticism: int = 0
    total_deposits: int = 0


class TopMomentSummary(BaseModel):
    recording_id: UUID
    quote: str
    tag: Optional[str] = None
    celebration: Optional[str] = None


class WeeklyTrend(BaseModel):
    previous_average_score: Optional[float] = None
    change_percent: Optional[float] = None
    direction: str = "stable"


class WeeklyReport(BaseModel):
    """Longitudinal roll-up of one user's week of play sessions."""

    user_id: str
    week_start: date
    week_end: date
    session_count: int = 0
    unique_days: int = 0
    massage_time_minutes: int = 0
    average_score: Optional[float] = None
    totals: WeeklyTotals = Field(default_factory=WeeklyTotals)
    top_moments: list[TopMomentSummary] = Field(default_factory=list)
    coaching_cards: list[dict[str, Any]] = Field(default_factory=list)
    child_reactions: list[str] = Field(default_factory=list)
    trend: Optional[WeeklyTrend] = None
