"""Weekly aggregation tests."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from app.application.use_cases.weekly_report_use_cases import (
    GenerateWeeklyReportUseCase,
    trend_between,
)
from app.domain.models import AnalysisStatus, Utterance
from tests.fakes import InMemoryRecordingRepository, make_recording

USER = "parent-1"


def _at(day: int, hour: int = 10, month: int = 3) -> datetime:
    return datetime(2026, month, day, hour, tzinfo=timezone.utc)


def _completed(created_at: datetime, score: int, duration: float, **extra):
    return make_recording(
        user_id=USER,
        analysis_status=AnalysisStatus.COMPLETED,
        overall_score=score,
        duration_seconds=duration,
        created_at=created_at,
        **extra,
    )


@pytest.fixture
def repository() -> InMemoryRecordingRepository:
    highlight = _completed(
        _at(2),
        80,
        600,
        tag_counts={
            "labeled_praise": 3,
            "unlabeled_praise": 2,
            "praise": 5,
            "echo": 4,
            "narration": 5,
            "question": 2,
            "command": 1,
        },
        competency_analysis={
            "topMoment": "[LP] You built it  all by yourself!",
            "topMomentUtteranceNumber": 0,
            "feedback": "Wonderful labeled praise.",
            "childReaction": "Giggled and kept building.",
        },
        coaching_cards={"sections": [{"title": "Wins", "body": "Praise"}]},
        utterances=[
            Utterance(
                speaker="speaker_0",
                text="You built it all by yourself!",
                start_time=0,
                end_time=2,
                order=0,
                display_tag="Labeled Praise",
            )
        ],
    )
    return InMemoryRecordingRepository(
        highlight,
        _completed(_at(2, 18), 90, 300, tag_counts={"echo": 1}),
        _completed(_at(4), 70, 300),
        _completed(_at(9), 10, 300),  # next week
        _completed(_at(25, month=2), 60, 300),  # previous week
        make_recording(user_id=USER, created_at=_at(3), analysis_status=AnalysisStatus.FAILED, permanent_failure=True),
        make_recording(user_id="someone-else", created_at=_at(3), analysis_status=AnalysisStatus.COMPLETED, overall_score=100),
    )


@pytest.mark.asyncio
async def test_weekly_report_aggregates_completed_recordings(repository):
    report = await GenerateWeeklyReportUseCase(repository).execute(USER, date(2026, 3, 2))

    assert report.week_start == date(2026, 3, 2)
    assert report.week_end == date(2026, 3, 8)
    assert report.session_count == 3
    assert report.unique_days == 2
    assert report.massage_time_minutes == 20
    assert report.average_score == 80.0

    totals = report.totals
    assert (totals.praise, totals.echo, totals.narration) == (5, 5, 5)
    assert (totals.questions, totals.commands, totals.criticism) == (2, 1, 0)
    assert totals.total_deposits == 15

    assert len(report.top_moments) == 1
    moment = report.top_moments[0]
    assert moment.quote == "You built it all by yourself!"
    assert moment.tag == "Labeled Praise"
    assert moment.celebration == "Wonderful labeled praise."
    assert report.child_reactions == ["Giggled and kept building."]
    assert report.coaching_cards == [{"sections": [{"title": "Wins", "body": "Praise"}]}]

    assert report.trend is not None
    assert report.trend.previous_average_score == 60.0
    assert report.trend.direction == "up"


@pytest.mark.asyncio
async def test_empty_week_has_no_average_or_trend():
    report = await GenerateWeeklyReportUseCase(InMemoryRecordingRepository()).execute(USER, date(2026, 3, 2))

    assert report.session_count == 0
    assert report.average_score is None
    assert report.trend is None
    assert report.totals.total_deposits == 0


@pytest.mark.parametrize(
    "current, previous, direction",
    [
        (80.0, 75.0, "stable"),
        (60.0, 80.0, "down"),
        (88.0, 80.0, "stable"),
        (90.0, 80.0, "up"),
        (50.0, 0.0, "up"),
    ],
)
def test_trend_direction(current, previous, direction):
    assert trend_between(current, previous).direction == direction


def test_trend_requires_both_weeks():
    assert trend_between(None, 70.0) is None
    assert trend_between(70.0, None) is None
