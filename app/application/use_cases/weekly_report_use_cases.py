import re
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from app.application.interfaces import RecordingRepositoryInterface
from app.domain.models import Recording, TagCounts
from app.domain.reports import TopMomentSummary, WeeklyReport, WeeklyTotals, WeeklyTrend

_TAG_PATTERN = re.compile(r"\[[^\]]*\]")
_TREND_THRESHOLD = 10.0
MAX_TOP_MOMENTS = 3


def _week_bounds(week_start: date) -> tuple[datetime, datetime]:
    start = datetime.combine(week_start, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=7)


def _strip_tags(quote: str) -> str:
    return " ".join(_TAG_PATTERN.sub("", quote).split())


def _average(recordings: List[Recording]) -> Optional[float]:
    scores = [r.overall_score for r in recordings if r.overall_score is not None]
    if not scores:
        return None
    return round(sum(scores) / len(scores), 1)


def summarize_totals(recordings: List[Recording]) -> WeeklyTotals:
    """Sum the skill counters of every recording into weekly totals."""

    totals = WeeklyTotals()
    for recording in recordings:
        counts = TagCounts(**(recording.tag_counts or {}))
        totals.praise += counts.labeled_praise + counts.unlabeled_praise
        totals.echo += counts.echo
        totals.narration += counts.narration
        totals.questions += counts.question
        totals.commands += counts.command
        totals.criticism += counts.criticism
    totals.total_deposits = totals.praise + totals.echo + totals.narration
    return totals


def trend_between(current: Optional[float], previous: Optional[float]) -> Optional[WeeklyTrend]:
    """Compare weekly averages; moves beyond ten percent count as up/down."""

    if current is None or previous is None:
        return None
    if previous == 0:
        change = 100.0 if current > 0 else 0.0
    else:
        change = round((current - previous) / previous * 100, 1)
    if change > _TREND_THRESHOLD:
        direction = "up"
    elif change < -_TREND_THRESHOLD:
        direction = "down"
    else:
        direction = "stable"
    return WeeklyTrend(previous_average_score=previous, change_percent=change, direction=direction)


def _top_moment(recording: Recording) -> Optional[TopMomentSummary]:
    analysis = recording.competency_analysis or {}
    quote = analysis.get("topMoment")
    if not quote:
        return None

    tag = None
    index = analysis.get("topMomentUtteranceNumber")
    for utterance in recording.utterances:
        if utterance.order == index:
            tag = utterance.display_tag
            break

    return TopMomentSummary(
        recording_id=recording.id,
        quote=_strip_tags(str(quote)),
        tag=tag,
        celebration=analysis.get("feedback"),
    )


class GenerateWeeklyReportUseCase:
    """Roll a user's COMPLETED recordings for one week into a report"""

    def __init__(self, recording_repository: RecordingRepositoryInterface):
        self.recording_repository = recording_repository

    async def execute(self, user_id: str, week_start: date) -> WeeklyReport:
        start, end = _week_bounds(week_start)
        recordings = await self.recording_repository.list_completed(user_id, start, end)
        previous = await self.recording_repository.list_completed(
            user_id, start - timedelta(days=7), start
        )

        duration = sum(r.duration_seconds or 0 for r in recordings)
        days = {r.created_at.date() for r in recordings if r.created_at is not None}
        average = _average(recordings)

        moments = [m for m in (_top_moment(r) for r in recordings) if m is not None]
        cards = [r.coaching_cards for r in recordings if r.coaching_cards]
        reactions = [
            r.competency_analysis["childReaction"]
            for r in recordings
            if r.competency_analysis and r.competency_analysis.get("childReaction")
        ]

        return WeeklyReport(
            user_id=user_id,
            week_start=start.date(),
            week_end=(end - timedelta(days=1)).date(),
            session_count=len(recordings),
            unique_days=len(days),
            massage_time_minutes=round(duration / 60),
            average_score=average,
            totals=summarize_totals(recordings),
            top_moments=moments[:MAX_TOP_MOMENTS],
            coaching_cards=cards,
            child_reactions=reactions,
            trend=trend_between(average, _average(previous)),
        )
