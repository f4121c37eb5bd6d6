"""Retry orchestration and end-to-end attempt tests with in-memory ports."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.domain.errors import RecordingNotFoundError, TranscriptionError
from app.domain.models import AnalysisResult, AnalysisStatus, TagCounts
from app.pipelines.recording.feedback import FeedbackSynthesizer
from app.pipelines.recording.processor import RecordingPipeline
from app.pipelines.recording.retry import (
    FAILURE_BODY,
    MilestoneCheck,
    PostSuccessHook,
    RecordingProcessor,
)
from app.pipelines.recording.transcription import TranscriptionOrchestrator
from app.pipelines.recording.types import FeedbackRevision, ProviderTranscript
from tests.fakes import (
    CodeEveryAdult,
    FakeAudioStore,
    FakeNarrativeGenerator,
    FakeTranscriber,
    InMemoryRecordingRepository,
    RecordingAlerter,
    RecordingNotifier,
    StaticRoleClassifier,
    make_recording,
    word,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class ScriptedPipeline:
    """Raise or return the queued outcomes, one per attempt."""

    def __init__(self, *outcomes):
        self._outcomes = list(outcomes)
        self.runs = 0

    async def run(self, recording):
        self.runs += 1
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _result() -> AnalysisResult:
    return AnalysisResult(tag_counts=TagCounts(), overall_score=60)


def _processor(repository, pipeline, *, notifier=None, alerter=None, hooks=(), sleeps=None):
    recorded = sleeps if sleeps is not None else []

    async def fake_sleep(seconds: float) -> None:
        recorded.append(seconds)

    return RecordingProcessor(
        pipeline=pipeline,
        repository=repository,
        notifier=notifier or RecordingNotifier(),
        alerter=alerter or RecordingAlerter(),
        audio_store=FakeAudioStore(),
        sleep=fake_sleep,
        clock=lambda: NOW,
        post_success_hooks=hooks,
    )


@pytest.mark.asyncio
async def test_three_failures_mark_recording_permanently_failed():
    recording = make_recording()
    repository = InMemoryRecordingRepository(recording)
    notifier, alerter, sleeps = RecordingNotifier(), RecordingAlerter(), []
    pipeline = ScriptedPipeline(
        TranscriptionError("first"),
        TranscriptionError("second"),
        TranscriptionError("third"),
    )

    state = await _processor(
        repository, pipeline, notifier=notifier, alerter=alerter, sleeps=sleeps
    ).process(recording.id)

    stored = repository.recordings[recording.id]
    assert state.status == AnalysisStatus.FAILED
    assert stored.analysis_status == AnalysisStatus.FAILED
    assert stored.permanent_failure is True
    assert stored.retry_count == 2
    assert "third" in stored.analysis_error
    assert stored.analysis_failed_at == NOW
    assert pipeline.runs == 3
    assert sleeps == [5.0, 15.0]
    assert [a["retry_count"] for a in repository.attempts] == [0, 1, 2]
    assert [a["retried_at"] for a in repository.attempts] == [None, NOW, NOW]

    assert [event.type for event in notifier.events] == ["report_failed"]
    assert notifier.events[0].body == FAILURE_BODY
    assert "third" not in notifier.events[0].body

    report = alerter.reports[0]
    assert report.retry_count == 2
    assert report.max_attempts == 3
    assert report.audio_url == "https://audio.example/x"
    assert "third" in report.error


@pytest.mark.asyncio
async def test_failure_then_success_completes_with_one_retry():
    recording = make_recording()
    repository = InMemoryRecordingRepository(recording)
    notifier, sleeps = RecordingNotifier(), []
    pipeline = ScriptedPipeline(RuntimeError("throttled"), _result())

    state = await _processor(repository, pipeline, notifier=notifier, sleeps=sleeps).process(recording.id)

    stored = repository.recordings[recording.id]
    assert state.status == AnalysisStatus.COMPLETED
    assert stored.analysis_status == AnalysisStatus.COMPLETED
    assert stored.retry_count == 1
    assert stored.permanent_failure is False
    assert sleeps == [5.0]
    assert [event.type for event in notifier.events] == ["report_ready"]


@pytest.mark.asyncio
async def test_terminal_recordings_are_skipped():
    recording = make_recording(analysis_status=AnalysisStatus.COMPLETED)
    repository = InMemoryRecordingRepository(recording)
    pipeline = ScriptedPipeline()

    state = await _processor(repository, pipeline).process(recording.id)

    assert state.status == AnalysisStatus.COMPLETED
    assert pipeline.runs == 0
    assert repository.attempts == []


@pytest.mark.asyncio
async def test_unknown_recording_raises():
    repository = InMemoryRecordingRepository()

    with pytest.raises(RecordingNotFoundError):
        await _processor(repository, ScriptedPipeline()).process(uuid4())


@pytest.mark.asyncio
async def test_notification_failure_does_not_change_outcome():
    recording = make_recording()
    repository = InMemoryRecordingRepository(recording)
    notifier = RecordingNotifier(error=ConnectionError("broker down"))

    state = await _processor(repository, ScriptedPipeline(_result()), notifier=notifier).process(recording.id)

    assert state.status == AnalysisStatus.COMPLETED
    assert repository.recordings[recording.id].analysis_status == AnalysisStatus.COMPLETED


@pytest.mark.asyncio
async def test_alert_failure_does_not_change_outcome():
    recording = make_recording()
    repository = InMemoryRecordingRepository(recording)
    alerter = RecordingAlerter(error=ConnectionError("webhook down"))
    pipeline = ScriptedPipeline(*(RuntimeError("boom") for _ in range(3)))

    state = await _processor(repository, pipeline, alerter=alerter).process(recording.id)

    assert state.status == AnalysisStatus.FAILED
    assert repository.recordings[recording.id].permanent_failure is True


@pytest.mark.asyncio
async def test_milestone_hook_fires_at_threshold_and_failures_are_swallowed():
    user_id = "parent-9"
    previous = [
        make_recording(user_id=user_id, analysis_status=AnalysisStatus.COMPLETED) for _ in range(4)
    ]
    recording = make_recording(user_id=user_id)
    repository = InMemoryRecordingRepository(recording, *previous)
    notifier = RecordingNotifier()

    class ExplodingHook(PostSuccessHook):
        name = "exploding"

        async def run(self, recording):
            raise RuntimeError("hook failed")

    hooks = (ExplodingHook(), MilestoneCheck(repository, notifier, threshold=5))
    state = await _processor(
        repository, ScriptedPipeline(_result()), notifier=notifier, hooks=hooks
    ).process(recording.id)

    assert state.status == AnalysisStatus.COMPLETED
    assert [event.type for event in notifier.events] == ["report_ready", "milestones_unlocked"]


@pytest.mark.asyncio
async def test_concurrent_triggers_run_the_pipeline_once():
    recording = make_recording()
    repository = InMemoryRecordingRepository(recording)
    pipeline = ScriptedPipeline(_result(), _result())
    processor = _processor(repository, pipeline)

    first, second = await asyncio.gather(processor.process(recording.id), processor.process(recording.id))

    assert pipeline.runs == 1
    assert {first.status, second.status} == {AnalysisStatus.COMPLETED}


@pytest.mark.asyncio
async def test_full_pipeline_attempt_persists_analysis():
    recording = make_recording(duration_seconds=20.0, created_at=NOW - timedelta(hours=1))
    repository = InMemoryRecordingRepository(recording)
    provider = FakeTranscriber(
        "elevenlabs-v1",
        ProviderTranscript(
            service="elevenlabs-v1",
            words=(
                word("You", 0.0, 0.4, "speaker_0"),
                word("built", 0.4, 0.8, "speaker_0"),
                word("that!", 0.8, 1.2, "speaker_0"),
                word("Yeah!", 1.5, 2.0, "speaker_1"),
                word("Stack", 8.0, 8.5, "speaker_0"),
                word("it.", 8.5, 9.0, "speaker_0"),
            ),
        ),
    )
    generator = FakeNarrativeGenerator(
        revise_feedback=[FeedbackRevision(index=2, feedback="Fill quiet time with narration")]
    )
    pipeline = RecordingPipeline(
        repository=repository,
        audio_store=FakeAudioStore(),
        transcription=TranscriptionOrchestrator(diarization=provider, text=provider, mode="v1"),
        role_classifier=StaticRoleClassifier(),
        coder=CodeEveryAdult(["LP", "DC"]),
        synthesizer=FeedbackSynthesizer(generator),
        keyterms=("Maya",),
    )

    state = await _processor(repository, pipeline).process(recording.id)

    stored = repository.recordings[recording.id]
    assert state.status == AnalysisStatus.COMPLETED
    assert stored.transcription_service == "elevenlabs-v1"
    assert stored.tag_counts["praise"] == 1
    assert stored.tag_counts["command"] == 1
    assert stored.overall_score is not None
    assert stored.coaching_summary == "You did great today."

    utterances = repository.utterances[recording.id]
    assert [u.order for u in utterances] == list(range(len(utterances)))
    silent = [u for u in utterances if u.is_silent]
    assert [(u.start_time, u.end_time) for u in silent] == [(2.0, 8.0), (9.0, 20.0)]
    assert utterances[2].revised_feedback == "Fill quiet time with narration"
    assert utterances[0].behavioral_code == "LP"
    assert repository.saved["behavioral_coding"]["adultSpeakers"] == ["speaker_0"]
    assert provider.keyterms == [("Maya",)]
    assert [u.id for u in utterances] == repository.inserted_ids[recording.id]


def _attempt_pipeline(repository, *, generator=None, role_classifier=None):
    provider = FakeTranscriber(
        "elevenlabs-v1",
        ProviderTranscript(
            service="elevenlabs-v1",
            words=(
                word("Nice", 0.0, 0.4, "speaker_0"),
                word("tower.", 0.4, 0.9, "speaker_0"),
                word("Mine!", 1.2, 1.6, "speaker_1"),
            ),
        ),
    )
    pipeline = RecordingPipeline(
        repository=repository,
        audio_store=FakeAudioStore(),
        transcription=TranscriptionOrchestrator(diarization=provider, text=provider, mode="v1"),
        role_classifier=role_classifier or StaticRoleClassifier(),
        coder=CodeEveryAdult(["LP"]),
        synthesizer=FeedbackSynthesizer(generator or FakeNarrativeGenerator()),
    )
    return pipeline, provider


@pytest.mark.asyncio
async def test_failed_coaching_branch_still_completes_with_developmental_profile():
    recording = make_recording(duration_seconds=2.0)
    repository = InMemoryRecordingRepository(recording)
    generator = FakeNarrativeGenerator(coaching_narrative=RuntimeError("coaching model down"))
    pipeline, _ = _attempt_pipeline(repository, generator=generator)

    state = await _processor(repository, pipeline).process(recording.id)

    stored = repository.recordings[recording.id]
    assert state.status == AnalysisStatus.COMPLETED
    assert state.attempts_used == 1
    assert stored.analysis_status == AnalysisStatus.COMPLETED
    assert stored.developmental_profile == {"developmental_observation": {"summary": "On track", "domains": []}}
    assert stored.coaching_summary is None
    assert stored.coaching_cards is None
    assert "format_coaching_cards" not in generator.calls


@pytest.mark.asyncio
async def test_recording_finished_elsewhere_stops_further_attempts():
    recording = make_recording()
    repository = InMemoryRecordingRepository(recording)
    notifier, alerter, sleeps = RecordingNotifier(), RecordingAlerter(), []

    class FinishedByAnotherWorker:
        runs = 0

        async def run(self, recording):
            self.runs += 1
            repository._update(
                recording.id,
                {"analysis_status": AnalysisStatus.COMPLETED, "overall_score": 90},
            )
            raise TranscriptionError("late provider failure")

    pipeline = FinishedByAnotherWorker()
    state = await _processor(
        repository, pipeline, notifier=notifier, alerter=alerter, sleeps=sleeps
    ).process(recording.id)

    stored = repository.recordings[recording.id]
    assert pipeline.runs == 1
    assert state.status == AnalysisStatus.COMPLETED
    assert stored.overall_score == 90
    assert stored.permanent_failure is False
    assert len(repository.attempts) == 1
    assert notifier.events == []
    assert alerter.reports == []


@pytest.mark.asyncio
async def test_stage_write_after_terminal_transition_is_rejected():
    recording = make_recording(duration_seconds=2.0)
    repository = InMemoryRecordingRepository(recording)

    class ClassifierRacingAFailure(StaticRoleClassifier):
        async def classify(self, utterances):
            repository._update(
                recording.id,
                {"analysis_status": AnalysisStatus.FAILED, "permanent_failure": True},
            )
            return await super().classify(utterances)

    pipeline, provider = _attempt_pipeline(repository, role_classifier=ClassifierRacingAFailure())
    notifier = RecordingNotifier()

    state = await _processor(repository, pipeline, notifier=notifier).process(recording.id)

    stored = repository.recordings[recording.id]
    assert state.status == AnalysisStatus.FAILED
    assert provider.calls == 1
    assert "role_identification" not in repository.saved
    assert stored.tag_counts is None
    assert all(u.role is None for u in repository.utterances[recording.id])
    assert notifier.events == []
