"""Transcription orchestration: single, two-pass merge and chain modes."""

from __future__ import annotations

import pytest

from app.domain.errors import TranscriptionError
from app.domain.models import Utterance
from app.pipelines.recording.transcription import (
    TranscriptionOrchestrator,
    assess_divergence,
    merge_speakers,
    review_payload,
)
from app.pipelines.recording.types import ProviderTranscript
from tests.fakes import FakeTranscriber, word


def utt(start: float, end: float, speaker: str = "speaker_0", order: int = 0) -> Utterance:
    return Utterance(speaker=speaker, text="text", start_time=start, end_time=end, order=order)


def test_merge_picks_speaker_with_greatest_overlap():
    merged = merge_speakers(
        [utt(0.0, 2.0)],
        [word("a", 0.0, 1.5, "speaker_3"), word("b", 1.5, 2.0, "speaker_7")],
    )

    assert merged[0].speaker == "speaker_3"


def test_merge_overlap_tie_keeps_first_seen_speaker():
    merged = merge_speakers(
        [utt(0.0, 2.0)],
        [word("a", 0.0, 1.0, "speaker_1"), word("b", 1.0, 2.0, "speaker_0")],
    )

    assert merged[0].speaker == "speaker_1"


def test_merge_without_overlap_uses_nearest_midpoint():
    words = [word("a", 0.0, 1.0, "speaker_0"), word("b", 8.0, 9.0, "speaker_1")]

    assert merge_speakers([utt(5.0, 6.0)], words)[0].speaker == "speaker_1"


def test_merge_equidistant_midpoints_prefer_earlier_word():
    words = [word("a", 4.0, 5.0, "speaker_0"), word("b", 6.0, 7.0, "speaker_1")]

    assert merge_speakers([utt(5.2, 5.8)], words)[0].speaker == "speaker_0"


def test_merge_is_deterministic_and_preserves_text_and_timing():
    text_utterances = [utt(0.0, 1.0), utt(1.0, 2.0, order=1)]
    words = [word("a", 0.0, 1.0, "speaker_1"), word("b", 1.0, 2.0, "speaker_0")]

    first = merge_speakers(text_utterances, words)
    second = merge_speakers(text_utterances, words)

    assert [u.model_dump() for u in first] == [u.model_dump() for u in second]
    assert [(u.text, u.start_time, u.order) for u in first] == [
        (u.text, u.start_time, u.order) for u in text_utterances
    ]


def test_divergence_flags_high_reassignment_ratio():
    original = [
        utt(0, 1, "a"),
        utt(1, 2, "b", 1),
        utt(2, 3, "a", 2),
        utt(3, 4, "b", 3),
    ]
    merged = [u.model_copy(update={"speaker": s}) for u, s in zip(original, ["a", "a", "a", "b"])]

    report = assess_divergence(original, merged, threshold=0.2)

    assert report.flagged is True
    assert report.changed_ratio == pytest.approx(0.25)
    assert report.reasons == ("reassignment_ratio_exceeded",)


def test_divergence_not_flagged_for_relabelled_speakers():
    original = [utt(0, 1, "a"), utt(1, 2, "b", 1)]
    merged = [u.model_copy(update={"speaker": s}) for u, s in zip(original, ["x", "y"])]

    report = assess_divergence(original, merged)

    assert report.flagged is False
    assert report.changed_ratio == 0.0


def _text_provider() -> FakeTranscriber:
    return FakeTranscriber(
        "elevenlabs-v2",
        ProviderTranscript(
            service="elevenlabs-v2",
            words=(
                word("Hi", 0.0, 0.5),
                word("there.", 0.5, 1.0),
                word("Hello", 2.0, 2.5),
                word("daddy.", 2.5, 3.0),
            ),
            raw={"model": "v2"},
        ),
    )


def _diarization_provider() -> FakeTranscriber:
    return FakeTranscriber(
        "elevenlabs-v1",
        ProviderTranscript(
            service="elevenlabs-v1",
            words=(
                word("Hi", 0.0, 0.5, "speaker_0"),
                word("there.", 0.5, 1.0, "speaker_0"),
                word("Hello", 2.0, 2.5, "speaker_1"),
                word("daddy.", 2.5, 3.0, "speaker_1"),
            ),
            raw={"model": "v1"},
        ),
    )


@pytest.mark.asyncio
async def test_two_pass_merges_speakers_and_records_review():
    orchestrator = TranscriptionOrchestrator(
        diarization=_diarization_provider(),
        text=_text_provider(),
        mode="two-pass",
    )

    outcome = await orchestrator.transcribe(b"audio", content_type="audio/mp4")

    assert [(u.speaker, u.text) for u in outcome.utterances] == [
        ("speaker_0", "Hi there."),
        ("speaker_1", "Hello daddy."),
    ]
    assert outcome.service == "elevenlabs-v2+elevenlabs-v1"
    assert outcome.raw_response == {"text": {"model": "v2"}, "diarization": {"model": "v1"}}
    assert outcome.review is not None
    assert outcome.review.flagged is True
    assert "speaker_count_changed" in outcome.review.reasons
    assert review_payload(outcome)["mergedSpeakerCount"] == 2
    assert outcome.transcript_text.splitlines()[1].startswith("[01] speaker_1")


@pytest.mark.asyncio
async def test_two_pass_requires_diarization_words():
    orchestrator = TranscriptionOrchestrator(
        diarization=FakeTranscriber("elevenlabs-v1", ProviderTranscript(service="elevenlabs-v1")),
        text=_text_provider(),
    )

    with pytest.raises(TranscriptionError):
        await orchestrator.transcribe(b"audio", content_type="audio/mp4")


@pytest.mark.asyncio
async def test_single_mode_uses_one_provider():
    diarization = _diarization_provider()
    text = _text_provider()
    orchestrator = TranscriptionOrchestrator(diarization=diarization, text=text, mode="v1")

    outcome = await orchestrator.transcribe(b"audio", content_type="audio/mp4")

    assert outcome.service == "elevenlabs-v1"
    assert outcome.review is None
    assert (diarization.calls, text.calls) == (1, 0)


@pytest.mark.asyncio
async def test_zero_utterances_is_a_transcription_error():
    empty = FakeTranscriber("elevenlabs-v2", ProviderTranscript(service="elevenlabs-v2"))
    orchestrator = TranscriptionOrchestrator(diarization=_diarization_provider(), text=empty, mode="v2")

    with pytest.raises(TranscriptionError, match="No utterances parsed"):
        await orchestrator.transcribe(b"audio", content_type="audio/mp4")


@pytest.mark.asyncio
async def test_empty_audio_is_rejected():
    orchestrator = TranscriptionOrchestrator(diarization=_diarization_provider(), text=_text_provider())

    with pytest.raises(TranscriptionError, match="empty"):
        await orchestrator.transcribe(b"", content_type="audio/mp4")


@pytest.mark.asyncio
async def test_chain_falls_back_to_next_provider():
    broken = FakeTranscriber("amazon-transcribe", RuntimeError("socket closed"))
    orchestrator = TranscriptionOrchestrator(
        diarization=_diarization_provider(),
        text=_text_provider(),
        chain=[broken, _diarization_provider()],
        mode="chain",
    )

    outcome = await orchestrator.transcribe(b"audio", content_type="audio/mp4")

    assert outcome.service == "elevenlabs-v1"
    assert broken.calls == 1


@pytest.mark.asyncio
async def test_chain_aggregates_every_provider_error():
    orchestrator = TranscriptionOrchestrator(
        diarization=_diarization_provider(),
        text=_text_provider(),
        chain=[
            FakeTranscriber("amazon-transcribe", RuntimeError("socket closed")),
            FakeTranscriber("elevenlabs-v1", ProviderTranscript(service="elevenlabs-v1")),
        ],
        mode="chain",
    )

    with pytest.raises(TranscriptionError) as excinfo:
        await orchestrator.transcribe(b"audio", content_type="audio/mp4")

    message = str(excinfo.value)
    assert message.startswith("All transcription providers failed")
    assert "amazon-transcribe" in message and "socket closed" in message
    assert "elevenlabs-v1: No utterances parsed" in message


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        TranscriptionOrchestrator(diarization=_diarization_provider(), text=_text_provider(), mode="v3")
