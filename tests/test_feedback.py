"""Feedback synthesis: narrative, revision cap and settle-all branches."""

from __future__ import annotations

import json

import pytest

from app.domain.errors import NarrativeParseError
from app.domain.models import RecordingMode, SpeakerRole, TagCounts, Utterance
from app.pipelines.recording.feedback import (
    FeedbackSynthesizer,
    LlmNarrativeGenerator,
    apply_revisions,
    limit_revisions,
)
from app.pipelines.recording.silence import make_silent_slot
from app.pipelines.recording.types import FeedbackRevision
from app.services.llm_client import LlmInvocationError
from tests.fakes import FakeNarrativeGenerator, ScriptedLlmClient


def _utterances(silent_slots: int = 0) -> list[Utterance]:
    utterances = [
        Utterance(
            speaker="speaker_0",
            text="You stacked them so carefully!",
            start_time=0,
            end_time=1,
            order=0,
            role=SpeakerRole.ADULT,
            behavioral_code="LP",
        ),
        Utterance(speaker="speaker_1", text="Yes!", start_time=1, end_time=2, order=1, role=SpeakerRole.CHILD),
    ]
    start = 5.0
    for index in range(silent_slots):
        slot = make_silent_slot(start, start + 4)
        utterances.append(slot.model_copy(update={"order": len(utterances)}))
        start += 10
    return utterances


COUNTS = TagCounts(labeled_praise=1, praise=1)


@pytest.mark.asyncio
async def test_synthesize_collects_every_branch():
    generator = FakeNarrativeGenerator(
        revise_feedback=[FeedbackRevision(index=0, feedback="Even better with a label", additional_tip="Name it")]
    )

    bundle = await FeedbackSynthesizer(generator).synthesize(_utterances(), COUNTS, RecordingMode.CDI)

    assert bundle.degraded == []
    assert bundle.competency_analysis["topMoment"] == "[LP] Great stacking!"
    assert bundle.competency_analysis["example"] == "You stacked them so carefully!"
    assert bundle.competency_analysis["childReaction"] == "Smiled and kept building."
    assert bundle.developmental_profile["developmental_observation"]["summary"] == "On track"
    assert bundle.coaching_summary == "You did great today."
    assert bundle.coaching_cards["tomorrowGoal"] == "Echo"
    assert bundle.pdi_analysis is None
    assert "pdi_analysis" not in generator.calls
    assert [r.index for r in bundle.revisions] == [0]


@pytest.mark.asyncio
async def test_coaching_failure_does_not_cancel_developmental_branch():
    generator = FakeNarrativeGenerator(coaching_narrative=LlmInvocationError("connection reset"))

    bundle = await FeedbackSynthesizer(generator).synthesize(_utterances(), COUNTS, RecordingMode.CDI)

    assert bundle.developmental_profile is not None
    assert bundle.coaching_summary is None
    assert bundle.coaching_cards is None
    assert bundle.degraded == ["coaching"]


@pytest.mark.asyncio
async def test_card_formatting_failure_keeps_raw_coaching_text():
    generator = FakeNarrativeGenerator(format_coaching_cards=ValueError("bad cards"))

    bundle = await FeedbackSynthesizer(generator).synthesize(_utterances(), COUNTS, RecordingMode.CDI)

    assert bundle.coaching_summary == "You did great today."
    assert bundle.coaching_cards is None
    assert bundle.degraded == ["coaching_cards"]


@pytest.mark.asyncio
async def test_unparseable_narrative_degrades_but_branches_still_run():
    generator = FakeNarrativeGenerator(session_narrative=NarrativeParseError("bad json"))

    bundle = await FeedbackSynthesizer(generator).synthesize(_utterances(), COUNTS, RecordingMode.CDI)

    assert bundle.competency_analysis is None
    assert "session_narrative" in bundle.degraded
    assert bundle.coaching_summary == "You did great today."


@pytest.mark.asyncio
async def test_narrative_transport_error_propagates():
    generator = FakeNarrativeGenerator(session_narrative=LlmInvocationError("timeout"))

    with pytest.raises(LlmInvocationError):
        await FeedbackSynthesizer(generator).synthesize(_utterances(), COUNTS, RecordingMode.CDI)


@pytest.mark.asyncio
async def test_pdi_sessions_run_pdi_analysis_branch():
    generator = FakeNarrativeGenerator()

    bundle = await FeedbackSynthesizer(generator, profiling_enabled=False).synthesize(
        _utterances(), COUNTS, RecordingMode.PDI
    )

    assert bundle.pdi_analysis == {"pdiSkills": [], "summary": "Clear commands"}
    assert bundle.developmental_profile is None
    assert "coaching_narrative" not in generator.calls


def test_limit_revisions_caps_silent_slots():
    utterances = _utterances(silent_slots=5)
    revisions = [FeedbackRevision(index=u.order, feedback=f"r{u.order}") for u in utterances]
    revisions.append(FeedbackRevision(index=99, feedback="unknown"))

    kept = limit_revisions(revisions, utterances, max_silent_slots=3)

    by_index = {u.order: u for u in utterances}
    assert sum(1 for r in kept if by_index[r.index].is_silent) == 3
    assert [r.index for r in kept if not by_index[r.index].is_silent] == [0, 1]
    assert all(r.index != 99 for r in kept)


def test_apply_revisions_sets_revised_feedback_only_on_targets():
    updated = apply_revisions(
        _utterances(),
        [FeedbackRevision(index=1, feedback="Echo this", additional_tip="Repeat their words")],
    )

    assert updated[0].revised_feedback is None
    assert updated[1].revised_feedback == "Echo this"
    assert updated[1].additional_tip == "Repeat their words"


@pytest.mark.asyncio
async def test_llm_generator_wraps_narrative_contract_errors():
    client = ScriptedLlmClient("garbage", "more garbage")

    with pytest.raises(NarrativeParseError):
        await LlmNarrativeGenerator(client).session_narrative(_utterances(), COUNTS.model_dump(), "CDI")


@pytest.mark.asyncio
async def test_llm_generator_revision_uses_higher_temperature():
    client = ScriptedLlmClient(json.dumps([{"id": 0, "feedback": "Nice"}]))

    revisions = await LlmNarrativeGenerator(client).revise_feedback(_utterances(), 3)

    assert revisions == [FeedbackRevision(index=0, feedback="Nice", additional_tip=None)]
    assert client.calls[0]["temperature"] == 0.5


@pytest.mark.asyncio
async def test_llm_generator_coaching_uses_coaching_model():
    client = ScriptedLlmClient("Plain coaching text")

    text = await LlmNarrativeGenerator(client, model_id="base", coaching_model_id="coach").coaching_narrative(
        _utterances(), COUNTS.model_dump()
    )

    assert text == "Plain coaching text"
    assert client.calls[0]["model_id"] == "coach"
