"""Role identification and behavioral coding stages."""

from __future__ import annotations

import json

import pytest

from app.domain.errors import NoAdultSpeakerError
from app.domain.models import SpeakerRole, Utterance
from app.pipelines.recording.coding import LlmBehavioralCoder, apply_coding
from app.pipelines.recording.roles import LlmRoleClassifier, apply_roles
from app.pipelines.recording.silence import make_silent_slot
from app.pipelines.recording.types import CodingResult
from app.services.response_contract import ResponseContractError
from tests.fakes import ScriptedLlmClient, StaticRoleClassifier


def _utterances() -> list[Utterance]:
    return [
        Utterance(speaker="speaker_0", text="You built a tall tower!", start_time=0, end_time=1, order=0),
        Utterance(speaker="speaker_1", text="Look!", start_time=1, end_time=2, order=1),
        Utterance(speaker="speaker_0", text="Put the block here.", start_time=2, end_time=3, order=2),
        make_silent_slot(3, 7).model_copy(update={"order": 3}),
        Utterance(speaker="speaker_0", text="Great job.", start_time=7, end_time=8, order=4),
    ]


def _roles_payload(**speakers) -> str:
    return json.dumps({"speaker_identification": speakers})


@pytest.mark.asyncio
async def test_classifier_ranks_adults_by_utterance_count():
    client = ScriptedLlmClient(
        _roles_payload(
            speaker_1={"role": "ADULT", "utterance_count": 2},
            speaker_0={"role": "ADULT", "utterance_count": 9},
            speaker_2={"role": "CHILD", "utterance_count": 4},
        )
    )

    assignment = await LlmRoleClassifier(client).classify(_utterances())

    assert assignment.adult_speakers == ("speaker_0", "speaker_1")
    assert assignment.primary_adult == "speaker_0"
    assert assignment.role_map["speaker_2"] == SpeakerRole.CHILD
    assert "Look!" in client.calls[0]["user_prompt"]


@pytest.mark.asyncio
async def test_classifier_without_adults_raises():
    client = ScriptedLlmClient(_roles_payload(speaker_0={"role": "CHILD"}, speaker_1={"role": "CHILD"}))

    with pytest.raises(NoAdultSpeakerError, match="No adult speakers found"):
        await LlmRoleClassifier(client).classify(_utterances())


@pytest.mark.asyncio
async def test_classifier_reasks_once_on_invalid_json():
    client = ScriptedLlmClient("not json", _roles_payload(speaker_0={"role": "ADULT"}))

    assignment = await LlmRoleClassifier(client).classify(_utterances())

    assert assignment.adult_speakers == ("speaker_0",)
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_classifier_gives_up_after_second_invalid_response():
    client = ScriptedLlmClient("nope", "still nope")

    with pytest.raises(ResponseContractError):
        await LlmRoleClassifier(client).classify(_utterances())


@pytest.mark.asyncio
async def test_apply_roles_leaves_silent_slots_unassigned():
    assignment = await StaticRoleClassifier().classify(_utterances())

    roled = apply_roles(_utterances(), assignment)

    assert [u.role for u in roled] == [
        SpeakerRole.ADULT,
        SpeakerRole.CHILD,
        SpeakerRole.ADULT,
        None,
        SpeakerRole.ADULT,
    ]


@pytest.mark.asyncio
async def test_apply_coding_tags_adults_and_folds_counts():
    assignment = await StaticRoleClassifier().classify(_utterances())
    roled = apply_roles(_utterances(), assignment)
    results = [
        CodingResult(index=0, code="LP", feedback="Specific praise!"),
        CodingResult(index=1, code="DC"),  # child utterance, ignored
        CodingResult(index=2, code="DC", feedback="Clear command."),
        CodingResult(index=3, code="BD"),  # silent slot, ignored
        CodingResult(index=4, code="UP"),
        CodingResult(index=4, code="Q"),  # duplicate, first wins
    ]

    outcome = apply_coding(roled, results, assignment=assignment, raw_response="raw")

    assert outcome.tag_counts.praise == 2
    assert outcome.tag_counts.command == 1
    assert outcome.tag_counts.question == 0
    assert outcome.missing_indices == ()
    coded = {u.order: (u.behavioral_code, u.display_tag) for u in outcome.utterances}
    assert coded[0] == ("LP", "Labeled Praise")
    assert coded[1] == (None, None)
    assert coded[3] == ("SILENT", "Silent Slot")
    assert outcome.payload["adultSpeakers"] == ["speaker_0"]
    assert [item["id"] for item in outcome.payload["codingResults"]] == [0, 2, 4]


@pytest.mark.asyncio
async def test_apply_coding_reports_missing_indices_and_keeps_unknown_codes():
    assignment = await StaticRoleClassifier().classify(_utterances())
    roled = apply_roles(_utterances(), assignment)

    outcome = apply_coding(roled, [CodingResult(index=0, code="ZZ")], assignment=assignment)

    assert outcome.missing_indices == (2, 4)
    assert outcome.payload["missingIndices"] == [2, 4]
    assert outcome.utterances[0].behavioral_code == "ZZ"
    assert outcome.utterances[0].display_tag == "ZZ"
    assert outcome.tag_counts.model_dump() == {key: 0 for key in outcome.tag_counts.model_dump()}


@pytest.mark.asyncio
async def test_llm_coder_parses_fenced_array():
    client = ScriptedLlmClient('```json\n[{"id": 0, "code": "lp", "feedback": "Nice"}]\n```')

    results, raw = await LlmBehavioralCoder(client, max_tokens=4000).code(_utterances(), "CDI")

    assert results == [CodingResult(index=0, code="LP", feedback="Nice")]
    assert raw.startswith("```json")
