"""Feedback synthesis stage (Stage 05).

The session narrative is produced first. The secondary calls (per-utterance
revision, developmental profile, coaching narrative and, for PDI sessions,
the discipline-flow analysis) are dispatched together and settled
independently: a failing branch leaves its fields empty without cancelling
its siblings or failing the attempt.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, List, Mapping, Optional, Sequence

from app.application.interfaces import LlmClientInterface, NarrativeGeneratorInterface
from app.domain.errors import NarrativeParseError
from app.domain.models import RecordingMode, TagCounts, Utterance
from app.services.response_contract import (
    CoachingCardsResponse,
    DevelopmentalProfileResponse,
    PdiAnalysisResponse,
    ResponseContractError,
    SessionNarrativeResponse,
    parse_feedback_revisions,
)
from app.telemetry import record_degraded_stage

from .llm import invoke_contract
from .prompts import (
    COACHING_SYSTEM_PROMPT,
    DEVELOPMENTAL_SYSTEM_PROMPT,
    FORMAT_SYSTEM_PROMPT,
    NARRATIVE_SYSTEM_PROMPT,
    PDI_SYSTEM_PROMPT,
    REVISION_SYSTEM_PROMPT,
    build_coaching_prompt,
    build_developmental_prompt,
    build_format_prompt,
    build_narrative_prompt,
    build_pdi_prompt,
    build_revision_prompt,
)
from .types import FeedbackBundle, FeedbackRevision

logger = logging.getLogger("app.services.recording_pipeline")

REVISION_TEMPERATURE = 0.5


class LlmNarrativeGenerator(NarrativeGeneratorInterface):
    """Bedrock-backed implementation of every narrative capability."""

    def __init__(
        self,
        client: LlmClientInterface,
        *,
        model_id: str | None = None,
        coaching_model_id: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._client = client
        self._model_id = model_id
        self._coaching_model_id = coaching_model_id or model_id
        self._max_tokens = max_tokens

    async def session_narrative(
        self,
        utterances: Sequence[Utterance],
        tag_counts: Mapping[str, int],
        mode: str,
    ) -> dict[str, Any]:
        try:
            response, _ = await invoke_contract(
                self._client,
                label="narrative",
                system_prompt=NARRATIVE_SYSTEM_PROMPT,
                user_prompt=build_narrative_prompt(utterances, tag_counts, mode),
                parse=SessionNarrativeResponse.from_json,
                max_tokens=self._max_tokens,
                model_id=self._model_id,
            )
        except ResponseContractError as exc:
            raise NarrativeParseError(str(exc)) from exc
        return response.model_dump(by_alias=True)

    async def revise_feedback(
        self,
        utterances: Sequence[Utterance],
        max_silent_slots: int,
    ) -> List[FeedbackRevision]:
        items, _ = await invoke_contract(
            self._client,
            label="revision",
            system_prompt=REVISION_SYSTEM_PROMPT,
            user_prompt=build_revision_prompt(utterances, max_silent_slots),
            parse=parse_feedback_revisions,
            temperature=REVISION_TEMPERATURE,
            max_tokens=self._max_tokens,
            model_id=self._model_id,
        )
        return [
            FeedbackRevision(
                index=item.id,
                feedback=item.feedback,
                additional_tip=item.additional_tip,
            )
            for item in items
        ]

    async def developmental_profile(self, utterances: Sequence[Utterance]) -> dict[str, Any]:
        response, _ = await invoke_contract(
            self._client,
            label="developmental",
            system_prompt=DEVELOPMENTAL_SYSTEM_PROMPT,
            user_prompt=build_developmental_prompt(utterances),
            parse=DevelopmentalProfileResponse.from_json,
            max_tokens=self._max_tokens,
            model_id=self._model_id,
        )
        return response.model_dump(by_alias=True)

    async def coaching_narrative(
        self,
        utterances: Sequence[Utterance],
        tag_counts: Mapping[str, int],
    ) -> str:
        text = await self._client.invoke(
            system_prompt=COACHING_SYSTEM_PROMPT,
            user_prompt=build_coaching_prompt(utterances, tag_counts),
            max_tokens=self._max_tokens,
            model_id=self._coaching_model_id,
        )
        if not text:
            raise ResponseContractError("LLM devolvió una respuesta vacía (coaching).")
        return text

    async def format_coaching_cards(self, narrative: str) -> dict[str, Any]:
        response, _ = await invoke_contract(
            self._client,
            label="coaching-cards",
            system_prompt=FORMAT_SYSTEM_PROMPT,
            user_prompt=build_format_prompt(narrative),
            parse=CoachingCardsResponse.from_json,
            max_tokens=self._max_tokens,
            model_id=self._model_id,
        )
        return response.model_dump(by_alias=True)

    async def pdi_analysis(
        self,
        utterances: Sequence[Utterance],
        tag_counts: Mapping[str, int],
    ) -> dict[str, Any]:
        response, _ = await invoke_contract(
            self._client,
            label="pdi",
            system_prompt=PDI_SYSTEM_PROMPT,
            user_prompt=build_pdi_prompt(utterances, tag_counts),
            parse=PdiAnalysisResponse.from_json,
            max_tokens=self._max_tokens,
            model_id=self._model_id,
        )
        return response.model_dump(by_alias=True)


def build_competency_analysis(
    narrative: Mapping[str, Any],
    utterances: Sequence[Utterance],
    mode: str,
) -> dict[str, Any]:
    """Shape the session narrative into the persisted competency analysis."""

    by_order = {utterance.order: utterance for utterance in utterances}
    top_moment = narrative.get("topMoment") or {}
    example_index = narrative.get("exampleUtteranceNumber")
    example = by_order.get(example_index) if example_index is not None else None

    return {
        "topMoment": top_moment.get("quote"),
        "topMomentUtteranceNumber": top_moment.get("utteranceNumber"),
        "feedback": narrative.get("Feedback"),
        "example": example.text if example else None,
        "exampleUtteranceNumber": example_index,
        "childReaction": narrative.get("ChildReaction"),
        "tips": narrative.get("tips"),
        "reminder": narrative.get("reminder"),
        "analyzedAt": datetime.now(timezone.utc).isoformat(),
        "mode": mode,
    }


def limit_revisions(
    revisions: Sequence[FeedbackRevision],
    utterances: Sequence[Utterance],
    max_silent_slots: int,
) -> list[FeedbackRevision]:
    """Drop revisions for unknown indices and silent slots beyond the cap."""

    by_order = {utterance.order: utterance for utterance in utterances}
    kept: list[FeedbackRevision] = []
    seen: set[int] = set()
    silent_used = 0
    for revision in revisions:
        target = by_order.get(revision.index)
        if target is None or revision.index in seen:
            continue
        if target.is_silent:
            if silent_used >= max_silent_slots:
                continue
            silent_used += 1
        seen.add(revision.index)
        kept.append(revision)
    return kept


def apply_revisions(
    utterances: Sequence[Utterance],
    revisions: Sequence[FeedbackRevision],
) -> list[Utterance]:
    by_index = {revision.index: revision for revision in revisions}
    updated = []
    for utterance in utterances:
        revision = by_index.get(utterance.order)
        if revision is None:
            updated.append(utterance)
            continue
        updated.append(
            utterance.model_copy(
                update={
                    "revised_feedback": revision.feedback,
                    "additional_tip": revision.additional_tip,
                }
            )
        )
    return updated


class FeedbackSynthesizer:
    """Produce every narrative artifact for one coded recording."""

    def __init__(
        self,
        generator: NarrativeGeneratorInterface,
        *,
        max_silent_slots: int = 3,
        profiling_enabled: bool = True,
    ) -> None:
        self._generator = generator
        self._max_silent_slots = max_silent_slots
        self._profiling_enabled = profiling_enabled

    async def synthesize(
        self,
        utterances: Sequence[Utterance],
        tag_counts: TagCounts,
        mode: RecordingMode,
    ) -> FeedbackBundle:
        bundle = FeedbackBundle()
        counts = tag_counts.model_dump()
        mode_value = RecordingMode(mode).value

        try:
            narrative = await self._generator.session_narrative(utterances, counts, mode_value)
        except NarrativeParseError as exc:
            logger.warning("Narrativa de sesión no interpretable: %s", exc)
            self._degrade(bundle, "session_narrative")
        else:
            bundle.competency_analysis = build_competency_analysis(narrative, utterances, mode_value)

        branches: dict[str, Awaitable[Any]] = {
            "revision": self._generator.revise_feedback(utterances, self._max_silent_slots),
        }
        if self._profiling_enabled:
            branches["developmental"] = self._generator.developmental_profile(utterances)
            branches["coaching"] = self._coaching(utterances, counts, bundle)
        if mode_value == RecordingMode.PDI.value:
            branches["pdi"] = self._generator.pdi_analysis(utterances, counts)

        outcomes = await asyncio.gather(*branches.values(), return_exceptions=True)

        for name, outcome in zip(branches, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning("Rama %s falló, se continúa sin ella: %s", name, outcome)
                self._degrade(bundle, name)
                continue
            if name == "revision":
                bundle.revisions = limit_revisions(outcome, utterances, self._max_silent_slots)
            elif name == "developmental":
                bundle.developmental_profile = outcome
            elif name == "coaching":
                bundle.coaching_summary, bundle.coaching_cards = outcome
            elif name == "pdi":
                bundle.pdi_analysis = outcome

        return bundle

    async def _coaching(
        self,
        utterances: Sequence[Utterance],
        counts: Mapping[str, int],
        bundle: FeedbackBundle,
    ) -> tuple[str, Optional[dict[str, Any]]]:
        narrative = await self._generator.coaching_narrative(utterances, counts)
        try:
            cards = await self._generator.format_coaching_cards(narrative)
        except Exception as exc:
            logger.warning("Formato de tarjetas falló, se conserva el texto: %s", exc)
            self._degrade(bundle, "coaching_cards")
            return narrative, None
        return narrative, cards

    @staticmethod
    def _degrade(bundle: FeedbackBundle, stage: str) -> None:
        bundle.degraded.append(stage)
        record_degraded_stage(stage)


__all__ = [
    "FeedbackSynthesizer",
    "LlmNarrativeGenerator",
    "apply_revisions",
    "build_competency_analysis",
    "limit_revisions",
]
