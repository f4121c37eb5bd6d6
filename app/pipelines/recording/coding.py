"""Behavioral coding stage (Stage 04).

The coder labels adult utterances; `apply_coding` writes those labels back
and folds them into TagCounts. Indices the coder skipped are a data-quality
gap, not a failure.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Sequence

from app.application.interfaces import BehavioralCoderInterface, LlmClientInterface
from app.domain.models import SpeakerRole, Utterance
from app.domain.tags import BEHAVIORAL_CODES, display_tag_for, fold_tag_counts
from app.services.response_contract import parse_coding_results

from .llm import invoke_contract
from .prompts import CODING_SYSTEM_PROMPT, build_coding_prompt
from .types import CodingOutcome, CodingResult, RoleAssignment

logger = logging.getLogger("app.services.recording_pipeline")


def apply_coding(
    utterances: Sequence[Utterance],
    results: Sequence[CodingResult],
    *,
    assignment: RoleAssignment | None = None,
    raw_response: str = "",
) -> CodingOutcome:
    """Write codes onto adult utterances and fold them into TagCounts."""

    adult_indices = {
        utterance.order
        for utterance in utterances
        if utterance.role == SpeakerRole.ADULT and not utterance.is_silent
    }

    accepted: dict[int, CodingResult] = {}
    for result in results:
        if result.index not in adult_indices:
            logger.debug("Código ignorado para índice no adulto %s", result.index)
            continue
        if result.index in accepted:
            continue
        if result.code not in BEHAVIORAL_CODES:
            logger.warning("Código desconocido %s en índice %s", result.code, result.index)
        accepted[result.index] = result

    missing = tuple(sorted(adult_indices - set(accepted)))
    if missing:
        logger.warning(
            "Codificación incompleta: %s de %s utterances adultas sin código: %s",
            len(missing),
            len(adult_indices),
            list(missing),
        )

    updated: list[Utterance] = []
    for utterance in utterances:
        result = accepted.get(utterance.order)
        if result is None:
            updated.append(utterance)
            continue
        updated.append(
            utterance.model_copy(
                update={
                    "behavioral_code": result.code,
                    "display_tag": display_tag_for(result.code),
                    "feedback": result.feedback or utterance.feedback,
                }
            )
        )

    ordered_results = tuple(accepted[index] for index in sorted(accepted))
    tag_counts = fold_tag_counts(result.code for result in ordered_results)
    payload = {
        "adultSpeakers": list(assignment.adult_speakers) if assignment else [],
        "codingResults": [
            {"id": result.index, "code": result.code, "feedback": result.feedback}
            for result in ordered_results
        ],
        "missingIndices": list(missing),
        "fullResponse": raw_response,
        "analyzedAt": datetime.now(timezone.utc).isoformat(),
    }
    return CodingOutcome(
        utterances=updated,
        tag_counts=tag_counts,
        results=ordered_results,
        missing_indices=missing,
        payload=payload,
    )


class LlmBehavioralCoder(BehavioralCoderInterface):
    """Code every adult utterance with a single LLM call."""

    def __init__(
        self,
        client: LlmClientInterface,
        *,
        max_tokens: int | None = None,
        model_id: str | None = None,
    ) -> None:
        self._client = client
        self._max_tokens = max_tokens
        self._model_id = model_id

    async def code(
        self,
        utterances: Sequence[Utterance],
        mode: str,
    ) -> tuple[List[CodingResult], str]:
        items, raw = await invoke_contract(
            self._client,
            label="coding",
            system_prompt=CODING_SYSTEM_PROMPT,
            user_prompt=build_coding_prompt(utterances, mode),
            parse=parse_coding_results,
            max_tokens=self._max_tokens,
            model_id=self._model_id,
        )
        results = [
            CodingResult(index=item.id, code=item.code, feedback=item.feedback)
            for item in items
        ]
        return results, raw


__all__ = ["LlmBehavioralCoder", "apply_coding"]
