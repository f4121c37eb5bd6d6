"""Speaker role identification (Stage 03)."""

from __future__ import annotations

import logging
from typing import Sequence

from app.application.interfaces import LlmClientInterface, RoleClassifierInterface
from app.domain.errors import NoAdultSpeakerError
from app.domain.models import SpeakerRole, Utterance
from app.services.response_contract import RoleIdentificationResponse

from .llm import invoke_contract
from .prompts import ROLE_SYSTEM_PROMPT, build_role_prompt
from .types import RoleAssignment

logger = logging.getLogger("app.services.recording_pipeline")


def assignment_from_response(response: RoleIdentificationResponse) -> RoleAssignment:
    """Flatten the classifier payload into a role map and ranked adults."""

    identification = response.speaker_identification
    role_map = {
        speaker: SpeakerRole(info.role.lower())
        for speaker, info in identification.items()
    }
    adults = [
        (speaker, info.utterance_count)
        for speaker, info in identification.items()
        if info.role == "ADULT"
    ]
    if not adults:
        raise NoAdultSpeakerError("No adult speakers found")

    # Stable sort keeps the classifier's speaker order for equal volumes.
    adults.sort(key=lambda item: item[1], reverse=True)
    return RoleAssignment(
        role_map=role_map,
        adult_speakers=tuple(speaker for speaker, _ in adults),
        raw=response.model_dump(mode="json"),
    )


def apply_roles(utterances: Sequence[Utterance], assignment: RoleAssignment) -> list[Utterance]:
    """Copy each utterance with its speaker's role; silent slots stay unassigned."""

    updated = []
    for utterance in utterances:
        role = None if utterance.is_silent else assignment.role_map.get(utterance.speaker)
        updated.append(utterance.model_copy(update={"role": role}))
    return updated


class LlmRoleClassifier(RoleClassifierInterface):
    """One holistic LLM call over every real utterance."""

    def __init__(self, client: LlmClientInterface, *, model_id: str | None = None) -> None:
        self._client = client
        self._model_id = model_id

    async def classify(self, utterances: Sequence[Utterance]) -> RoleAssignment:
        real = [utterance for utterance in utterances if not utterance.is_silent]
        response, _ = await invoke_contract(
            self._client,
            label="roles",
            system_prompt=ROLE_SYSTEM_PROMPT,
            user_prompt=build_role_prompt(real),
            parse=RoleIdentificationResponse.from_json,
            model_id=self._model_id,
        )
        assignment = assignment_from_response(response)

        unknown = {utterance.speaker for utterance in real} - set(assignment.role_map)
        if unknown:
            logger.warning("Speakers sin rol asignado: %s", sorted(unknown))
        logger.info(
            "Roles identificados: adultos=%s primario=%s",
            list(assignment.adult_speakers),
            assignment.primary_adult,
        )
        return assignment


__all__ = ["LlmRoleClassifier", "apply_roles", "assignment_from_response"]
