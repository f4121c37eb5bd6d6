"""Pydantic models for validating LLM JSON responses.

Every generation call in the recording pipeline runs through one of these
schemas so that downstream code receives normalized, type-safe objects.
Fence stripping and JSON extraction live in `extract_json` only.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from app.domain.errors import PipelineError


class ResponseContractError(PipelineError):
    """Raised when the LLM response contract cannot be validated."""


def _clean_json_payload(payload: str, opening: str = "{", closing: str = "}") -> str:
    """Strip Markdown code blocks and find the first/last bracket to extract JSON."""
    if not payload:
        return ""

    cleaned = payload.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    cleaned = cleaned.strip()

    start = cleaned.find(opening)
    end = cleaned.rfind(closing)

    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start : end + 1]

    return cleaned


def extract_json(payload: str, *, expect: type = dict) -> Any:
    """Decode the JSON object (or array) embedded in an LLM response."""

    opening, closing = ("[", "]") if expect is list else ("{", "}")
    cleaned = _clean_json_payload(payload, opening, closing)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ResponseContractError(f"Response is not valid JSON: {exc}") from exc
    if not isinstance(data, expect):
        raise ResponseContractError(
            f"Expected a JSON {expect.__name__}, got {type(data).__name__}"
        )
    return data


class _Contract(BaseModel):
    model_config = {"populate_by_name": True, "extra": "allow"}

    @classmethod
    def from_json(cls, payload: str):
        data = extract_json(payload)
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ResponseContractError(f"{cls.__name__} validation failed: {exc}") from exc


class SpeakerIdentification(BaseModel):
    role: str
    confidence: Optional[float] = None
    utterance_count: int = 0

    @field_validator("role")
    @classmethod
    def normalize_role(cls, value: str) -> str:
        role = str(value).strip().upper()
        if role not in {"ADULT", "CHILD"}:
            raise ValueError(f"Unknown speaker role: {value}")
        return role

    @model_validator(mode="after")
    def clamp_confidence(self) -> "SpeakerIdentification":
        if self.confidence is not None:
            self.confidence = max(0.0, min(1.0, float(self.confidence)))
        return self


class RoleIdentificationResponse(_Contract):
    speaker_identification: Dict[str, SpeakerIdentification]


class CodingResultItem(BaseModel):
    id: int
    code: str
    feedback: str = ""

    model_config = {"extra": "allow"}

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        return str(value).strip().upper()

    @field_validator("feedback", mode="before")
    @classmethod
    def default_feedback(cls, value: Any) -> str:
        return "" if value is None else str(value)


_CODING_ADAPTER = TypeAdapter(List[CodingResultItem])


def parse_coding_results(payload: str) -> List[CodingResultItem]:
    """Decode the behavioral coder's `[{id, code, feedback}]` array."""

    data = extract_json(payload, expect=list)
    try:
        return _CODING_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise ResponseContractError(f"Coding response validation failed: {exc}") from exc


class TopMoment(BaseModel):
    quote: str = ""
    utterance_number: Optional[int] = Field(default=None, alias="utteranceNumber")

    model_config = {"populate_by_name": True}


class SessionNarrativeResponse(_Contract):
    top_moment: TopMoment = Field(alias="topMoment")
    feedback: str = Field(alias="Feedback")
    reminder: str = ""
    child_reaction: Optional[str] = Field(default=None, alias="ChildReaction")
    example_utterance_number: Optional[int] = Field(default=None, alias="exampleUtteranceNumber")
    tips: Optional[str] = None


class FeedbackRevisionItem(BaseModel):
    id: int
    feedback: Optional[str] = None
    additional_tip: Optional[str] = None


_REVISION_ADAPTER = TypeAdapter(List[FeedbackRevisionItem])


def parse_feedback_revisions(payload: str) -> List[FeedbackRevisionItem]:
    data = extract_json(payload, expect=list)
    try:
        return _REVISION_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise ResponseContractError(f"Revision response validation failed: {exc}") from exc


class DevelopmentalObservation(BaseModel):
    summary: str
    domains: List[Dict[str, Any]] = Field(default_factory=list)


class DevelopmentalProfileResponse(_Contract):
    developmental_observation: DevelopmentalObservation
    session_metadata: Dict[str, Any] = Field(default_factory=dict)


class CoachingSection(BaseModel):
    title: str
    body: str = ""

    model_config = {"extra": "allow"}


class CoachingCardsResponse(_Contract):
    sections: List[CoachingSection]
    tomorrow_goal: Optional[str] = Field(default=None, alias="tomorrowGoal")


class PdiAnalysisResponse(_Contract):
    pdi_skills: List[Dict[str, Any]] = Field(default_factory=list, alias="pdiSkills")
    command_sequences: List[Dict[str, Any]] = Field(default_factory=list, alias="commandSequences")
    tomorrow_goal: Optional[str] = Field(default=None, alias="tomorrowGoal")
    encouragement: Optional[str] = None
    summary: Optional[str] = None


__all__ = [
    "CodingResultItem",
    "CoachingCardsResponse",
    "DevelopmentalProfileResponse",
    "FeedbackRevisionItem",
    "PdiAnalysisResponse",
    "ResponseContractError",
    "RoleIdentificationResponse",
    "SessionNarrativeResponse",
    "extract_json",
    "parse_coding_results",
    "parse_feedback_revisions",
]
