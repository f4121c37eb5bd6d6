"""Typed containers shared across the recording processing pipeline.

These dataclasses live in their own module so the stage modules
(`transcription`, `roles`, `coding`, `feedback`, `processor`) and the
application ports can import them without circular dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional
from uuid import UUID

from app.domain.models import SpeakerRole, TagCounts, Utterance


@dataclass(frozen=True)
class WordToken:
    """Word-level token returned by a diarizing speech-to-text provider."""

    text: str
    start: float
    end: float
    speaker: Optional[str] = None
    type: str = "word"

    @property
    def midpoint(self) -> float:
        return (self.start + self.end) / 2


@dataclass(frozen=True)
class SpeechSegment:
    """Utterance-level segment returned directly by a provider."""

    speaker: str
    text: str
    start: float
    end: float


@dataclass(frozen=True)
class ProviderTranscript:
    """Normalized provider response: words and/or segments plus raw JSON."""

    service: str
    words: tuple[WordToken, ...] = ()
    segments: tuple[SpeechSegment, ...] = ()
    raw: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DivergenceReport:
    """Advisory signal raised when the merged diarization disagrees."""

    flagged: bool
    original_speaker_count: int
    merged_speaker_count: int
    changed_ratio: float
    reasons: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "flagged": self.flagged,
            "originalSpeakerCount": self.original_speaker_count,
            "mergedSpeakerCount": self.merged_speaker_count,
            "changedRatio": round(self.changed_ratio, 4),
            "reasons": list(self.reasons),
        }


@dataclass(frozen=True)
class TranscriptionOutcome:
    """Normalized utterances plus the artifacts persisted alongside them."""

    utterances: list[Utterance]
    service: str
    transcript_text: str
    raw_response: Mapping[str, Any]
    review: Optional[DivergenceReport] = None


@dataclass(frozen=True)
class RoleAssignment:
    """Speaker -> role map with the verbatim classifier payload."""

    role_map: Mapping[str, SpeakerRole]
    adult_speakers: tuple[str, ...]
    raw: Mapping[str, Any]

    @property
    def primary_adult(self) -> str:
        return self.adult_speakers[0]


@dataclass(frozen=True)
class CodingResult:
    """One coded adult utterance referenced by its dense order index."""

    index: int
    code: str
    feedback: str = ""


@dataclass(frozen=True)
class CodingOutcome:
    """Tagged utterances, their folded counts and the persisted audit payload."""

    utterances: list[Utterance]
    tag_counts: TagCounts
    results: tuple[CodingResult, ...]
    missing_indices: tuple[int, ...]
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class FeedbackRevision:
    """Reviewed feedback for one utterance (real or silent slot)."""

    index: int
    feedback: Optional[str] = None
    additional_tip: Optional[str] = None


@dataclass
class FeedbackBundle:
    """Every narrative artifact produced after coding; absent parts stay None."""

    competency_analysis: Optional[dict[str, Any]] = None
    revisions: list[FeedbackRevision] = field(default_factory=list)
    developmental_profile: Optional[dict[str, Any]] = None
    coaching_summary: Optional[str] = None
    coaching_cards: Optional[dict[str, Any]] = None
    pdi_analysis: Optional[dict[str, Any]] = None
    degraded: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NotificationEvent:
    """User-facing event emitted on a terminal transition."""

    type: str
    recording_id: UUID
    user_id: str
    title: str
    body: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def as_message(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "recordingId": str(self.recording_id),
            "userId": self.user_id,
            "title": self.title,
            "body": self.body,
            "data": dict(self.data),
        }


@dataclass(frozen=True)
class FailureReport:
    """Operations alert payload for a permanently failed recording."""

    recording_id: UUID
    user_id: str
    error: str
    retry_count: int
    max_attempts: int
    failed_at: datetime
    audio_url: Optional[str] = None
    duration_seconds: Optional[float] = None


__all__ = [
    "CodingOutcome",
    "CodingResult",
    "DivergenceReport",
    "FailureReport",
    "FeedbackBundle",
    "FeedbackRevision",
    "NotificationEvent",
    "ProviderTranscript",
    "RoleAssignment",
    "SpeechSegment",
    "TranscriptionOutcome",
    "WordToken",
]
