from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

SILENT_SPEAKER_ID = "__SILENT__"
SILENT_CODE = "SILENT"
SILENT_DISPLAY_TAG = "Silent Slot"

# Fields later stages may change on an already stored utterance.
MUTABLE_UTTERANCE_FIELDS = (
    "role",
    "behavioral_code",
    "display_tag",
    "feedback",
    "revised_feedback",
    "additional_tip",
)


class RecordingMode(str, Enum):
    CDI = "CDI"
    PDI = "PDI"


class AnalysisStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisStatus.COMPLETED, AnalysisStatus.FAILED)


class SpeakerRole(str, Enum):
    ADULT = "adult"
    CHILD = "child"


class TagCounts(BaseModel):
    """Aggregate behavioral code counts for one recording.

    Composite counters (`praise`, `command`) are derived during folding and
    never incremented independently.
    """

    echo: int = 0
    labeled_praise: int = 0
    unlabeled_praise: int = 0
    praise: int = 0
    narration: int = 0
    direct_command: int = 0
    indirect_command: int = 0
    vague_command: int = 0
    chained_command: int = 0
    command: int = 0
    question: int = 0
    criticism: int = 0
    neutral: int = 0

    @property
    def negatives(self) -> int:
        """Total of the undesirable categories (questions, commands, criticism)."""
        return self.question + self.command + self.criticism


class Utterance(BaseModel):
    """Domain model for one speech segment (or synthetic silent slot)."""

    id: Optional[UUID] = None
    recording_id: Optional[UUID] = None
    speaker: str
    text: str = ""
    start_time: float
    end_time: float
    order: int = 0
    role: Optional[SpeakerRole] = None
    behavioral_code: Optional[str] = None
    display_tag: Optional[str] = None
    feedback: Optional[str] = None
    revised_feedback: Optional[str] = None
    additional_tip: Optional[str] = None

    class Config:
        from_attributes = True

    @property
    def is_silent(self) -> bool:
        return self.speaker == SILENT_SPEAKER_ID

    @property
    def duration(self) -> float:
        return max(0.0, self.end_time - self.start_time)


class AnalysisResult(BaseModel):
    """Outcome of one successful attempt, embedded in the recording."""

    tag_counts: TagCounts
    overall_score: int
    competency_analysis: Optional[dict[str, Any]] = None
    developmental_profile: Optional[dict[str, Any]] = None
    coaching_summary: Optional[str] = None
    coaching_cards: Optional[dict[str, Any]] = None
    pdi_analysis: Optional[dict[str, Any]] = None


class Recording(BaseModel):
    """Domain model for a recorded play session (aggregate root)."""

    id: UUID
    user_id: str
    mode: RecordingMode = RecordingMode.CDI
    duration_seconds: Optional[float] = None
    storage_path: str
    analysis_status: AnalysisStatus = AnalysisStatus.PENDING
    retry_count: int = 0
    last_retried_at: Optional[datetime] = None
    permanent_failure: bool = False
    analysis_error: Optional[str] = None
    analysis_failed_at: Optional[datetime] = None
    transcript: Optional[str] = None
    transcription_service: Optional[str] = None
    transcribed_at: Optional[datetime] = None
    transcription_review: Optional[dict[str, Any]] = None
    tag_counts: Optional[dict[str, int]] = None
    overall_score: Optional[int] = None
    competency_analysis: Optional[dict[str, Any]] = None
    developmental_profile: Optional[dict[str, Any]] = None
    coaching_summary: Optional[str] = None
    coaching_cards: Optional[dict[str, Any]] = None
    pdi_analysis: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    utterances: list[Utterance] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @property
    def is_terminal(self) -> bool:
        return self.permanent_failure or self.analysis_status.is_terminal
