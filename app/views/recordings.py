"""Pydantic schemas for recording endpoints."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.domain.models import AnalysisStatus, RecordingMode, SpeakerRole


class AudioReadyRequest(BaseModel):
    """Signal that a recording's audio has finished uploading."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId", description="Owner of the recording")


class AudioReadyResponse(BaseModel):
    recording_id: UUID = Field(..., description="Recording scheduled for processing")
    status: str = Field(default="accepted", description="Scheduling outcome")


class UtteranceResponse(BaseModel):
    """One transcribed utterance or silent slot with its coaching output."""

    order: int = Field(..., description="Dense position within the recording")
    speaker: str = Field(..., description="Provider speaker label or silent marker")
    role: Optional[SpeakerRole] = Field(None, description="adult or child")
    text: str = Field(..., description="Utterance text, empty for silent slots")
    start_time: float = Field(..., description="Start offset in seconds")
    end_time: float = Field(..., description="End offset in seconds")
    behavioral_code: Optional[str] = Field(None, description="Behavioral code")
    display_tag: Optional[str] = Field(None, description="Human-readable code label")
    feedback: Optional[str] = Field(None, description="Per-utterance feedback")
    revised_feedback: Optional[str] = Field(None, description="Revised feedback")
    additional_tip: Optional[str] = Field(None, description="Extra coaching tip")

    class Config:
        from_attributes = True


class RecordingResponse(BaseModel):
    """Processing status and analysis of one recording."""

    id: UUID = Field(..., description="Recording identifier")
    user_id: str = Field(..., description="Owner of the recording")
    mode: RecordingMode = Field(..., description="CDI or PDI")
    duration_seconds: Optional[float] = Field(None, description="Audio length")
    analysis_status: AnalysisStatus = Field(..., description="Pipeline status")
    retry_count: int = Field(..., description="Zero-based index of the last attempt")
    permanent_failure: bool = Field(..., description="True once retries are exhausted")
    analysis_error: Optional[str] = Field(None, description="Last recorded error")
    transcription_service: Optional[str] = Field(None, description="Provider label")
    tag_counts: Optional[dict[str, int]] = Field(None, description="Behavioral code totals")
    overall_score: Optional[int] = Field(None, description="Session score 0-100")
    competency_analysis: Optional[dict[str, Any]] = Field(None, description="Session narrative")
    developmental_profile: Optional[dict[str, Any]] = Field(None, description="Developmental profile")
    coaching_summary: Optional[str] = Field(None, description="Coaching narrative")
    coaching_cards: Optional[dict[str, Any]] = Field(None, description="Structured coaching cards")
    pdi_analysis: Optional[dict[str, Any]] = Field(None, description="PDI analysis")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")

    class Config:
        from_attributes = True
