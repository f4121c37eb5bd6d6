"""SQLAlchemy model for recorded play sessions."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.domain.models import AnalysisStatus, RecordingMode
from app.models.base import Base, utcnow


class Recording(Base):
    __tablename__ = "recordings"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    user_id = Column(String(128), nullable=False, index=True)
    mode = Column(
        SqlEnum(RecordingMode, name="recording_mode"),
        nullable=False,
        default=RecordingMode.CDI,
    )
    storage_path = Column(String(1024), nullable=False)
    duration_seconds = Column(Float, nullable=True)

    # processing state
    analysis_status = Column(
        SqlEnum(AnalysisStatus, name="analysis_status"),
        nullable=False,
        default=AnalysisStatus.PENDING,
        index=True,
    )
    retry_count = Column(Integer, nullable=False, default=0)
    last_retried_at = Column(DateTime(timezone=True), nullable=True)
    permanent_failure = Column(Boolean, nullable=False, default=False)
    analysis_error = Column(Text, nullable=True)
    analysis_failed_at = Column(DateTime(timezone=True), nullable=True)

    # transcription artifacts
    transcript = Column(Text, nullable=True)
    transcription_service = Column(String(128), nullable=True)
    transcribed_at = Column(DateTime(timezone=True), nullable=True)
    raw_transcription = Column(JSONB, nullable=True)
    transcription_review = Column(JSONB, nullable=True)
    role_identification = Column(JSONB, nullable=True)
    behavioral_coding = Column(JSONB, nullable=True)

    # analysis result
    tag_counts = Column(JSONB, nullable=True)
    overall_score = Column(Integer, nullable=True)
    competency_analysis = Column(JSONB, nullable=True)
    developmental_profile = Column(JSONB, nullable=True)
    coaching_summary = Column(Text, nullable=True)
    coaching_cards = Column(JSONB, nullable=True)
    pdi_analysis = Column(JSONB, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    # relationships
    utterances = relationship(
        "Utterance",
        back_populates="recording",
        cascade="all, delete-orphan",
        order_by="Utterance.order",
    )


__all__ = ["Recording"]
