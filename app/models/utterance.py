"""SQLAlchemy model for transcript utterances."""

from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.domain.models import SpeakerRole
from app.models.base import Base, utcnow


class Utterance(Base):
    __tablename__ = "utterances"
    __table_args__ = (
        UniqueConstraint("recording_id", "order", name="uq_utterances_recording_order"),
    )

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    recording_id = Column(
        ForeignKey("recordings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    speaker = Column(String(64), nullable=False)
    text = Column(Text, nullable=False, default="")
    start_time = Column(Float, nullable=False)
    end_time = Column(Float, nullable=False)
    order = Column(Integer, nullable=False)
    role = Column(
        SqlEnum(
            SpeakerRole,
            name="speaker_role",
            values_callable=lambda roles: [role.value for role in roles],
        ),
        nullable=True,
    )
    behavioral_code = Column(String(16), nullable=True)
    display_tag = Column(String(64), nullable=True)
    feedback = Column(Text, nullable=True)
    revised_feedback = Column(Text, nullable=True)
    additional_tip = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    # relationships
    recording = relationship("Recording", back_populates="utterances")


__all__ = ["Utterance"]
