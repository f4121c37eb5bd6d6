from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Callable, List, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces import RecordingRepositoryInterface
from app.database import session_scope
from app.domain.errors import RecordingTerminalError
from app.domain.models import (
    MUTABLE_UTTERANCE_FIELDS,
    AnalysisResult,
    AnalysisStatus,
    Recording,
    Utterance,
)
from app.models.recording import Recording as RecordingEntity
from app.models.utterance import Utterance as UtteranceEntity

_TERMINAL_STATUSES = (AnalysisStatus.COMPLETED, AnalysisStatus.FAILED)


def _to_recording(entity: RecordingEntity) -> Recording:
    data = {
        column.name: getattr(entity, column.name)
        for column in RecordingEntity.__table__.columns
        if column.name in Recording.model_fields
    }
    return Recording.model_validate(data)


def _to_entities(recording_id: UUID, utterances: Sequence[Utterance]) -> List[UtteranceEntity]:
    return [
        UtteranceEntity(
            id=utterance.id or uuid4(),
            recording_id=recording_id,
            speaker=utterance.speaker,
            text=utterance.text,
            start_time=utterance.start_time,
            end_time=utterance.end_time,
            order=utterance.order,
            role=utterance.role,
            behavioral_code=utterance.behavioral_code,
            display_tag=utterance.display_tag,
            feedback=utterance.feedback,
            revised_feedback=utterance.revised_feedback,
            additional_tip=utterance.additional_tip,
        )
        for utterance in utterances
    ]


def _not_terminal():
    return (
        RecordingEntity.analysis_status.notin_(_TERMINAL_STATUSES),
        RecordingEntity.permanent_failure.is_(False),
    )


class SQLAlchemyRecordingRepository(RecordingRepositoryInterface):
    """SQLAlchemy implementation of the recording repository.

    Each call opens its own session so a long-running attempt never holds a
    connection across external provider calls.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncContextManager[AsyncSession]] = session_scope,
    ):
        self._session_factory = session_factory

    async def get(self, recording_id: UUID) -> Optional[Recording]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RecordingEntity).where(RecordingEntity.id == recording_id)
            )
            entity = result.scalar_one_or_none()
            return _to_recording(entity) if entity else None

    async def list_utterances(self, recording_id: UUID) -> List[Utterance]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UtteranceEntity)
                .where(UtteranceEntity.recording_id == recording_id)
                .order_by(UtteranceEntity.order)
            )
            return [Utterance.model_validate(row) for row in result.scalars().all()]

    async def start_attempt(
        self,
        recording_id: UUID,
        *,
        retry_count: int,
        retried_at: Optional[datetime],
    ) -> bool:
        values: dict[str, Any] = {
            "analysis_status": AnalysisStatus.PROCESSING,
            "retry_count": retry_count,
        }
        if retried_at is not None:
            values["last_retried_at"] = retried_at
        return await self._update(recording_id, values)

    async def save_transcription(
        self,
        recording_id: UUID,
        *,
        transcript: str,
        service: str,
        raw_response: Mapping[str, Any],
        review: Optional[Mapping[str, Any]],
        utterances: Sequence[Utterance],
    ) -> List[Utterance]:
        async with self._session_factory() as session:
            await self._update_processing(
                session,
                recording_id,
                {
                    "transcript": transcript,
                    "transcription_service": service,
                    "transcribed_at": datetime.now(timezone.utc),
                    "raw_transcription": dict(raw_response),
                    "transcription_review": dict(review) if review else None,
                },
            )
            await session.execute(
                delete(UtteranceEntity).where(UtteranceEntity.recording_id == recording_id)
            )
            entities = _to_entities(recording_id, utterances)
            session.add_all(entities)
            await session.commit()
            return [Utterance.model_validate(entity) for entity in entities]

    async def save_role_identification(
        self,
        recording_id: UUID,
        payload: Mapping[str, Any],
        utterances: Sequence[Utterance],
    ) -> None:
        async with self._session_factory() as session:
            await self._update_processing(
                session, recording_id, {"role_identification": dict(payload)}
            )
            await self._update_utterance_fields(session, utterances)
            await session.commit()

    async def save_behavioral_coding(
        self,
        recording_id: UUID,
        payload: Mapping[str, Any],
        utterances: Sequence[Utterance],
    ) -> None:
        async with self._session_factory() as session:
            await self._update_processing(
                session, recording_id, {"behavioral_coding": dict(payload)}
            )
            await self._update_utterance_fields(session, utterances)
            await session.commit()

    async def save_analysis(
        self,
        recording_id: UUID,
        result: AnalysisResult,
        utterances: Sequence[Utterance],
    ) -> None:
        async with self._session_factory() as session:
            await self._update_processing(
                session,
                recording_id,
                {
                    "tag_counts": result.tag_counts.model_dump(),
                    "overall_score": result.overall_score,
                    "competency_analysis": result.competency_analysis,
                    "developmental_profile": result.developmental_profile,
                    "coaching_summary": result.coaching_summary,
                    "coaching_cards": result.coaching_cards,
                    "pdi_analysis": result.pdi_analysis,
                },
            )
            await self._update_utterance_fields(session, utterances)
            await session.commit()

    async def mark_completed(self, recording_id: UUID) -> bool:
        now = datetime.now(timezone.utc)
        return await self._update(
            recording_id,
            {
                "analysis_status": AnalysisStatus.COMPLETED,
                "analysis_error": None,
                "completed_at": now,
            },
        )

    async def mark_failed(
        self,
        recording_id: UUID,
        *,
        error: str,
        failed_at: datetime,
    ) -> bool:
        return await self._update(
            recording_id,
            {
                "analysis_status": AnalysisStatus.FAILED,
                "analysis_error": error,
                "analysis_failed_at": failed_at,
                "permanent_failure": True,
            },
        )

    async def count_completed(self, user_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(RecordingEntity.id))
                .where(RecordingEntity.user_id == user_id)
                .where(RecordingEntity.analysis_status == AnalysisStatus.COMPLETED)
            )
            return int(result.scalar_one())

    async def list_completed(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Recording]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RecordingEntity)
                .where(RecordingEntity.user_id == user_id)
                .where(RecordingEntity.analysis_status == AnalysisStatus.COMPLETED)
                .where(RecordingEntity.overall_score.is_not(None))
                .where(RecordingEntity.created_at >= start)
                .where(RecordingEntity.created_at < end)
                .order_by(RecordingEntity.created_at)
            )
            recordings = [_to_recording(entity) for entity in result.scalars().all()]
            for recording in recordings:
                rows = await session.execute(
                    select(UtteranceEntity)
                    .where(UtteranceEntity.recording_id == recording.id)
                    .order_by(UtteranceEntity.order)
                )
                recording.utterances = [
                    Utterance.model_validate(row) for row in rows.scalars().all()
                ]
            return recordings

    async def _update(
        self,
        recording_id: UUID,
        values: Mapping[str, Any],
    ) -> bool:
        statement = (
            update(RecordingEntity)
            .where(RecordingEntity.id == recording_id)
            .where(*_not_terminal())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement.values(**values))
            await session.commit()
            return result.rowcount == 1

    @staticmethod
    async def _update_processing(
        session: AsyncSession,
        recording_id: UUID,
        values: Mapping[str, Any],
    ) -> None:
        result = await session.execute(
            update(RecordingEntity)
            .where(RecordingEntity.id == recording_id)
            .where(RecordingEntity.analysis_status == AnalysisStatus.PROCESSING)
            .values(**values)
        )
        if result.rowcount != 1:
            raise RecordingTerminalError(
                f"Recording {recording_id} is no longer processing; write discarded"
            )

    @staticmethod
    async def _update_utterance_fields(
        session: AsyncSession,
        utterances: Sequence[Utterance],
    ) -> None:
        rows = []
        for utterance in utterances:
            if utterance.id is None:
                raise ValueError("Utterances must be stored before their fields can be updated")
            rows.append(
                {
                    "id": utterance.id,
                    **{name: getattr(utterance, name) for name in MUTABLE_UTTERANCE_FIELDS},
                }
            )
        if rows:
            # ORM bulk UPDATE keyed by primary key
            await session.execute(update(UtteranceEntity), rows)
