from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence
from uuid import UUID

from app.domain.models import AnalysisResult, Recording, Utterance
from app.pipelines.recording.types import (
    CodingResult,
    FailureReport,
    FeedbackRevision,
    NotificationEvent,
    ProviderTranscript,
    RoleAssignment,
)


class RecordingRepositoryInterface(ABC):
    """Persistence contract for recordings and their utterances.

    Every write is a whole-field overwrite keyed by recording id so that a
    retried attempt replaces what an earlier attempt stored. Utterance rows
    are created by `save_transcription` only; later stages update their
    role, code and feedback fields in place by utterance id. Stage writes
    raise `RecordingTerminalError` once the recording is COMPLETED or FAILED.
    """

    @abstractmethod
    async def get(self, recording_id: UUID) -> Optional[Recording]:
        ...

    @abstractmethod
    async def list_utterances(self, recording_id: UUID) -> List[Utterance]:
        ...

    @abstractmethod
    async def start_attempt(
        self,
        recording_id: UUID,
        *,
        retry_count: int,
        retried_at: Optional[datetime],
    ) -> bool:
        """Move a non-terminal recording to PROCESSING; returns False when already terminal."""

    @abstractmethod
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
        """Store transcription artifacts and replace the recording's utterances.

        Returns the stored utterances carrying their ids. Raises
        `RecordingTerminalError` when the recording is no longer PROCESSING.
        """

    @abstractmethod
    async def save_role_identification(
        self,
        recording_id: UUID,
        payload: Mapping[str, Any],
        utterances: Sequence[Utterance],
    ) -> None:
        ...

    @abstractmethod
    async def save_behavioral_coding(
        self,
        recording_id: UUID,
        payload: Mapping[str, Any],
        utterances: Sequence[Utterance],
    ) -> None:
        ...

    @abstractmethod
    async def save_analysis(
        self,
        recording_id: UUID,
        result: AnalysisResult,
        utterances: Sequence[Utterance],
    ) -> None:
        ...

    @abstractmethod
    async def mark_completed(self, recording_id: UUID) -> bool:
        """Transition to COMPLETED; returns False when already terminal."""

    @abstractmethod
    async def mark_failed(
        self,
        recording_id: UUID,
        *,
        error: str,
        failed_at: datetime,
    ) -> bool:
        """Transition to FAILED permanently; returns False when already terminal."""

    @abstractmethod
    async def count_completed(self, user_id: str) -> int:
        ...

    @abstractmethod
    async def list_completed(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Recording]:
        ...


class TranscriberInterface(ABC):
    """Speech-to-text capability returning words and/or segments."""

    name: str = "unknown"

    @abstractmethod
    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        content_type: str,
        keyterms: Sequence[str] = (),
    ) -> ProviderTranscript:
        ...


class LlmClientInterface(ABC):
    """Conversational completion endpoint returning raw text."""

    @abstractmethod
    async def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        model_id: str | None = None,
    ) -> str | None:
        ...


class RoleClassifierInterface(ABC):
    @abstractmethod
    async def classify(self, utterances: Sequence[Utterance]) -> RoleAssignment:
        ...


class BehavioralCoderInterface(ABC):
    @abstractmethod
    async def code(
        self,
        utterances: Sequence[Utterance],
        mode: str,
    ) -> tuple[List[CodingResult], str]:
        """Return coded adult utterances plus the raw model response."""


class NarrativeGeneratorInterface(ABC):
    """Session-level narrative capabilities used by the feedback synthesizer."""

    @abstractmethod
    async def session_narrative(
        self,
        utterances: Sequence[Utterance],
        tag_counts: Mapping[str, int],
        mode: str,
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    async def revise_feedback(
        self,
        utterances: Sequence[Utterance],
        max_silent_slots: int,
    ) -> List[FeedbackRevision]:
        ...

    @abstractmethod
    async def developmental_profile(
        self,
        utterances: Sequence[Utterance],
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    async def coaching_narrative(
        self,
        utterances: Sequence[Utterance],
        tag_counts: Mapping[str, int],
    ) -> str:
        ...

    @abstractmethod
    async def format_coaching_cards(self, narrative: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def pdi_analysis(
        self,
        utterances: Sequence[Utterance],
        tag_counts: Mapping[str, int],
    ) -> dict[str, Any]:
        ...


class AudioStoreInterface(ABC):
    """Read access to durably stored session audio."""

    @abstractmethod
    async def fetch_audio(self, storage_path: str) -> tuple[bytes, str]:
        """Return the audio bytes and their content type."""

    @abstractmethod
    async def presigned_url(self, storage_path: str) -> Optional[str]:
        ...


class NotifierInterface(ABC):
    @abstractmethod
    async def notify(self, event: NotificationEvent) -> None:
        ...


class OperationsAlertInterface(ABC):
    @abstractmethod
    async def report_failure(self, report: FailureReport) -> None:
        ...
