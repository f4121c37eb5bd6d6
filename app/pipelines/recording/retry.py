"""Retry / failure orchestration around whole-pipeline attempts.

State machine per recording::

    PENDING -> PROCESSING (attempt 1)
    PROCESSING --success--> COMPLETED
    PROCESSING --error, attempts left--> PROCESSING (next attempt, after backoff)
    PROCESSING --error, budget spent--> FAILED (permanent_failure=True)

The delay for attempt N is `backoff[N-1]` and is slept *before* the attempt.
A recording another worker already finished stops the loop: the guarded
`start_attempt` returns False or a stage write raises `RecordingTerminalError`.
Terminal side effects (notifications, alerts, post-success hooks) are
best-effort: their failures are logged and never change the outcome.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence
from uuid import UUID

from app.application.interfaces import (
    AudioStoreInterface,
    NotifierInterface,
    OperationsAlertInterface,
    RecordingRepositoryInterface,
)
from app.domain.errors import RecordingNotFoundError, RecordingTerminalError
from app.domain.models import AnalysisStatus, Recording
from app.telemetry import record_attempt, record_terminal

from .processor import RecordingPipeline
from .types import FailureReport, NotificationEvent

logger = logging.getLogger("app.services.recording_pipeline")

DEFAULT_BACKOFF_SECONDS: tuple[float, ...] = (0.0, 5.0, 15.0)
FAILURE_TITLE = "Recording Processing Failed"
FAILURE_BODY = "We encountered an issue processing your recording. Please try again."
READY_TITLE = "Your Play Session Report is Ready"
READY_BODY = "Tap to see how your session went and what to try next."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PostSuccessHook(ABC):
    """Best-effort follow-up run after a recording completes."""

    name: str = "hook"

    @abstractmethod
    async def run(self, recording: Recording) -> None:
        ...


class MilestoneCheck(PostSuccessHook):
    """Notify the user once they reach the milestone-unlock session count."""

    name = "milestones"

    def __init__(
        self,
        repository: RecordingRepositoryInterface,
        notifier: NotifierInterface,
        *,
        threshold: int = 5,
    ) -> None:
        self._repository = repository
        self._notifier = notifier
        self._threshold = threshold

    async def run(self, recording: Recording) -> None:
        completed = await self._repository.count_completed(recording.user_id)
        if completed != self._threshold:
            return
        await self._notifier.notify(
            NotificationEvent(
                type="milestones_unlocked",
                recording_id=recording.id,
                user_id=recording.user_id,
                title="Milestones Unlocked!",
                body="You've completed enough sessions to see your child's developmental milestones.",
                data={"completedSessions": completed},
            )
        )


@dataclass
class AttemptState:
    """Inspectable progress of one `process` call."""

    recording_id: UUID
    max_attempts: int
    attempts_used: int = 0
    errors: list[str] = field(default_factory=list)
    status: AnalysisStatus = AnalysisStatus.PENDING

    @property
    def retry_count(self) -> int:
        return max(self.attempts_used - 1, 0)

    @property
    def exhausted(self) -> bool:
        return self.attempts_used >= self.max_attempts


class RecordingProcessor:
    """Explicit attempt loop with fixed backoff and permanent-failure reporting."""

    def __init__(
        self,
        *,
        pipeline: RecordingPipeline,
        repository: RecordingRepositoryInterface,
        notifier: NotifierInterface,
        alerter: OperationsAlertInterface,
        audio_store: Optional[AudioStoreInterface] = None,
        max_attempts: int = 3,
        backoff_seconds: Sequence[float] = DEFAULT_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
        post_success_hooks: Sequence[PostSuccessHook] = (),
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._pipeline = pipeline
        self._repository = repository
        self._notifier = notifier
        self._alerter = alerter
        self._audio_store = audio_store
        self._max_attempts = max_attempts
        self._backoff = tuple(backoff_seconds) or (0.0,)
        self._sleep = sleep
        self._clock = clock
        self._hooks = tuple(post_success_hooks)
        self._locks: dict[UUID, asyncio.Lock] = {}

    def _delay_before(self, attempt_index: int) -> float:
        return self._backoff[min(attempt_index, len(self._backoff) - 1)]

    def _lock_for(self, recording_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(recording_id)
        if lock is None:
            lock = self._locks[recording_id] = asyncio.Lock()
        return lock

    async def process(self, recording_id: UUID) -> AttemptState:
        """Process one recording to a terminal state (at most once concurrently)."""

        async with self._lock_for(recording_id):
            return await self._process_locked(recording_id)

    async def _process_locked(self, recording_id: UUID) -> AttemptState:
        state = AttemptState(recording_id=recording_id, max_attempts=self._max_attempts)
        recording = await self._repository.get(recording_id)
        if recording is None:
            raise RecordingNotFoundError(f"Recording {recording_id} not found")
        if recording.is_terminal:
            logger.info(
                "Recording %s ya está en estado terminal %s; se omite.",
                recording_id,
                recording.analysis_status.value,
            )
            state.status = recording.analysis_status
            return state

        while not state.exhausted:
            attempt_index = state.attempts_used
            delay = self._delay_before(attempt_index)
            if delay > 0:
                logger.info(
                    "Reintento %s/%s para recording %s en %.1fs",
                    attempt_index + 1,
                    self._max_attempts,
                    recording_id,
                    delay,
                )
                await self._sleep(delay)

            started = await self._repository.start_attempt(
                recording_id,
                retry_count=attempt_index,
                retried_at=self._clock() if attempt_index > 0 else None,
            )
            if not started:
                logger.info("Recording %s pasó a estado terminal; se detiene el reintento.", recording_id)
                await self._adopt_stored_status(recording_id, state)
                return state
            state.attempts_used += 1
            state.status = AnalysisStatus.PROCESSING

            try:
                await self._pipeline.run(recording)
            except RecordingTerminalError as exc:
                record_attempt("superseded")
                logger.warning("Intento %s descartado para recording %s: %s", state.attempts_used, recording_id, exc)
                await self._adopt_stored_status(recording_id, state)
                return state
            except Exception as exc:
                record_attempt("error")
                state.errors.append(f"{type(exc).__name__}: {exc}")
                logger.warning(
                    "Intento %s/%s falló para recording %s: %s",
                    state.attempts_used,
                    self._max_attempts,
                    recording_id,
                    exc,
                    exc_info=True,
                )
                continue

            record_attempt("success")
            await self._complete(recording, state)
            return state

        await self._fail(recording, state)
        return state

    async def _complete(self, recording: Recording, state: AttemptState) -> None:
        if not await self._repository.mark_completed(recording.id):
            logger.warning("Recording %s ya era terminal al completar.", recording.id)
            await self._adopt_stored_status(recording.id, state)
            return

        state.status = AnalysisStatus.COMPLETED
        record_terminal(AnalysisStatus.COMPLETED.value)
        logger.info("Recording %s completada tras %s intento(s).", recording.id, state.attempts_used)

        await self._safe_notify(
            NotificationEvent(
                type="report_ready",
                recording_id=recording.id,
                user_id=recording.user_id,
                title=READY_TITLE,
                body=READY_BODY,
                data={"type": "report_ready", "recordingId": str(recording.id)},
            )
        )
        for hook in self._hooks:
            try:
                await hook.run(recording)
            except Exception as exc:
                logger.warning("Hook post-éxito %s falló: %s", hook.name, exc)

    async def _fail(self, recording: Recording, state: AttemptState) -> None:
        error = state.errors[-1] if state.errors else "Unknown error"
        failed_at = self._clock()
        if not await self._repository.mark_failed(recording.id, error=error, failed_at=failed_at):
            logger.warning("Recording %s ya era terminal al fallar.", recording.id)
            await self._adopt_stored_status(recording.id, state)
            return

        state.status = AnalysisStatus.FAILED
        record_terminal(AnalysisStatus.FAILED.value)
        logger.error(
            "Recording %s falló permanentemente tras %s intentos: %s",
            recording.id,
            state.attempts_used,
            error,
        )

        await self._safe_notify(
            NotificationEvent(
                type="report_failed",
                recording_id=recording.id,
                user_id=recording.user_id,
                title=FAILURE_TITLE,
                body=FAILURE_BODY,
                data={"type": "report_failed", "recordingId": str(recording.id)},
            )
        )

        audio_url = None
        if self._audio_store is not None:
            try:
                audio_url = await self._audio_store.presigned_url(recording.storage_path)
            except Exception as exc:
                logger.warning("No se pudo firmar el audio de %s: %s", recording.id, exc)

        try:
            await self._alerter.report_failure(
                FailureReport(
                    recording_id=recording.id,
                    user_id=recording.user_id,
                    error=error,
                    retry_count=state.retry_count,
                    max_attempts=self._max_attempts,
                    failed_at=failed_at,
                    audio_url=audio_url,
                    duration_seconds=recording.duration_seconds,
                )
            )
        except Exception as exc:
            logger.warning("Alerta operativa falló para %s: %s", recording.id, exc)

    async def _adopt_stored_status(self, recording_id: UUID, state: AttemptState) -> None:
        """Report whatever terminal status another writer already stored."""

        refreshed = await self._repository.get(recording_id)
        if refreshed is not None:
            state.status = refreshed.analysis_status

    async def _safe_notify(self, event: NotificationEvent) -> None:
        try:
            await self._notifier.notify(event)
        except Exception as exc:
            logger.warning("Notificación %s falló para %s: %s", event.type, event.recording_id, exc)


__all__ = [
    "AttemptState",
    "DEFAULT_BACKOFF_SECONDS",
    "MilestoneCheck",
    "PostSuccessHook",
    "RecordingProcessor",
]
