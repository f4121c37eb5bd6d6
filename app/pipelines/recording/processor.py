"""Single processing attempt: transcription through persisted analysis.

Every stage here raises on failure; deciding whether to retry is left to
`app.pipelines.recording.retry.RecordingProcessor`.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Sequence

from app.application.interfaces import (
    AudioStoreInterface,
    BehavioralCoderInterface,
    RecordingRepositoryInterface,
    RoleClassifierInterface,
)
from app.domain.models import AnalysisResult, Recording, Utterance
from app.domain.scoring import Scorer
from app.telemetry import observe_stage

from .coding import apply_coding
from .feedback import FeedbackSynthesizer, apply_revisions
from .roles import apply_roles
from .silence import DEFAULT_SILENCE_THRESHOLD, insert_silent_slots
from .transcription import TranscriptionOrchestrator, review_payload

logger = logging.getLogger("app.services.recording_pipeline")
transcript_logger = logging.getLogger("app.logs.transcript")


@contextmanager
def _timed(stage: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        observe_stage(stage, time.perf_counter() - started)


class RecordingPipeline:
    """Run every stage once for a recording and persist the results."""

    def __init__(
        self,
        *,
        repository: RecordingRepositoryInterface,
        audio_store: AudioStoreInterface,
        transcription: TranscriptionOrchestrator,
        role_classifier: RoleClassifierInterface,
        coder: BehavioralCoderInterface,
        synthesizer: FeedbackSynthesizer,
        scorer: Scorer | None = None,
        silence_threshold: float = DEFAULT_SILENCE_THRESHOLD,
        keyterms: Sequence[str] = (),
    ) -> None:
        self._repository = repository
        self._audio_store = audio_store
        self._transcription = transcription
        self._role_classifier = role_classifier
        self._coder = coder
        self._synthesizer = synthesizer
        self._scorer = scorer or Scorer()
        self._silence_threshold = silence_threshold
        self._keyterms = tuple(keyterms)

    @property
    def keyterms(self) -> tuple[str, ...]:
        return self._keyterms

    async def run(self, recording: Recording) -> AnalysisResult:
        recording_id = recording.id

        with _timed("download"):
            audio_bytes, content_type = await self._audio_store.fetch_audio(recording.storage_path)

        with _timed("transcription"):
            outcome = await self._transcription.transcribe(
                audio_bytes,
                content_type=content_type,
                keyterms=self._keyterms,
            )
        transcript_logger.info(
            "recording=%s | service=%s\n%s",
            recording_id,
            outcome.service,
            outcome.transcript_text,
        )

        # Slots are stored with the speech so every row is inserted once per attempt.
        utterances: list[Utterance] = insert_silent_slots(
            outcome.utterances,
            recording.duration_seconds,
            self._silence_threshold,
        )
        utterances = await self._repository.save_transcription(
            recording_id,
            transcript=outcome.transcript_text,
            service=outcome.service,
            raw_response=outcome.raw_response,
            review=review_payload(outcome),
            utterances=utterances,
        )

        with _timed("roles"):
            assignment = await self._role_classifier.classify(utterances)
        utterances = apply_roles(utterances, assignment)
        await self._repository.save_role_identification(recording_id, assignment.raw, utterances)

        with _timed("coding"):
            results, raw_coding = await self._coder.code(utterances, recording.mode.value)
        coding = apply_coding(
            utterances,
            results,
            assignment=assignment,
            raw_response=raw_coding,
        )
        utterances = coding.utterances
        await self._repository.save_behavioral_coding(recording_id, coding.payload, utterances)

        breakdown = self._scorer.evaluate(coding.tag_counts, recording.mode)
        logger.info(
            "Recording %s codificada: counts=%s score=%s passed=%s",
            recording_id,
            coding.tag_counts.model_dump(),
            breakdown.score,
            breakdown.passed,
        )

        with _timed("feedback"):
            bundle = await self._synthesizer.synthesize(utterances, coding.tag_counts, recording.mode)
        utterances = apply_revisions(utterances, bundle.revisions)

        result = AnalysisResult(
            tag_counts=coding.tag_counts,
            overall_score=breakdown.score,
            competency_analysis=bundle.competency_analysis,
            developmental_profile=bundle.developmental_profile,
            coaching_summary=bundle.coaching_summary,
            coaching_cards=bundle.coaching_cards,
            pdi_analysis=bundle.pdi_analysis,
        )
        await self._repository.save_analysis(recording_id, result, utterances)
        if bundle.degraded:
            logger.info("Recording %s completada con etapas degradadas: %s", recording_id, bundle.degraded)
        return result


__all__ = ["RecordingPipeline"]
