"""Composition root wiring the recording pipeline to its providers."""

from __future__ import annotations

from functools import lru_cache
from typing import Callable, Dict

from app.application.interfaces import (
    AudioStoreInterface,
    LlmClientInterface,
    RecordingRepositoryInterface,
    TranscriberInterface,
)
from app.domain.scoring import Scorer
from app.infrastructure.external.mq_adapter import RabbitMQNotifier
from app.infrastructure.external.slack_adapter import SlackOpsAlerter
from app.infrastructure.persistence.repositories_sqlalchemy import (
    SQLAlchemyRecordingRepository,
)
from app.pipelines.recording.coding import LlmBehavioralCoder
from app.pipelines.recording.feedback import FeedbackSynthesizer, LlmNarrativeGenerator
from app.pipelines.recording.processor import RecordingPipeline
from app.pipelines.recording.retry import MilestoneCheck, RecordingProcessor
from app.pipelines.recording.roles import LlmRoleClassifier
from app.pipelines.recording.transcription import TranscriptionOrchestrator
from app.services.elevenlabs import ElevenLabsTranscriber
from app.services.llm_client import BedrockLlmClient
from app.services.storage import S3AudioStore
from app.services.transcribe import build_transcribe_service

from .settings import settings


def _diarization_transcriber() -> TranscriberInterface:
    return ElevenLabsTranscriber(
        model_id=settings.elevenlabs.diarization_model,
        name="elevenlabs-v1",
    )


def _text_transcriber() -> TranscriberInterface:
    return ElevenLabsTranscriber(
        model_id=settings.elevenlabs.text_model,
        name="elevenlabs-v2",
    )


_PROVIDER_FACTORIES: Dict[str, Callable[[], TranscriberInterface]] = {
    "elevenlabs-v1": _diarization_transcriber,
    "elevenlabs-v2": _text_transcriber,
    "amazon-transcribe": build_transcribe_service,
}


def build_chain(names: list[str]) -> list[TranscriberInterface]:
    """Instantiate the configured fallback providers in priority order."""

    providers = []
    for name in names:
        factory = _PROVIDER_FACTORIES.get(name)
        if factory is None:
            raise ValueError(f"Unknown transcription provider: {name}")
        providers.append(factory())
    return providers


def build_transcription() -> TranscriptionOrchestrator:
    config = settings.pipeline
    chain = build_chain(config.chain_providers) if config.transcription_mode == "chain" else ()
    return TranscriptionOrchestrator(
        diarization=_diarization_transcriber(),
        text=_text_transcriber(),
        chain=chain,
        mode=config.transcription_mode,
        divergence_threshold=config.divergence_threshold,
    )


def build_pipeline(
    repository: RecordingRepositoryInterface,
    audio_store: AudioStoreInterface,
    llm: LlmClientInterface,
) -> RecordingPipeline:
    """Assemble one attempt's stages from the pipeline settings."""

    config = settings.pipeline
    return RecordingPipeline(
        repository=repository,
        audio_store=audio_store,
        transcription=build_transcription(),
        role_classifier=LlmRoleClassifier(llm),
        coder=LlmBehavioralCoder(llm, max_tokens=settings.bedrock.coding_max_tokens),
        synthesizer=FeedbackSynthesizer(
            LlmNarrativeGenerator(
                llm,
                coaching_model_id=settings.bedrock.coaching_model_id,
            ),
            max_silent_slots=config.max_silent_slots,
            profiling_enabled=config.profiling_enabled,
        ),
        scorer=Scorer(),
        silence_threshold=config.silence_threshold_seconds,
        keyterms=config.keyterms,
    )


@lru_cache()
def get_recording_repository() -> SQLAlchemyRecordingRepository:
    return SQLAlchemyRecordingRepository()


@lru_cache()
def get_recording_processor() -> RecordingProcessor:
    """Build the retrying processor once per process.

    Providers are only constructed on first use so importing the app never
    touches AWS, ElevenLabs or RabbitMQ.
    """

    config = settings.pipeline
    repository = get_recording_repository()
    audio_store = S3AudioStore()
    notifier = RabbitMQNotifier()

    return RecordingProcessor(
        pipeline=build_pipeline(repository, audio_store, BedrockLlmClient()),
        repository=repository,
        notifier=notifier,
        alerter=SlackOpsAlerter(),
        audio_store=audio_store,
        max_attempts=config.max_attempts,
        backoff_seconds=config.backoff_seconds,
        post_success_hooks=(
            MilestoneCheck(
                repository,
                notifier,
                threshold=config.milestone_session_count,
            ),
        ),
    )


__all__ = [
    "build_chain",
    "build_pipeline",
    "build_transcription",
    "get_recording_processor",
    "get_recording_repository",
]
