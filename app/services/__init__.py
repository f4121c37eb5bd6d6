"""Service layer helpers for external integrations."""

from .elevenlabs import ElevenLabsTranscriber
from .llm_client import BedrockLlmClient, LlmInvocationError
from .response_contract import ResponseContractError
from .storage import S3AudioStore, StorageError
from .transcribe import TranscribeService, build_transcribe_service

__all__ = [
    "BedrockLlmClient",
    "LlmInvocationError",
    "ElevenLabsTranscriber",
    "TranscribeService",
    "build_transcribe_service",
    "ResponseContractError",
    "S3AudioStore",
    "StorageError",
]
