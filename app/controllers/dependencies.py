"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from app.application.interfaces import RecordingRepositoryInterface
from app.config.dependencies import get_recording_processor, get_recording_repository
from app.pipelines.recording.retry import RecordingProcessor


def get_repository() -> RecordingRepositoryInterface:
    """Return the shared recording repository."""

    return get_recording_repository()


def get_processor() -> RecordingProcessor:
    """Return the shared retrying processor (built on first request)."""

    return get_recording_processor()


RepositoryDep = Annotated[RecordingRepositoryInterface, Depends(get_repository)]
ProcessorDep = Annotated[RecordingProcessor, Depends(get_processor)]


__all__ = ["get_repository", "get_processor", "RepositoryDep", "ProcessorDep"]
