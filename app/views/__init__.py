"""Pydantic schemas used as views in the MVC architecture."""

from .common import ErrorResponse
from .recordings import (
    AudioReadyRequest,
    AudioReadyResponse,
    RecordingResponse,
    UtteranceResponse,
)
from .reports import WeeklyReportResponse

__all__ = [
    "AudioReadyRequest",
    "AudioReadyResponse",
    "RecordingResponse",
    "UtteranceResponse",
    "WeeklyReportResponse",
    "ErrorResponse",
]
