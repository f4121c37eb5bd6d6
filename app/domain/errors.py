"""Error taxonomy for recording processing.

Stage helpers raise these; only the retry orchestrator decides whether an
attempt is retried or the recording fails permanently.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for failures that abort one processing attempt."""


class TranscriptionError(PipelineError):
    """Raised when a speech-to-text provider fails or yields no utterances."""


class NoAdultSpeakerError(PipelineError):
    """Raised when role identification finds no adult speaker to code."""


class NarrativeParseError(PipelineError):
    """Raised when the session narrative cannot be parsed into its contract."""


class RecordingTerminalError(PipelineError):
    """Raised when an attempt writes to a recording that is no longer PROCESSING."""


class RecordingNotFoundError(LookupError):
    """Raised when a recording id does not resolve to a stored recording."""


__all__ = [
    "NarrativeParseError",
    "NoAdultSpeakerError",
    "PipelineError",
    "RecordingNotFoundError",
    "RecordingTerminalError",
    "TranscriptionError",
]
