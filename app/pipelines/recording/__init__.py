"""Recording processing pipeline package.

Modules follow the order in which one recording is processed:

1. `transcription` / `parsing` – provider calls and normalization.
2. `silence` – silent-slot synthesis.
3. `roles` – adult/child speaker identification.
4. `coding` – behavioral codes and TagCounts.
5. `feedback` – narrative synthesis with settled secondary branches.
6. `processor` – one full attempt; `retry` – the attempt loop.
7. `flow` – human-readable description of the end-to-end stages.

Only the dependency-free modules are re-exported here; import stage modules
directly so the application ports can reference `types` without cycles.
"""

from .flow import PipelineStage, RecordingAnalysisPipeline
from .types import (
    CodingOutcome,
    CodingResult,
    DivergenceReport,
    FailureReport,
    FeedbackBundle,
    FeedbackRevision,
    NotificationEvent,
    ProviderTranscript,
    RoleAssignment,
    SpeechSegment,
    TranscriptionOutcome,
    WordToken,
)

__all__ = [
    "CodingOutcome",
    "CodingResult",
    "DivergenceReport",
    "FailureReport",
    "FeedbackBundle",
    "FeedbackRevision",
    "NotificationEvent",
    "PipelineStage",
    "ProviderTranscript",
    "RecordingAnalysisPipeline",
    "RoleAssignment",
    "SpeechSegment",
    "TranscriptionOutcome",
    "WordToken",
]
