"""High-level orchestration map for the recording processing pipeline.

`RecordingProcessor` (``retry``) drives attempts and `RecordingPipeline`
(``processor``) runs one attempt. This module documents the canonical
execution order so team members can navigate the codebase more easily:

1. ``storage`` – download the stored session audio.
2. ``transcription`` – run the configured speech-to-text mode.
3. ``silence`` – insert silent slots for notable gaps.
4. ``roles`` – label each speaker adult/child.
5. ``coding`` – code adult utterances and fold TagCounts.
6. ``scoring`` – map TagCounts to the session score.
7. ``feedback`` – session narrative plus settled secondary branches.
8. ``retry`` – terminal transition, notifications and alerts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class PipelineStage:
    """Human-readable description of one stage in the recording pipeline."""

    order: int
    name: str
    module: str
    summary: str


class RecordingAnalysisPipeline:
    """Utility wrapper for documenting the per-recording flow."""

    _STAGES: List[PipelineStage] = [
        PipelineStage(
            1,
            "Audio Download",
            "app.services.storage",
            "Fetch the durably stored audio bytes referenced by the recording.",
        ),
        PipelineStage(
            2,
            "Transcription",
            "app.pipelines.recording.transcription",
            "Single provider, two-pass diarization merge, or legacy provider chain.",
        ),
        PipelineStage(
            3,
            "Silence Synthesis",
            "app.pipelines.recording.silence",
            "Insert silent slots for gaps at or above the configured threshold.",
        ),
        PipelineStage(
            4,
            "Role Identification",
            "app.pipelines.recording.roles",
            "One holistic LLM call labelling speakers; at least one adult required.",
        ),
        PipelineStage(
            5,
            "Behavioral Coding",
            "app.pipelines.recording.coding",
            "Code every adult utterance and fold the codes into TagCounts.",
        ),
        PipelineStage(
            6,
            "Scoring",
            "app.domain.scoring",
            "Deterministic per-mode scoring strategy over TagCounts.",
        ),
        PipelineStage(
            7,
            "Feedback Synthesis",
            "app.pipelines.recording.feedback",
            "Session narrative, revisions and concurrent profiling branches.",
        ),
        PipelineStage(
            8,
            "Terminal Transition",
            "app.pipelines.recording.retry",
            "Persist COMPLETED/FAILED, notify the user, alert operations on failure.",
        ),
    ]

    @classmethod
    def describe(cls) -> Iterable[PipelineStage]:
        """Expose the ordered list of stages for debugging and documentation."""

        return tuple(cls._STAGES)


__all__ = ["RecordingAnalysisPipeline", "PipelineStage"]
