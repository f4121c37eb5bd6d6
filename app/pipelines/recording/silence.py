"""Silent-slot synthesis (Stage 02).

Pure function over (utterances, duration, threshold). Existing slots are
discarded before gap detection so re-running on processed data is a no-op.
"""

from __future__ import annotations

from typing import Optional, Sequence

from app.domain.models import (
    SILENT_CODE,
    SILENT_DISPLAY_TAG,
    SILENT_SPEAKER_ID,
    Utterance,
)

DEFAULT_SILENCE_THRESHOLD = 3.0
# Provider timestamps are floats; 4.1 - 1.1 must still count as a 3.0s gap.
GAP_TOLERANCE = 1e-6


def silence_feedback(duration: float) -> str:
    """Default coaching line for a quiet stretch of the given length."""

    if duration >= 10:
        return (
            "This was a long quiet moment. Try narrating what your child is "
            "doing or give a labeled praise!"
        )
    if duration >= 5:
        return "Nice pause here! You could describe what your child is doing during quiet moments."
    return "A brief pause - great opportunity to add a narration or reflection."


def _qualifies(gap: float, threshold: float) -> bool:
    return gap >= threshold - GAP_TOLERANCE


def make_silent_slot(start: float, end: float) -> Utterance:
    return Utterance(
        speaker=SILENT_SPEAKER_ID,
        text="",
        start_time=start,
        end_time=end,
        behavioral_code=SILENT_CODE,
        display_tag=SILENT_DISPLAY_TAG,
        feedback=silence_feedback(end - start),
    )


def insert_silent_slots(
    utterances: Sequence[Utterance],
    duration: Optional[float],
    threshold: float = DEFAULT_SILENCE_THRESHOLD,
) -> list[Utterance]:
    """Return utterances with silent slots spanning every qualifying gap.

    Gaps are measured before the first utterance (from 0), between
    consecutive utterances, and after the last one when the recording
    duration is known. The result is chronological with dense `order`.
    """

    real = sorted(
        (utterance for utterance in utterances if not utterance.is_silent),
        key=lambda utterance: (utterance.start_time, utterance.end_time),
    )
    slots: list[Utterance] = []

    if real:
        if _qualifies(real[0].start_time, threshold):
            slots.append(make_silent_slot(0.0, real[0].start_time))

        previous_end = real[0].end_time
        for utterance in real[1:]:
            if _qualifies(utterance.start_time - previous_end, threshold):
                slots.append(make_silent_slot(previous_end, utterance.start_time))
            previous_end = max(previous_end, utterance.end_time)

        if duration is not None and _qualifies(duration - previous_end, threshold):
            slots.append(make_silent_slot(previous_end, float(duration)))
    elif duration is not None and _qualifies(duration, threshold):
        slots.append(make_silent_slot(0.0, float(duration)))

    combined = sorted(
        [*real, *slots],
        key=lambda utterance: (utterance.start_time, utterance.end_time),
    )
    return [
        utterance.model_copy(update={"order": index})
        for index, utterance in enumerate(combined)
    ]


__all__ = [
    "DEFAULT_SILENCE_THRESHOLD",
    "insert_silent_slots",
    "make_silent_slot",
    "silence_feedback",
]
