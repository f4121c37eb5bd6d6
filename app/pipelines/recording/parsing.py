"""Provider output normalization (Stage 01b).

Turns word tokens or utterance segments into the common Utterance shape and
renders the plain-text transcript stored on the recording.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from app.domain.models import Utterance

from .types import ProviderTranscript, SpeechSegment, WordToken

_SENTENCE_END = re.compile(r"[。！？.!?]$")
_AUDIO_EVENT = re.compile(r"\([^)]*\)")
_WHITESPACE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """Drop parenthesised audio events and collapse whitespace."""

    return _WHITESPACE.sub(" ", _AUDIO_EVENT.sub("", text or "")).strip()


def _join_words(words: Sequence[WordToken]) -> str:
    return clean_text(" ".join(word.text.strip() for word in words))


def group_words(words: Iterable[WordToken]) -> list[Utterance]:
    """Group word tokens into utterances.

    A new utterance starts whenever the speaker changes or the previous word
    ended a sentence. Spacing tokens carry no timing information and are
    skipped; utterances left empty after cleaning are dropped.
    """

    groups: list[tuple[str, list[WordToken]]] = []
    current_speaker: str | None = None
    current: list[WordToken] = []

    for word in words:
        if word.type == "spacing" or not word.text.strip():
            continue
        speaker = word.speaker or "speaker_0"
        if current and speaker != current_speaker:
            groups.append((current_speaker or speaker, current))
            current = []
        current_speaker = speaker
        current.append(word)
        if _SENTENCE_END.search(word.text.strip()):
            groups.append((speaker, current))
            current = []

    if current:
        groups.append((current_speaker or "speaker_0", current))

    utterances: list[Utterance] = []
    for speaker, chunk in groups:
        text = _join_words(chunk)
        if not text:
            continue
        utterances.append(
            Utterance(
                speaker=speaker,
                text=text,
                start_time=chunk[0].start,
                end_time=chunk[-1].end,
                order=len(utterances),
            )
        )
    return utterances


def normalize_speaker_label(label: str | None) -> str:
    """Map letter labels (A, B, ...) and bare digits onto `speaker_N` ids."""

    if label is None:
        return "speaker_0"
    value = str(label).strip()
    if len(value) == 1 and value.isalpha():
        return f"speaker_{ord(value.upper()) - ord('A')}"
    if value.isdigit():
        return f"speaker_{value}"
    if value.lower().startswith("spk_") and value[4:].isdigit():
        return f"speaker_{value[4:]}"
    return value


def segments_to_utterances(segments: Iterable[SpeechSegment]) -> list[Utterance]:
    """Normalize provider segments, sorted by start time with dense order."""

    ordered = sorted(segments, key=lambda segment: (segment.start, segment.end))
    utterances: list[Utterance] = []
    for segment in ordered:
        text = clean_text(segment.text)
        if not text:
            continue
        utterances.append(
            Utterance(
                speaker=normalize_speaker_label(segment.speaker),
                text=text,
                start_time=segment.start,
                end_time=max(segment.end, segment.start),
                order=len(utterances),
            )
        )
    return utterances


def transcript_to_utterances(transcript: ProviderTranscript) -> list[Utterance]:
    """Prefer provider segments; otherwise group the word tokens."""

    if transcript.segments:
        return segments_to_utterances(transcript.segments)
    return group_words(transcript.words)


def format_transcript(utterances: Sequence[Utterance]) -> str:
    """Render `[NN] speaker | start-end s | text` lines."""

    lines = []
    for utterance in utterances:
        lines.append(
            f"[{utterance.order:02d}] {utterance.speaker} | "
            f"{utterance.start_time:.2f}-{utterance.end_time:.2f}s | {utterance.text}"
        )
    return "\n".join(lines)


__all__ = [
    "clean_text",
    "format_transcript",
    "group_words",
    "normalize_speaker_label",
    "segments_to_utterances",
    "transcript_to_utterances",
]
