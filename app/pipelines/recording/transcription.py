"""Transcription stage (Stage 01) of the recording pipeline.

Supports a single provider run (`v1` diarization model or `v2` text model),
the two-pass merge that keeps the text model's wording but re-attributes
speakers from the diarization model, and the legacy `chain` mode that tries
providers in priority order.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any, Mapping, Sequence

from app.application.interfaces import TranscriberInterface
from app.domain.errors import TranscriptionError
from app.domain.models import Utterance

from .parsing import format_transcript, transcript_to_utterances
from .types import DivergenceReport, ProviderTranscript, TranscriptionOutcome, WordToken

logger = logging.getLogger("app.services.recording_pipeline")

TRANSCRIPTION_MODES = ("v1", "v2", "two-pass", "chain")


def _overlap(start_a: float, end_a: float, start_b: float, end_b: float) -> float:
    return max(0.0, min(end_a, end_b) - max(start_a, start_b))


def _pick_speaker(utterance: Utterance, words: Sequence[WordToken]) -> str | None:
    """Diarization speaker with the greatest summed overlap for one utterance.

    Ties keep the speaker seen first in word order. Without any overlap the
    speaker of the word whose midpoint is nearest the utterance midpoint wins.
    """

    totals: dict[str, float] = {}
    for word in words:
        amount = _overlap(utterance.start_time, utterance.end_time, word.start, word.end)
        if amount > 0:
            totals[word.speaker] = totals.get(word.speaker, 0.0) + amount

    if totals:
        best_speaker, best_total = None, -1.0
        for speaker, total in totals.items():
            if total > best_total:
                best_speaker, best_total = speaker, total
        return best_speaker

    if not words:
        return None
    midpoint = (utterance.start_time + utterance.end_time) / 2
    nearest = min(
        enumerate(words),
        key=lambda item: (abs(item[1].midpoint - midpoint), item[0]),
    )
    return nearest[1].speaker


def merge_speakers(
    text_utterances: Sequence[Utterance],
    diarization_words: Sequence[WordToken],
) -> list[Utterance]:
    """Re-attribute each text-model utterance to a diarization speaker."""

    words = [
        word
        for word in diarization_words
        if word.type != "spacing" and word.speaker is not None
    ]
    merged: list[Utterance] = []
    for utterance in text_utterances:
        speaker = _pick_speaker(utterance, words) or utterance.speaker
        merged.append(utterance.model_copy(update={"speaker": speaker}))
    return merged


def assess_divergence(
    original: Sequence[Utterance],
    merged: Sequence[Utterance],
    *,
    threshold: float = 0.2,
) -> DivergenceReport:
    """Compare merged speakers against the text model's own assignment.

    Each merged speaker is mapped to the original speaker it shares the most
    speaking time with; utterances whose original speaker differs from that
    mapping count as changed.
    """

    original_speakers = {utterance.speaker for utterance in original}
    merged_speakers = {utterance.speaker for utterance in merged}

    shared: dict[str, dict[str, float]] = {}
    for before, after in zip(original, merged):
        bucket = shared.setdefault(after.speaker, {})
        bucket[before.speaker] = bucket.get(before.speaker, 0.0) + max(before.duration, 1e-6)

    mapping: dict[str, str] = {}
    for merged_speaker, candidates in shared.items():
        best, best_total = None, -1.0
        for candidate, total in candidates.items():
            if total > best_total:
                best, best_total = candidate, total
        mapping[merged_speaker] = best

    changed = sum(
        1
        for before, after in zip(original, merged)
        if mapping.get(after.speaker) != before.speaker
    )
    total = len(merged)
    ratio = changed / total if total else 0.0

    reasons = []
    if len(original_speakers) != len(merged_speakers):
        reasons.append("speaker_count_changed")
    if ratio > threshold:
        reasons.append("reassignment_ratio_exceeded")

    return DivergenceReport(
        flagged=bool(reasons),
        original_speaker_count=len(original_speakers),
        merged_speaker_count=len(merged_speakers),
        changed_ratio=ratio,
        reasons=tuple(reasons),
    )


def _reindex(utterances: Sequence[Utterance]) -> list[Utterance]:
    ordered = sorted(utterances, key=lambda utterance: (utterance.start_time, utterance.end_time))
    return [
        utterance.model_copy(update={"order": index})
        for index, utterance in enumerate(ordered)
    ]


class TranscriptionOrchestrator:
    """Run the configured provider selection and normalize the result."""

    def __init__(
        self,
        *,
        diarization: TranscriberInterface,
        text: TranscriberInterface,
        chain: Sequence[TranscriberInterface] = (),
        mode: str = "two-pass",
        divergence_threshold: float = 0.2,
    ) -> None:
        if mode not in TRANSCRIPTION_MODES:
            raise ValueError(f"Unsupported transcription mode: {mode}")
        self._diarization = diarization
        self._text = text
        self._chain = tuple(chain) or (diarization, text)
        self._mode = mode
        self._divergence_threshold = divergence_threshold

    @property
    def mode(self) -> str:
        return self._mode

    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        content_type: str,
        keyterms: Sequence[str] = (),
    ) -> TranscriptionOutcome:
        if not audio_bytes:
            raise TranscriptionError("Audio payload is empty.")

        if self._mode == "v1":
            return await self._single(self._diarization, audio_bytes, content_type, keyterms)
        if self._mode == "v2":
            return await self._single(self._text, audio_bytes, content_type, keyterms)
        if self._mode == "chain":
            return await self._chain_run(audio_bytes, content_type, keyterms)
        return await self._two_pass(audio_bytes, content_type, keyterms)

    async def _call(
        self,
        provider: TranscriberInterface,
        audio_bytes: bytes,
        content_type: str,
        keyterms: Sequence[str],
    ) -> ProviderTranscript:
        try:
            return await provider.transcribe(
                audio_bytes,
                content_type=content_type,
                keyterms=keyterms,
            )
        except TranscriptionError:
            raise
        except Exception as exc:
            raise TranscriptionError(f"{provider.name} request failed: {exc}") from exc

    async def _single(
        self,
        provider: TranscriberInterface,
        audio_bytes: bytes,
        content_type: str,
        keyterms: Sequence[str],
    ) -> TranscriptionOutcome:
        transcript = await self._call(provider, audio_bytes, content_type, keyterms)
        utterances = _reindex(transcript_to_utterances(transcript))
        if not utterances:
            raise TranscriptionError(f"No utterances parsed from {provider.name}")

        logger.info(
            "Transcripción %s: %s utterances, %s speakers",
            provider.name,
            len(utterances),
            len({utterance.speaker for utterance in utterances}),
        )
        return TranscriptionOutcome(
            utterances=utterances,
            service=transcript.service or provider.name,
            transcript_text=format_transcript(utterances),
            raw_response=dict(transcript.raw),
        )

    async def _two_pass(
        self,
        audio_bytes: bytes,
        content_type: str,
        keyterms: Sequence[str],
    ) -> TranscriptionOutcome:
        text_result, diarization_result = await asyncio.gather(
            self._call(self._text, audio_bytes, content_type, keyterms),
            self._call(self._diarization, audio_bytes, content_type, keyterms),
        )

        text_utterances = _reindex(transcript_to_utterances(text_result))
        if not text_utterances:
            raise TranscriptionError(f"No utterances parsed from {self._text.name}")
        if not diarization_result.words:
            raise TranscriptionError(
                f"{self._diarization.name} returned no word timings to merge"
            )

        merged = merge_speakers(text_utterances, diarization_result.words)
        review = assess_divergence(
            text_utterances,
            merged,
            threshold=self._divergence_threshold,
        )
        if review.flagged:
            logger.warning(
                "Divergencia de diarización: %s (ratio=%.2f, speakers %s -> %s)",
                ",".join(review.reasons),
                review.changed_ratio,
                review.original_speaker_count,
                review.merged_speaker_count,
            )

        speaker_totals = Counter(utterance.speaker for utterance in merged)
        logger.info(
            "Merge two-pass completado: %s utterances, speakers=%s",
            len(merged),
            dict(speaker_totals),
        )

        raw: dict[str, Any] = {
            "text": dict(text_result.raw),
            "diarization": dict(diarization_result.raw),
        }
        return TranscriptionOutcome(
            utterances=merged,
            service=f"{self._text.name}+{self._diarization.name}",
            transcript_text=format_transcript(merged),
            raw_response=raw,
            review=review,
        )

    async def _chain_run(
        self,
        audio_bytes: bytes,
        content_type: str,
        keyterms: Sequence[str],
    ) -> TranscriptionOutcome:
        errors: list[str] = []
        for provider in self._chain:
            try:
                return await self._single(provider, audio_bytes, content_type, keyterms)
            except TranscriptionError as exc:
                logger.warning("Proveedor %s falló, probando el siguiente: %s", provider.name, exc)
                errors.append(f"{provider.name}: {exc}")
        raise TranscriptionError("All transcription providers failed: " + "; ".join(errors))


def review_payload(outcome: TranscriptionOutcome) -> Mapping[str, Any] | None:
    return outcome.review.as_dict() if outcome.review else None


__all__ = [
    "TRANSCRIPTION_MODES",
    "TranscriptionOrchestrator",
    "assess_divergence",
    "merge_speakers",
    "review_payload",
]
