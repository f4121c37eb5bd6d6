"""Amazon Transcribe integration helpers using the Streaming API.

Streams PCM audio with speaker labelling enabled and returns word-level
tokens so the result can feed the same grouping and merge logic as any
other diarizing provider.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import tempfile
from typing import Any, Sequence

from amazon_transcribe.client import TranscribeStreamingClient
from amazon_transcribe.handlers import TranscriptResultStreamHandler
from amazon_transcribe.model import TranscriptEvent
from fastapi.concurrency import run_in_threadpool

from app.application.interfaces import TranscriberInterface
from app.config.settings import settings
from app.domain.errors import TranscriptionError
from app.pipelines.recording.types import ProviderTranscript, WordToken

logger = logging.getLogger(__name__)


class TranscribeService(TranscriberInterface):
    """High-level facade for streaming audio to Amazon Transcribe."""

    name = "amazon-transcribe"

    def __init__(
        self,
        region: str,
        language_code: str = "en-US",
        media_sample_rate_hz: int = 16000,
        media_encoding: str = "pcm",
    ) -> None:
        self._region = region
        self._language_code = language_code
        self._media_sample_rate_hz = media_sample_rate_hz
        self._media_encoding = media_encoding

        # Ensure credentials are available to the SDK
        if settings.s3.access_key:
            os.environ["AWS_ACCESS_KEY_ID"] = settings.s3.access_key
        if settings.s3.secret_key:
            os.environ["AWS_SECRET_ACCESS_KEY"] = settings.s3.secret_key

        self._client = TranscribeStreamingClient(region=region)

    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        content_type: str,
        keyterms: Sequence[str] = (),
    ) -> ProviderTranscript:
        """Stream audio to Transcribe and return speaker-labelled words."""

        if not audio_bytes:
            raise TranscriptionError("The audio payload is empty.")

        try:
            pcm_data = await self._convert_to_pcm(audio_bytes)
        except TranscriptionError:
            raise
        except Exception as exc:
            raise TranscriptionError(f"Audio conversion failed: {exc}") from exc

        stream = await self._client.start_stream_transcription(
            language_code=self._language_code,
            media_sample_rate_hz=self._media_sample_rate_hz,
            media_encoding=self._media_encoding,
            show_speaker_label=True,
        )

        handler = _SpeakerLabelHandler(stream.output_stream)

        async def write_chunks() -> None:
            # 16-bit mono: two bytes per sample.
            chunk_size = 8192
            bytes_per_sec = self._media_sample_rate_hz * 2
            sleep_time = chunk_size / bytes_per_sec

            logger.info(
                "Starting stream. Total bytes: %s. Chunk size: %s. Sleep: %.4fs",
                len(pcm_data),
                chunk_size,
                sleep_time,
            )
            for i in range(0, len(pcm_data), chunk_size):
                await stream.input_stream.send_audio_event(audio_chunk=pcm_data[i : i + chunk_size])
                await asyncio.sleep(sleep_time)

            logger.info("Finished streaming audio bytes. Ending stream.")
            await stream.input_stream.end_stream()

        try:
            await asyncio.gather(write_chunks(), handler.handle_events())
        except Exception as exc:
            logger.error("Streaming loop failed: %s", exc)
            raise TranscriptionError(f"Streaming transcription failed: {exc}") from exc

        logger.info("Transcription complete. Words: %s", len(handler.words))
        raw: dict[str, Any] = {
            "words": [
                {
                    "text": word.text,
                    "start": word.start,
                    "end": word.end,
                    "speaker_id": word.speaker,
                    "type": word.type,
                }
                for word in handler.words
            ]
        }
        return ProviderTranscript(service=self.name, words=tuple(handler.words), raw=raw)

    async def _convert_to_pcm(self, audio_bytes: bytes) -> bytes:
        """Convert input audio to raw PCM s16le via ffmpeg using a thread."""
        return await run_in_threadpool(self._convert_to_pcm_sync, audio_bytes)

    def _convert_to_pcm_sync(self, audio_bytes: bytes) -> bytes:
        """Synchronous ffmpeg conversion using a temporary file to support seeking."""

        with tempfile.NamedTemporaryFile(delete=False, suffix=".tmp") as tmp_file:
            tmp_file.write(audio_bytes)
            tmp_path = tmp_file.name

        try:
            process = subprocess.run(
                [
                    "ffmpeg",
                    "-y",
                    "-i", tmp_path,
                    "-f", "s16le",
                    "-ac", "1",
                    "-ar", str(self._media_sample_rate_hz),
                    "pipe:1",
                ],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
            if not process.stdout:
                logger.warning("ffmpeg produced empty output. stderr: %s", process.stderr.decode("utf-8", errors="replace"))
            return process.stdout
        except subprocess.CalledProcessError as exc:
            error_msg = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else "No stderr"
            logger.error("ffmpeg failed. stderr: %s", error_msg)
            raise TranscriptionError(f"ffmpeg failed to convert audio to PCM: {error_msg}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)


class _SpeakerLabelHandler(TranscriptResultStreamHandler):
    def __init__(self, transcript_result_stream):
        super().__init__(transcript_result_stream)
        self.words: list[WordToken] = []

    async def handle_transcript_event(self, transcript_event: TranscriptEvent):
        for result in transcript_event.transcript.results:
            if result.is_partial or not result.alternatives:
                continue
            for item in result.alternatives[0].items or []:
                content = item.content or ""
                if item.item_type == "punctuation":
                    if self.words:
                        last = self.words[-1]
                        self.words[-1] = WordToken(
                            text=last.text + content,
                            start=last.start,
                            end=last.end,
                            speaker=last.speaker,
                            type=last.type,
                        )
                    continue
                self.words.append(
                    WordToken(
                        text=content,
                        start=float(item.start_time),
                        end=float(item.end_time),
                        speaker=f"speaker_{item.speaker}" if item.speaker is not None else None,
                    )
                )


def build_transcribe_service() -> TranscribeService:
    return TranscribeService(
        region=settings.transcribe.region,
        language_code=settings.transcribe.language_code,
        media_sample_rate_hz=settings.transcribe.media_sample_rate_hz,
    )


__all__ = ["TranscribeService", "build_transcribe_service"]
