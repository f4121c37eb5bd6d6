"""ElevenLabs speech-to-text integration over HTTP."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from app.application.interfaces import TranscriberInterface
from app.config.settings import settings
from app.domain.errors import TranscriptionError
from app.pipelines.recording.types import ProviderTranscript, WordToken

logger = logging.getLogger(__name__)


def parse_words(payload: dict[str, Any]) -> tuple[WordToken, ...]:
    """Convert the `words` array of a speech-to-text response into tokens."""

    tokens = []
    for item in payload.get("words") or []:
        start = item.get("start")
        end = item.get("end")
        if start is None or end is None:
            continue
        tokens.append(
            WordToken(
                text=str(item.get("text", "")),
                start=float(start),
                end=float(end),
                speaker=item.get("speaker_id"),
                type=str(item.get("type", "word")),
            )
        )
    return tuple(tokens)


class ElevenLabsTranscriber(TranscriberInterface):
    """Call the ElevenLabs `speech-to-text` endpoint with diarization enabled."""

    def __init__(
        self,
        *,
        model_id: str,
        name: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model_id = model_id
        self.name = name or f"elevenlabs-{model_id}"
        self._transport = transport
        self._base_url = settings.elevenlabs.base_url.rstrip("/")
        self._timeout = settings.elevenlabs.timeout_seconds

    def _headers(self) -> dict[str, str]:
        api_key = settings.elevenlabs.api_key
        if api_key is None:
            raise TranscriptionError("ELEVENLABS_API_KEY is not configured.")
        return {"xi-api-key": api_key.get_secret_value()}

    async def transcribe(
        self,
        audio_bytes: bytes,
        *,
        content_type: str,
        keyterms: Sequence[str] = (),
    ) -> ProviderTranscript:
        if not audio_bytes:
            raise TranscriptionError("The audio payload is empty.")

        data: dict[str, Any] = {
            "model_id": self._model_id,
            "diarize": "true",
            "diarization_threshold": str(settings.elevenlabs.diarization_threshold),
            "temperature": "0",
            "tag_audio_events": "true",
            "timestamps_granularity": "word",
        }
        if keyterms:
            data["keyterms"] = list(keyterms)

        files = {"file": ("recording", audio_bytes, content_type or "application/octet-stream")}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/speech-to-text",
                    headers=self._headers(),
                    data=data,
                    files=files,
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:500] if exc.response is not None else ""
            raise TranscriptionError(
                f"{self.name} returned HTTP {exc.response.status_code}: {body}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"{self.name} request failed: {exc}") from exc
        except ValueError as exc:
            raise TranscriptionError(f"{self.name} returned invalid JSON: {exc}") from exc

        words = parse_words(payload)
        logger.info("%s returned %s tokens", self.name, len(words))
        return ProviderTranscript(service=self.name, words=words, raw=payload)


__all__ = ["ElevenLabsTranscriber", "parse_words"]
