"""Thin Bedrock client wrapper for the pipeline's generation calls."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Any, Awaitable, Callable, Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from fastapi.concurrency import run_in_threadpool

from app.application.interfaces import LlmClientInterface
from app.config.settings import settings
from app.services.aws import create_boto3_client

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
    ConnectionResetError,
    TimeoutError,
)
_TRANSIENT_CLIENT_CODES = {
    "ThrottlingException",
    "ServiceUnavailableException",
    "ModelTimeoutException",
    "InternalServerException",
}


class LlmInvocationError(RuntimeError):
    """Raised when the Bedrock invocation fails."""


def _decode_bedrock_api_key(secret_value: Optional[str]) -> tuple[str, str] | None:
    """Decode the BEDROCK_API_KEY secret into access/secret key components."""

    if not secret_value:
        return None

    try:
        decoded_bytes = base64.b64decode(secret_value.strip())
    except (binascii.Error, ValueError):
        decoded_bytes = secret_value.encode("utf-8", "ignore")

    filtered = "".join(chr(b) for b in decoded_bytes if 31 < b < 127)
    if ":" not in filtered:
        return None
    access_key, secret_key = filtered.split(":", 1)
    return access_key, secret_key


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        return code in _TRANSIENT_CLIENT_CODES
    return False


class BedrockLlmClient(LlmClientInterface):
    """Invoke Amazon Bedrock models with standard configuration.

    Transient transport failures (resets, timeouts, throttling) are retried a
    bounded number of times with a linear backoff; anything else surfaces as
    `LlmInvocationError` on the first occurrence.
    """

    def __init__(
        self,
        *,
        client: Any | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._model_id = settings.bedrock.model_id
        self._max_attempts = settings.bedrock.max_invoke_attempts
        self._backoff_seconds = settings.bedrock.invoke_backoff_seconds
        self._sleep = sleep

        if client is not None:
            self._client = client
            return

        api_key_tuple = None
        if settings.bedrock.api_key:
            api_key_tuple = _decode_bedrock_api_key(
                settings.bedrock.api_key.get_secret_value()
            )

        try:
            self._client = create_boto3_client(
                "bedrock-runtime",
                region_name=settings.bedrock.region,
                aws_access_key_id=api_key_tuple[0] if api_key_tuple else None,
                aws_secret_access_key=api_key_tuple[1] if api_key_tuple else None,
                read_timeout=settings.bedrock.read_timeout_seconds,
            )
        except Exception as exc:  # pragma: no cover - configuration issue
            logger.warning("Could not initialise Bedrock client: %s", exc)
            self._client = None

    async def invoke(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        top_p: float | None = None,
        model_id: str | None = None,
    ) -> str | None:
        """Run a Bedrock `converse` call and return the aggregate text output."""

        target_model_id = model_id or self._model_id
        if not self._client or not target_model_id:
            return None

        inference_cfg = {
            "maxTokens": max_tokens or settings.bedrock.max_tokens,
            "temperature": (
                temperature
                if temperature is not None
                else settings.bedrock.temperature
            ),
            "topP": top_p if top_p is not None else settings.bedrock.top_p,
        }

        def _call() -> str:
            response = self._client.converse(
                modelId=target_model_id,
                system=[{"text": system_prompt}],
                messages=[{"role": "user", "content": [{"text": user_prompt}]}],
                inferenceConfig=inference_cfg,
            )
            content_blocks = (
                response.get("output", {})
                .get("message", {})
                .get("content", [])
            )
            texts = [block.get("text", "") for block in content_blocks if block.get("text")]
            return "\n".join(texts).strip()

        for attempt in range(1, self._max_attempts + 1):
            try:
                result = await run_in_threadpool(_call)
            except Exception as exc:
                if _is_transient(exc) and attempt < self._max_attempts:
                    delay = self._backoff_seconds * attempt
                    logger.warning(
                        "Transient Bedrock error model=%s attempt=%s/%s, retrying in %.1fs: %s",
                        target_model_id,
                        attempt,
                        self._max_attempts,
                        delay,
                        exc,
                    )
                    await self._sleep(delay)
                    continue
                raise LlmInvocationError(str(exc)) from exc
            return result or None

        return None  # pragma: no cover - loop always returns or raises


__all__ = ["BedrockLlmClient", "LlmInvocationError"]
