"""Shared LLM invocation helper for the generation stages."""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from app.application.interfaces import LlmClientInterface
from app.services.response_contract import ResponseContractError

logger = logging.getLogger("app.services.recording_pipeline")

T = TypeVar("T")

_MAX_JSON_RETRIES = 1  # Re-intentos cuando el LLM devuelve JSON inválido.


def _truncate(value: str, max_length: int = 500) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


async def invoke_contract(
    client: LlmClientInterface,
    *,
    label: str,
    system_prompt: str,
    user_prompt: str,
    parse: Callable[[str], T],
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
    model_id: Optional[str] = None,
) -> tuple[T, str]:
    """Invoke the LLM and decode its response, re-asking once on invalid JSON.

    Returns the parsed value together with the raw text for audit storage.
    """

    last_error: ResponseContractError | None = None
    for attempt in range(_MAX_JSON_RETRIES + 1):
        raw_response = await client.invoke(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_tokens=max_tokens,
            temperature=temperature,
            model_id=model_id,
        )
        if not raw_response:
            raise ResponseContractError(f"LLM devolvió una respuesta vacía ({label}).")

        logger.info(
            "Respuesta LLM cruda %s intento=%s: %s",
            label,
            attempt + 1,
            _truncate(raw_response, 500),
        )

        try:
            return parse(raw_response), raw_response
        except ResponseContractError as exc:
            last_error = exc
            logger.warning(
                "LLM produjo JSON inválido %s intento=%s: %s",
                label,
                attempt + 1,
                exc,
            )

    raise ResponseContractError(
        f"El LLM devolvió un JSON inválido incluso tras reintentar ({label})."
    ) from last_error


__all__ = ["invoke_contract"]
