"""LLM provider protocol definition."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx

from agentloop.errors import BackendUnavailable
from agentloop.models.provider import LLMConfig, LLMMessage, LLMResponse

# HTTP statuses worth retrying: rate limiting and server-side failures
TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504, 529})


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for LLM backends.

    ``complete`` raises ``BackendUnavailable`` for transient failures; any
    other exception is treated as fatal by the turn loop.
    """

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """Ask the backend for its next step."""
        ...

    async def close(self) -> None:
        """Release network or process resources."""
        ...


async def post_json(client: httpx.AsyncClient, url: str, payload: dict, backend: str) -> dict:
    """POST ``payload`` and decode the JSON reply, classifying failures."""
    try:
        response = await client.post(url, json=payload)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        if e.response.status_code in TRANSIENT_STATUS_CODES:
            raise BackendUnavailable(
                f"{backend} returned HTTP {e.response.status_code}"
            ) from e
        raise
    except httpx.TransportError as e:
        raise BackendUnavailable(f"{backend} unreachable: {e}") from e
    return response.json()
