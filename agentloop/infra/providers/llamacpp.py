"""On-device backend: local llama.cpp server (OpenAI-compatible endpoint)."""

from __future__ import annotations

import logging

import httpx

from agentloop.infra.providers.base import post_json
from agentloop.infra.providers.openai_compat import build_payload, parse_completion
from agentloop.models.provider import LLMConfig, LLMMessage, LLMResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080"


class LlamaCppProvider:
    """Backend for a model running locally under llama.cpp's server."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, model: str = "") -> None:
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._model = model
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=300.0,
        )

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """Generate a completion via local llama.cpp server."""
        config = config or LLMConfig()
        payload = build_payload(messages, config, config.model or self._model)
        data = await post_json(self._client, "/v1/chat/completions", payload, "llama.cpp")
        return parse_completion(data)

    async def health_check(self) -> bool:
        """Check if the llama.cpp server is reachable."""
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.TransportError:
            return False

    async def close(self) -> None:
        await self._client.aclose()
