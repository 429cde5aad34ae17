"""OpenRouter LLM provider using httpx."""

from __future__ import annotations

import logging

import httpx

from agentloop.infra.providers.base import post_json
from agentloop.infra.providers.openai_compat import build_payload, parse_completion
from agentloop.models.provider import LLMConfig, LLMMessage, LLMResponse

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"


class OpenRouterProvider:
    """Hosted backend using the OpenRouter API (OpenAI-compatible)."""

    def __init__(self, api_key: str = "", model: str = "", base_url: str = "") -> None:
        self._default_model = model or DEFAULT_MODEL
        self._client = httpx.AsyncClient(
            base_url=base_url or OPENROUTER_BASE_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=120.0,
        )

    def _resolve_model(self, model: str) -> str:
        """OpenRouter models look like 'provider/model'; anything else gets the default."""
        if model and "/" in model:
            return model
        return self._default_model

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """Generate a completion via OpenRouter."""
        config = config or LLMConfig()
        model = self._resolve_model(config.model)
        payload = build_payload(messages, config, model)

        logger.debug("Sending request to OpenRouter with model: %s", model)
        data = await post_json(self._client, "/chat/completions", payload, "openrouter")
        logger.debug("OpenRouter response received, model: %s", data.get("model", "unknown"))
        return parse_completion(data, model)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
