"""Anthropic LLM provider using the anthropic SDK."""

from __future__ import annotations

import logging

import anthropic

from agentloop.errors import BackendUnavailable
from agentloop.models.provider import LLMConfig, LLMMessage, LLMResponse, ToolCall

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"

_TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)


class AnthropicProvider:
    """Hosted backend using the Anthropic Messages API."""

    def __init__(self, api_key: str = "", model: str = "") -> None:
        self._client = anthropic.AsyncAnthropic(api_key=api_key or None, max_retries=0)
        self._default_model = model or DEFAULT_MODEL

    def _convert_messages(
        self, messages: list[LLMMessage]
    ) -> tuple[str | None, list[dict]]:
        """Convert LLMMessages to Anthropic format, extracting system prompt."""
        system_prompt = None
        converted = []

        for msg in messages:
            if msg.role == "system":
                system_prompt = msg.content
            elif msg.role == "tool":
                tool_result = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }
                # Consecutive tool results share one user message
                # (Anthropic requires alternating roles)
                if (
                    converted
                    and converted[-1]["role"] == "user"
                    and isinstance(converted[-1]["content"], list)
                    and converted[-1]["content"]
                    and converted[-1]["content"][0].get("type") == "tool_result"
                ):
                    converted[-1]["content"].append(tool_result)
                else:
                    converted.append({
                        "role": "user",
                        "content": [tool_result],
                    })
            elif msg.tool_calls:
                content_blocks: list[dict] = []
                if msg.content:
                    content_blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    content_blocks.append({
                        "type": "tool_use",
                        "id": tc["id"],
                        "name": tc["name"],
                        "input": tc.get("arguments", {}),
                    })
                converted.append({"role": msg.role, "content": content_blocks})
            else:
                converted.append({"role": msg.role, "content": msg.content})

        return system_prompt, converted

    def _convert_tools(self, tools: list[dict] | None) -> list[dict] | None:
        """Convert function declarations to Anthropic's input_schema form."""
        if not tools:
            return None
        return [
            {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "input_schema": tool.get("parameters", {}),
            }
            for tool in tools
        ]

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        """Generate a completion using the Anthropic API."""
        config = config or LLMConfig()
        model = config.model or self._default_model
        system_prompt, converted = self._convert_messages(messages)
        tools = self._convert_tools(config.tools)

        kwargs: dict = {
            "model": model,
            "max_tokens": config.max_tokens,
            "messages": converted,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = tools
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.stop_sequences:
            kwargs["stop_sequences"] = config.stop_sequences

        try:
            response = await self._client.messages.create(**kwargs)
        except _TRANSIENT_ERRORS as e:
            raise BackendUnavailable(f"anthropic: {e}") from e

        content_text = ""
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                content_text += block.text
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=dict(block.input) if block.input else {},
                ))

        return LLMResponse(
            content=content_text,
            model=response.model,
            finish_reason=response.stop_reason or "",
            tool_calls=tool_calls,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
        )

    async def close(self) -> None:
        await self._client.close()
