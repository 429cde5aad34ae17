"""Message/response conversion for OpenAI-compatible chat endpoints."""

from __future__ import annotations

import json
import logging

from agentloop.models.provider import LLMConfig, LLMMessage, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


def convert_message(msg: LLMMessage) -> dict:
    """Convert an LLMMessage to OpenAI-compatible format.

    Internal tool calls are flat ``{id, name, arguments: dict}``; OpenAI wants
    ``{id, type, function: {name, arguments: json_string}}``.
    """
    d = msg.to_dict()

    if msg.tool_calls:
        d["tool_calls"] = [
            {
                "id": tc.get("id", ""),
                "type": "function",
                "function": {
                    "name": tc.get("name", ""),
                    "arguments": json.dumps(tc.get("arguments", {})),
                },
            }
            for tc in msg.tool_calls
        ]
        if not msg.content:
            d["content"] = None

    # 'name' is not standard on tool messages
    if msg.role == "tool" and "name" in d:
        del d["name"]

    return d


def build_payload(messages: list[LLMMessage], config: LLMConfig, model: str = "") -> dict:
    payload: dict = {
        "messages": [convert_message(m) for m in messages],
        "max_tokens": config.max_tokens,
        "temperature": config.temperature,
    }
    if model:
        payload["model"] = model
    if config.tools:
        payload["tools"] = [{"type": "function", "function": t} for t in config.tools]
    if config.stop_sequences:
        payload["stop"] = config.stop_sequences
    return payload


def parse_tool_calls(raw_calls: list[dict] | None) -> list[ToolCall]:
    tool_calls = []
    for tc in raw_calls or []:
        func = tc.get("function", {})
        args = func.get("arguments", "{}")
        if isinstance(args, str):
            try:
                args = json.loads(args) if args else {}
            except json.JSONDecodeError:
                logger.warning("Dropping malformed arguments for tool %s", func.get("name"))
                args = {}
        tool_calls.append(ToolCall(
            id=tc.get("id", ""),
            name=func.get("name", ""),
            arguments=args,
        ))
    return tool_calls


def parse_completion(data: dict, default_model: str = "") -> LLMResponse:
    choice = data["choices"][0]
    message = choice["message"]

    # Map OpenAI-style usage keys to expected format
    raw_usage = data.get("usage") or {}
    usage = {
        "input_tokens": raw_usage.get("prompt_tokens", 0),
        "output_tokens": raw_usage.get("completion_tokens", 0),
    }

    return LLMResponse(
        content=message.get("content", "") or "",
        model=data.get("model", default_model),
        finish_reason=choice.get("finish_reason", "") or "",
        tool_calls=parse_tool_calls(message.get("tool_calls")),
        usage=usage,
    )
