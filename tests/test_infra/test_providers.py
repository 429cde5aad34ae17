"""Tests for provider registry and wire conversions."""

import json

import httpx
import pytest

from agentloop.config import AppConfig, ProviderConfig
from agentloop.errors import BackendUnavailable
from agentloop.infra.providers.anthropic import AnthropicProvider
from agentloop.infra.providers.llamacpp import LlamaCppProvider
from agentloop.infra.providers.openai_compat import build_payload, convert_message, parse_completion
from agentloop.infra.providers.openrouter import OpenRouterProvider
from agentloop.infra.providers.registry import get_provider
from agentloop.infra.providers.script import ScriptProvider
from agentloop.models.provider import BackendKind, LLMConfig, LLMMessage


class TestProviderRegistry:
    def _make_config(self) -> AppConfig:
        return AppConfig(
            providers={
                "anthropic": ProviderConfig(api_key="test-key", default_model="test-model"),
                "openrouter": ProviderConfig(api_key="or-key", default_model="or/model"),
                "llamacpp": ProviderConfig(base_url="http://localhost:9999"),
                "script": ProviderConfig(command=["python", "decide.py"]),
            }
        )

    def test_get_anthropic(self):
        provider = get_provider(BackendKind.ANTHROPIC, self._make_config())
        assert isinstance(provider, AnthropicProvider)

    def test_get_openrouter(self):
        provider = get_provider(BackendKind.OPENROUTER, self._make_config())
        assert isinstance(provider, OpenRouterProvider)

    def test_get_llamacpp(self):
        provider = get_provider(BackendKind.LLAMACPP, self._make_config())
        assert isinstance(provider, LlamaCppProvider)

    def test_get_script(self, tmp_path):
        provider = get_provider(BackendKind.SCRIPT, self._make_config(), tmp_path)
        assert isinstance(provider, ScriptProvider)

    def test_get_by_string(self):
        provider = get_provider("anthropic", self._make_config())
        assert isinstance(provider, AnthropicProvider)

    def test_unknown_raises(self):
        with pytest.raises(ValueError):
            get_provider("nonexistent", self._make_config())

    def test_script_without_command_raises(self):
        with pytest.raises(ValueError, match="needs a command"):
            get_provider("script", AppConfig())


class TestOpenAIFormat:
    def test_assistant_tool_calls_are_wrapped(self):
        msg = LLMMessage(
            role="assistant",
            content="",
            tool_calls=[{"id": "c1", "name": "read_file", "arguments": {"file_path": "a"}}],
        )
        d = convert_message(msg)
        assert d["content"] is None
        assert d["tool_calls"][0]["type"] == "function"
        assert json.loads(d["tool_calls"][0]["function"]["arguments"]) == {"file_path": "a"}

    def test_tool_message_drops_name(self):
        d = convert_message(LLMMessage(role="tool", content="ok", tool_call_id="c1", name="shell"))
        assert "name" not in d
        assert d["tool_call_id"] == "c1"

    def test_payload_wraps_tools(self):
        config = LLMConfig(tools=[{"name": "shell", "description": "", "parameters": {}}])
        payload = build_payload([LLMMessage(role="user", content="hi")], config, "m")
        assert payload["model"] == "m"
        assert payload["tools"][0] == {"type": "function", "function": config.tools[0]}

    def test_parse_completion(self):
        data = {
            "model": "m",
            "choices": [{
                "finish_reason": "tool_calls",
                "message": {
                    "content": None,
                    "tool_calls": [{
                        "id": "c1",
                        "function": {"name": "shell", "arguments": '{"command": "ls"}'},
                    }],
                },
            }],
            "usage": {"prompt_tokens": 7, "completion_tokens": 3},
        }
        resp = parse_completion(data)
        assert resp.content == ""
        assert resp.tool_calls[0].arguments == {"command": "ls"}
        assert resp.usage == {"input_tokens": 7, "output_tokens": 3}


class TestAnthropicConversion:
    def test_consecutive_tool_results_merge(self):
        provider = AnthropicProvider(api_key="test-key")
        system, converted = provider._convert_messages([
            LLMMessage(role="system", content="sys"),
            LLMMessage(role="user", content="go"),
            LLMMessage(
                role="assistant",
                content="",
                tool_calls=[
                    {"id": "a", "name": "read_file", "arguments": {}},
                    {"id": "b", "name": "read_file", "arguments": {}},
                ],
            ),
            LLMMessage(role="tool", content="1", tool_call_id="a"),
            LLMMessage(role="tool", content="2", tool_call_id="b"),
        ])
        assert system == "sys"
        assert len(converted) == 3
        assert [b["tool_use_id"] for b in converted[2]["content"]] == ["a", "b"]

    def test_convert_tools_uses_input_schema(self):
        provider = AnthropicProvider(api_key="test-key")
        tools = provider._convert_tools([{"name": "shell", "description": "d", "parameters": {"type": "object"}}])
        assert tools == [{"name": "shell", "description": "d", "input_schema": {"type": "object"}}]


def _mock_client(handler, base_url: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url)


class TestHttpFailures:
    @pytest.mark.asyncio
    async def test_transient_status_is_backend_unavailable(self):
        provider = OpenRouterProvider(api_key="k")
        await provider.close()
        provider._client = _mock_client(lambda request: httpx.Response(503), "https://openrouter.test")
        with pytest.raises(BackendUnavailable):
            await provider.complete([LLMMessage(role="user", content="hi")])
        await provider.close()

    @pytest.mark.asyncio
    async def test_client_error_is_fatal(self):
        provider = OpenRouterProvider(api_key="k")
        await provider.close()
        provider._client = _mock_client(lambda request: httpx.Response(400), "https://openrouter.test")
        with pytest.raises(httpx.HTTPStatusError):
            await provider.complete([LLMMessage(role="user", content="hi")])
        await provider.close()

    @pytest.mark.asyncio
    async def test_llamacpp_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/chat/completions"
            return httpx.Response(200, json={
                "choices": [{"message": {"content": "hello"}, "finish_reason": "stop"}],
            })

        provider = LlamaCppProvider()
        await provider.close()
        provider._client = _mock_client(handler, "http://llama.test")
        resp = await provider.complete([LLMMessage(role="user", content="hi")])
        assert resp.content == "hello"
        assert not resp.has_tool_calls
        await provider.close()
