"""Tests for AppContext wiring and reconfiguration."""

import pytest

from agentloop.config import AppConfig
from agentloop.context import AppContext
from agentloop.models.provider import BackendKind, LLMResponse


class FakeProvider:
    def __init__(self, kind):
        self.kind = kind
        self.closed = False

    async def complete(self, messages, config=None):
        return LLMResponse(content=f"from {self.kind.value}")

    async def close(self):
        self.closed = True


@pytest.fixture
def built():
    return []


@pytest.fixture
def app(tmp_path, built):
    def factory(kind, config, workspace):
        provider = FakeProvider(kind)
        built.append((provider, workspace))
        return provider

    config = AppConfig(workspace_root=str(tmp_path), backend="script")
    return AppContext(config, provider_factory=factory)


class TestAppContext:
    def test_lazy_build(self, app, built, tmp_path):
        assert built == []
        orch = app.orchestration
        assert orch.workspace_root == str(tmp_path.resolve())
        assert orch.backend_selection.backend_kind == BackendKind.SCRIPT
        assert len(orch.registry) == 7
        assert app.client is orch.client
        assert len(built) == 1

    @pytest.mark.asyncio
    async def test_persistence_disabled(self, app):
        await app.initialize()
        assert app.session_repo is None
        with pytest.raises(RuntimeError):
            app.mongo

    @pytest.mark.asyncio
    async def test_unchanged_selection_keeps_pair(self, app, built, tmp_path):
        first = app.orchestration
        same = await app.reconfigure(workspace_root=str(tmp_path))
        assert same is first
        assert len(built) == 1

    @pytest.mark.asyncio
    async def test_backend_switch_swaps_pair(self, app, built):
        first = app.orchestration
        second = await app.reconfigure(backend="llamacpp")
        assert second is not first
        assert second.registry is not first.registry
        assert second.backend_selection.backend_kind == BackendKind.LLAMACPP
        assert app.orchestration is second
        assert built[0][0].closed
        assert not built[1][0].closed
        assert app.config.backend == "llamacpp"

    @pytest.mark.asyncio
    async def test_workspace_switch_rebuilds_registry(self, app, built, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        first = app.orchestration
        second = await app.reconfigure(workspace_root=str(other))
        assert second.registry is not first.registry
        assert second.workspace_root == str(other.resolve())
        assert built[1][1] == other.resolve()

    @pytest.mark.asyncio
    async def test_invalid_backend_keeps_current(self, app):
        first = app.orchestration
        with pytest.raises(ValueError):
            await app.reconfigure(backend="carrier-pigeon")
        assert app.orchestration is first

    @pytest.mark.asyncio
    async def test_client_uses_selected_backend(self, app):
        result = await app.client.send_message("hi")
        assert result.content == "from script"
        await app.close()
