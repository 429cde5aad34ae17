"""Tests for config loading."""

from pathlib import Path

import pytest

from agentloop.config import AppConfig, ProviderConfig, init_config, load_config
from agentloop.models.provider import BackendKind


class TestConfig:
    def test_load_defaults(self, monkeypatch):
        """Loading with no file should return defaults."""
        monkeypatch.delenv("AGENTLOOP_BACKEND", raising=False)
        monkeypatch.delenv("AGENTLOOP_DB", raising=False)
        config = load_config(Path("/nonexistent/config.toml"))
        assert config.backend == "anthropic"
        assert config.loop.max_turns == 25
        assert config.loop.backend_max_retries == 3
        assert config.edit.max_fuzzy_attempts == 3
        assert config.edit.min_similarity == 0.85
        assert config.mongodb.enabled is False
        assert config.mongodb.database == "agentloop"
        assert set(config.providers) == {"anthropic", "openrouter", "llamacpp", "script"}

    def test_resolved_workspace_root(self):
        config = AppConfig(workspace_root="~/test-workspaces")
        assert str(config.resolved_workspace_root).startswith("/")
        assert "~" not in str(config.resolved_workspace_root)

    def test_init_config(self, tmp_path):
        path = tmp_path / "config.toml"
        result = init_config(path)
        assert result == path
        assert path.exists()
        # Should be loadable
        config = load_config(path)
        assert config.config_path == path
        assert config.tools.shell_timeout == 120

    def test_env_overlay(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AGENTLOOP_WORKSPACE", str(tmp_path))
        monkeypatch.setenv("AGENTLOOP_BACKEND", "script")
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        config = load_config(Path("/nonexistent/config.toml"))
        assert config.workspace_root == str(tmp_path)
        assert config.backend_kind == BackendKind.SCRIPT
        assert config.providers["anthropic"].api_key == "sk-test"

    def test_script_command_string_is_split(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AGENTLOOP_BACKEND", raising=False)
        path = tmp_path / "config.toml"
        path.write_text('[general]\nbackend = "script"\n\n[providers.script]\ncommand = "python decide.py"\n')
        config = load_config(path)
        assert config.providers["script"].command == ["python", "decide.py"]

    def test_unknown_backend_raises(self):
        with pytest.raises(ValueError):
            AppConfig(backend="nope").backend_kind


class TestBackendSelection:
    def test_selection_changes_with_backend(self, tmp_path):
        config = AppConfig(
            workspace_root=str(tmp_path),
            providers={"anthropic": ProviderConfig(default_model="m1")},
        )
        first = config.backend_selection()
        assert first == config.backend_selection()
        assert first.params["model"] == "m1"

        config.backend = "llamacpp"
        assert config.backend_selection() != first

    def test_selection_changes_with_workspace(self, tmp_path):
        config = AppConfig(workspace_root=str(tmp_path))
        first = config.backend_selection()
        config.workspace_root = str(tmp_path / "other")
        assert config.backend_selection().workspace_root != first.workspace_root
