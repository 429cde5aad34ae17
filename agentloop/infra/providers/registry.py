"""LLM provider factory/registry."""

from __future__ import annotations

import logging
from pathlib import Path

from agentloop.config import AppConfig, ProviderConfig
from agentloop.infra.providers.anthropic import AnthropicProvider
from agentloop.infra.providers.base import LLMProvider
from agentloop.infra.providers.llamacpp import LlamaCppProvider
from agentloop.infra.providers.openrouter import OpenRouterProvider
from agentloop.infra.providers.script import ScriptProvider
from agentloop.models.provider import BackendKind

logger = logging.getLogger(__name__)


def _build_provider(
    kind: BackendKind, prov_config: ProviderConfig, workspace_root: Path | None
) -> LLMProvider:
    """Build a single provider instance."""
    if kind == BackendKind.ANTHROPIC:
        return AnthropicProvider(
            api_key=prov_config.api_key,
            model=prov_config.default_model,
        )
    elif kind == BackendKind.OPENROUTER:
        return OpenRouterProvider(
            api_key=prov_config.api_key,
            model=prov_config.default_model,
            base_url=prov_config.base_url,
        )
    elif kind == BackendKind.LLAMACPP:
        return LlamaCppProvider(
            base_url=prov_config.base_url or "http://localhost:8080",
            model=prov_config.default_model,
        )
    elif kind == BackendKind.SCRIPT:
        return ScriptProvider(
            command=prov_config.command,
            cwd=workspace_root,
            timeout=prov_config.timeout,
        )
    else:
        raise ValueError(f"Unknown backend kind: {kind}")


def get_provider(
    kind: BackendKind | str,
    config: AppConfig,
    workspace_root: Path | None = None,
) -> LLMProvider:
    """Get an LLM provider instance by kind, configured from AppConfig."""
    if isinstance(kind, str):
        kind = BackendKind(kind)
    prov_config = config.providers.get(kind.value) or ProviderConfig()
    if kind.is_hosted and not prov_config.api_key:
        logger.warning(
            "No API key for %s (set %s)", kind.value, prov_config.api_key_env or "api_key_env"
        )
    return _build_provider(kind, prov_config, workspace_root)
