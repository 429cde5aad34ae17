"""Configuration loading: TOML file + environment variable overlay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

from agentloop.models.provider import BackendKind

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "agentloop"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"


DEFAULT_CONFIG_TOML = """\
[general]
workspace_root = "."
backend = "anthropic"

[providers.anthropic]
api_key_env = "ANTHROPIC_API_KEY"
default_model = "claude-sonnet-4-20250514"

[providers.openrouter]
api_key_env = "OPENROUTER_API_KEY"
default_model = "anthropic/claude-sonnet-4"

[providers.llamacpp]
base_url = "http://localhost:8080"

[providers.script]
# command receives the conversation as JSON on stdin and prints its decision
command = []

[loop]
max_turns = 25
backend_max_retries = 3
backend_retry_base_delay = 1.0
max_tokens = 4096
temperature = 0.7

[edit]
max_fuzzy_attempts = 3
min_similarity = 0.85

[tracker]
retention_seconds = 3600

[tools]
shell_timeout = 120

[mongodb]
enabled = false
uri = "mongodb://localhost:27017"
database = "agentloop"
"""


@dataclass
class ProviderConfig:
    api_key_env: str = ""
    api_key: str = ""
    default_model: str = ""
    base_url: str = ""
    command: list[str] = field(default_factory=list)
    timeout: float = 120.0


@dataclass
class LoopConfig:
    max_turns: int = 25
    backend_max_retries: int = 3
    backend_retry_base_delay: float = 1.0
    max_tokens: int = 4096
    temperature: float = 0.7


@dataclass
class EditConfig:
    max_fuzzy_attempts: int = 3
    min_similarity: float = 0.85


@dataclass
class TrackerConfig:
    retention_seconds: int = 3600


@dataclass
class ToolsConfig:
    shell_timeout: int = 120


@dataclass
class MongoConfig:
    enabled: bool = False
    uri: str = "mongodb://localhost:27017"
    database: str = "agentloop"


@dataclass(frozen=True)
class BackendSelection:
    """The configuration pair a registry + client are built for.

    Any change here means a new registry and a new client.
    """

    workspace_root: str
    backend_kind: BackendKind
    connection_params: tuple[tuple[str, str], ...] = ()

    @property
    def params(self) -> dict[str, str]:
        return dict(self.connection_params)


@dataclass
class AppConfig:
    workspace_root: str = "."
    backend: str = "anthropic"
    providers: dict[str, ProviderConfig] = field(default_factory=dict)
    loop: LoopConfig = field(default_factory=LoopConfig)
    edit: EditConfig = field(default_factory=EditConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    mongodb: MongoConfig = field(default_factory=MongoConfig)
    config_path: Path = DEFAULT_CONFIG_PATH

    @property
    def resolved_workspace_root(self) -> Path:
        return Path(self.workspace_root).expanduser().resolve()

    @property
    def backend_kind(self) -> BackendKind:
        return BackendKind(self.backend)

    def backend_selection(self) -> BackendSelection:
        """Snapshot of the current workspace/backend pairing."""
        prov = self.providers.get(self.backend)
        params: dict[str, str] = {}
        if prov:
            params = {
                "model": prov.default_model,
                "base_url": prov.base_url,
                "command": " ".join(prov.command),
            }
        return BackendSelection(
            workspace_root=str(self.resolved_workspace_root),
            backend_kind=self.backend_kind,
            connection_params=tuple(sorted(params.items())),
        )


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    if workspace := os.environ.get("AGENTLOOP_WORKSPACE"):
        config.workspace_root = workspace
    if backend := os.environ.get("AGENTLOOP_BACKEND"):
        config.backend = backend
    if uri := os.environ.get("MONGODB_URI"):
        config.mongodb.uri = uri
    if db := os.environ.get("AGENTLOOP_DB"):
        config.mongodb.database = db

    # Resolve API keys from env vars
    for prov in config.providers.values():
        if prov.api_key_env:
            prov.api_key = os.environ.get(prov.api_key_env, "")


def _parse_provider(data: dict) -> ProviderConfig:
    command = data.get("command", [])
    if isinstance(command, str):
        command = command.split()
    return ProviderConfig(
        api_key_env=data.get("api_key_env", ""),
        default_model=data.get("default_model", ""),
        base_url=data.get("base_url", ""),
        command=list(command),
        timeout=float(data.get("timeout", 120.0)),
    )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overlay."""
    path = config_path or DEFAULT_CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = tomllib.loads(DEFAULT_CONFIG_TOML)

    general = raw.get("general", {})
    providers_raw = raw.get("providers", {})
    loop_raw = raw.get("loop", {})
    edit_raw = raw.get("edit", {})
    tracker_raw = raw.get("tracker", {})
    tools_raw = raw.get("tools", {})
    mongo_raw = raw.get("mongodb", {})

    config = AppConfig(
        workspace_root=general.get("workspace_root", "."),
        backend=general.get("backend", "anthropic"),
        providers={name: _parse_provider(data) for name, data in providers_raw.items()},
        loop=LoopConfig(
            max_turns=loop_raw.get("max_turns", 25),
            backend_max_retries=loop_raw.get("backend_max_retries", 3),
            backend_retry_base_delay=loop_raw.get("backend_retry_base_delay", 1.0),
            max_tokens=loop_raw.get("max_tokens", 4096),
            temperature=loop_raw.get("temperature", 0.7),
        ),
        edit=EditConfig(
            max_fuzzy_attempts=edit_raw.get("max_fuzzy_attempts", 3),
            min_similarity=edit_raw.get("min_similarity", 0.85),
        ),
        tracker=TrackerConfig(
            retention_seconds=tracker_raw.get("retention_seconds", 3600),
        ),
        tools=ToolsConfig(
            shell_timeout=tools_raw.get("shell_timeout", 120),
        ),
        mongodb=MongoConfig(
            enabled=mongo_raw.get("enabled", False),
            uri=mongo_raw.get("uri", "mongodb://localhost:27017"),
            database=mongo_raw.get("database", "agentloop"),
        ),
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path
