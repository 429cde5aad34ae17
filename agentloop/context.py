"""AppContext: wires config, ledger services, storage and the orchestration pair."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from agentloop.config import AppConfig, BackendSelection, ProviderConfig, load_config
from agentloop.infra.providers.base import LLMProvider
from agentloop.infra.providers.registry import get_provider
from agentloop.models.provider import BackendKind
from agentloop.services.edit_monitor import EditFailureMonitor, get_edit_failure_monitor
from agentloop.services.execution_tracker import ExecutionStateTracker
from agentloop.services.observability import MetricsRecorder, get_metrics_recorder
from agentloop.services.tools.registry import ToolRegistry, build_registry
from agentloop.services.turn_loop import AgentClient

if TYPE_CHECKING:
    from agentloop.infra.db.client import MongoClient
    from agentloop.infra.db.sessions import SessionRepo

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[BackendKind, AppConfig, Path], LLMProvider]


@dataclass(frozen=True)
class OrchestrationContext:
    """A registry and the client bound to it, built for one selection.

    Never mutated; a configuration change yields a new instance.
    """

    registry: ToolRegistry
    client: AgentClient
    workspace_root: str
    backend_selection: BackendSelection


class AppContext:
    """Central wiring for all application dependencies.

    The orchestration pair is built lazily on first access. Call
    ``initialize()`` to open the MongoDB connection when session
    persistence is enabled.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        config_path: Path | None = None,
        *,
        tracker: ExecutionStateTracker | None = None,
        monitor: EditFailureMonitor | None = None,
        metrics: MetricsRecorder | None = None,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self.config = config or load_config(config_path)
        self.tracker = tracker or ExecutionStateTracker(
            retention_seconds=self.config.tracker.retention_seconds
        )
        self.monitor = monitor or get_edit_failure_monitor()
        self.metrics = metrics or get_metrics_recorder()
        self._provider_factory = provider_factory or get_provider
        self._mongo: MongoClient | None = None
        self._session_repo: SessionRepo | None = None
        self._orchestration: OrchestrationContext | None = None

    async def initialize(self) -> None:
        """Open the database connection if persistence is enabled."""
        if not self.config.mongodb.enabled:
            logger.debug("Session persistence disabled")
            return
        from agentloop.infra.db.client import MongoClient

        self._mongo = MongoClient(
            uri=self.config.mongodb.uri,
            database=self.config.mongodb.database,
        )
        if not await self._mongo.ping():
            logger.warning("MongoDB at %s is not reachable; sessions may not be saved",
                           self.config.mongodb.uri)
        logger.info("AppContext initialized")

    async def close(self) -> None:
        """Close all connections."""
        if self._orchestration:
            await self._orchestration.client.close()
            self._orchestration = None
        if self._mongo:
            self._mongo.close()
            self._mongo = None
        logger.info("AppContext closed")

    @property
    def mongo(self) -> MongoClient:
        if self._mongo is None:
            raise RuntimeError("AppContext not initialized. Call initialize() first.")
        return self._mongo

    @property
    def session_repo(self) -> SessionRepo | None:
        """Session storage, or None when persistence is off."""
        if self._mongo is None:
            return None
        if self._session_repo is None:
            from agentloop.infra.db.sessions import SessionRepo

            self._session_repo = SessionRepo(self._mongo.db)
        return self._session_repo

    @property
    def orchestration(self) -> OrchestrationContext:
        if self._orchestration is None:
            self._orchestration = self._build(self.config)
        return self._orchestration

    @property
    def client(self) -> AgentClient:
        return self.orchestration.client

    def _build(self, config: AppConfig) -> OrchestrationContext:
        """Build a fresh registry + client pair for ``config``."""
        selection = config.backend_selection()
        workspace = Path(selection.workspace_root)
        registry = build_registry(
            workspace,
            config,
            tracker=self.tracker,
            monitor=self.monitor,
            metrics=self.metrics,
        )
        provider = self._provider_factory(selection.backend_kind, config, workspace)
        client = AgentClient(
            provider,
            registry,
            workspace_root=selection.workspace_root,
            loop_config=config.loop,
            tracker=self.tracker,
            metrics=self.metrics,
            session_repo=self.session_repo,
            model=selection.params.get("model", ""),
        )
        logger.info(
            "Built orchestration for %s on %s backend",
            selection.workspace_root, selection.backend_kind.value,
        )
        return OrchestrationContext(
            registry=registry,
            client=client,
            workspace_root=selection.workspace_root,
            backend_selection=selection,
        )

    async def reconfigure(
        self,
        workspace_root: str | None = None,
        backend: str | None = None,
        model: str | None = None,
    ) -> OrchestrationContext:
        """Switch workspace and/or backend.

        A changed selection builds a new registry + client and swaps them in
        as a unit; the old client is closed afterwards. An unchanged
        selection keeps the current pair.
        """
        new_config = copy.deepcopy(self.config)
        if workspace_root is not None:
            new_config.workspace_root = workspace_root
        if backend is not None:
            new_config.backend = BackendKind(backend).value
        if model is not None:
            prov = new_config.providers.setdefault(new_config.backend, ProviderConfig())
            prov.default_model = model

        selection = new_config.backend_selection()
        current = self._orchestration
        if current is not None and current.backend_selection == selection:
            self.config = new_config
            return current

        replacement = self._build(new_config)
        self.config = new_config
        self._orchestration = replacement
        if current is not None:
            await current.client.close()
        return replacement
