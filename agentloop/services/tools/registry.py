"""Tool registry - maps tool names to tool descriptors."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from agentloop.errors import DuplicateToolName, ToolNotFound
from agentloop.services.tools.base import BaseTool
from agentloop.services.tools.context import ToolContext

if TYPE_CHECKING:
    from agentloop.config import AppConfig
    from agentloop.services.edit_monitor import EditFailureMonitor
    from agentloop.services.execution_tracker import ExecutionStateTracker
    from agentloop.services.observability import MetricsRecorder

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name-keyed, append-only collection of tools.

    Once frozen (``build_registry`` always freezes) no further tools can be
    added, so a client holding the registry sees the same tools for its
    whole lifetime.
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._frozen = False

    def register_tool(self, tool: BaseTool) -> None:
        if self._frozen:
            raise RuntimeError("Tool registry is frozen")
        if tool.name in self._tools:
            raise DuplicateToolName(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def get_tool(self, name: str) -> BaseTool:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFound(name) from None

    def list_tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get_function_declarations(self) -> list[dict]:
        return [t.get_function_declaration().to_dict() for t in self._tools.values()]

    def freeze(self) -> ToolRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def _builtin_tools(ctx: ToolContext) -> list[BaseTool]:
    """The enumerated set of built-in tools, in advertisement order."""
    from agentloop.services.tools import edit_tools, file_tools, shell_tools, trace_tools

    return [
        # --- File tools ---
        file_tools.ReadFileTool(ctx),
        file_tools.WriteFileTool(ctx),
        edit_tools.EditFileTool(ctx),
        file_tools.ListDirectoryTool(ctx),
        # --- Process tools ---
        shell_tools.ShellTool(ctx),
        # --- Debugging tools ---
        trace_tools.ExecutionTraceTool(ctx),
        trace_tools.InspectVariablesTool(ctx),
    ]


def build_registry(
    workspace_root: str | Path,
    config: AppConfig,
    tracker: ExecutionStateTracker,
    monitor: EditFailureMonitor,
    metrics: MetricsRecorder | None = None,
) -> ToolRegistry:
    """Build and freeze the registry for one workspace/configuration pair."""
    ctx = ToolContext(
        workspace_root=Path(workspace_root),
        tracker=tracker,
        monitor=monitor,
        metrics=metrics,
        edit=config.edit,
        tools=config.tools,
    )
    registry = ToolRegistry()
    for tool in _builtin_tools(ctx):
        registry.register_tool(tool)
    logger.debug("Built tool registry for %s with %d tools", ctx.workspace_root, len(registry))
    return registry.freeze()
