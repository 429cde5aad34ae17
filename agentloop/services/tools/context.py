"""Tool execution context - shared dependencies for all tools."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from agentloop.config import EditConfig, ToolsConfig

if TYPE_CHECKING:
    from agentloop.services.edit_monitor import EditFailureMonitor
    from agentloop.services.execution_tracker import ExecutionStateTracker
    from agentloop.services.observability import MetricsRecorder


def write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@dataclass
class ToolContext:
    """Dependency bundle handed to every tool of one registry.

    ``workspace_root`` is fixed for the registry's lifetime; a different
    workspace means a new registry and a new context.

    ``edit_failures`` counts consecutive failed edits per absolute path. It
    is shared by the file tools of the registry: ``edit_file`` increments it,
    and a successful edit, read or write of the path clears it.
    """

    workspace_root: Path
    tracker: ExecutionStateTracker
    monitor: EditFailureMonitor
    metrics: MetricsRecorder | None = None
    edit: EditConfig = field(default_factory=EditConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    edit_failures: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.workspace_root = Path(self.workspace_root).expanduser().resolve()

    def absolute(self, raw_path: str) -> Path:
        """Absolute form of ``raw_path``; relative paths are workspace-relative."""
        path = Path(raw_path).expanduser()
        if not path.is_absolute():
            path = self.workspace_root / path
        return path.resolve()

    def is_inside(self, path: Path) -> bool:
        return path == self.workspace_root or self.workspace_root in path.parents

    def resolve_path(self, raw_path: str) -> Path:
        """Absolute path inside the workspace.

        Raises PermissionError for anything that escapes the workspace root.
        """
        path = self.absolute(raw_path)
        if not self.is_inside(path):
            raise PermissionError(f"Path is outside the workspace: {raw_path}")
        return path

    def relative(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.workspace_root)) or "."
        except ValueError:
            return str(path)

    def clear_edit_failures(self, path: Path) -> None:
        self.edit_failures.pop(str(path), None)
