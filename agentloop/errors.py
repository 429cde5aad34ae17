"""Exception types shared across the orchestration core."""

from __future__ import annotations


class AgentLoopError(Exception):
    """Base class for orchestration errors."""


class InvalidParameters(AgentLoopError, ValueError):
    """Raw tool arguments failed schema validation."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name
        self.detail = message


class DuplicateToolName(AgentLoopError, ValueError):
    """A tool with the same name is already registered."""


class ToolNotFound(AgentLoopError, KeyError):
    """No tool is registered under the requested name."""

    def __str__(self) -> str:
        return f"Unknown tool: {self.args[0]}" if self.args else "Unknown tool"


class BackendUnavailable(AgentLoopError, RuntimeError):
    """Transient backend failure (network, rate limit, 5xx)."""


class OperationCancelled(AgentLoopError):
    """Raised at a suspension point once the cancellation signal is set."""
