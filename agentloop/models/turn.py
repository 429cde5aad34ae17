"""Turn loop states and outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from agentloop.models.tool import ToolResult


class TurnState(str, Enum):
    IDLE = "idle"
    AWAITING_BACKEND = "awaiting_backend"
    DISPATCHING_TOOLS = "dispatching_tools"
    TERMINATED = "terminated"


class TerminationReason(str, Enum):
    COMPLETED = "completed"
    TURN_LIMIT_REACHED = "turn_limit_reached"
    CANCELLED = "cancelled"
    FATAL_ERROR = "fatal_error"


@dataclass(frozen=True)
class ToolOutcome:
    """A dispatched tool call paired with its result."""

    call_id: str
    name: str
    arguments: dict
    result: ToolResult
    duration_ms: int = 0


@dataclass(frozen=True)
class TurnResult:
    """Terminal state of one ``send_message`` operation."""

    operation_id: str
    reason: TerminationReason
    content: str
    turns_used: int
    max_turns: int
    tool_outcomes: tuple[ToolOutcome, ...] = ()
    error: str = ""
    usage: dict = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.reason == TerminationReason.COMPLETED

    def summary(self) -> str:
        """Short human-readable summary of how the operation ended."""
        failed = sum(1 for o in self.tool_outcomes if not o.result.success)
        tools = f"{len(self.tool_outcomes)} tool call(s)"
        if failed:
            tools += f", {failed} failed"
        head = {
            TerminationReason.COMPLETED: "Completed",
            TerminationReason.TURN_LIMIT_REACHED: "Stopped at turn limit",
            TerminationReason.CANCELLED: "Cancelled",
            TerminationReason.FATAL_ERROR: "Failed",
        }[self.reason]
        line = f"{head} after {self.turns_used}/{self.max_turns} turn(s), {tools}"
        if self.error:
            line += f": {self.error}"
        return line
