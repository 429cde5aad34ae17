"""Execution ledger domain models."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone


@dataclass(frozen=True)
class ToolCallInfo:
    """Record of a single tool call within an operation."""

    name: str
    args: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration_ms: int | None = None
    success: bool | None = None
    error: str | None = None

    def to_doc(self) -> dict:
        return {
            "name": self.name,
            "args": self.args,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error,
        }

    @classmethod
    def from_doc(cls, doc: dict) -> ToolCallInfo:
        ts = doc.get("timestamp")
        return cls(
            name=doc["name"],
            args=doc.get("args", {}),
            timestamp=datetime.fromisoformat(ts) if ts else datetime.now(timezone.utc),
            duration_ms=doc.get("duration_ms"),
            success=doc.get("success"),
            error=doc.get("error"),
        )


@dataclass
class ExecutionState:
    """Mutable per-operation state owned by the ExecutionStateTracker.

    Mutated in place under the tracker's per-entry lock; callers outside the
    tracker only ever see ``snapshot()`` copies.
    """

    operation_id: str
    script_path: str | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    current_turn: int = 0
    total_turns: int = 0
    tool_calls: list[ToolCallInfo] = field(default_factory=list)
    variables: dict = field(default_factory=dict)
    completed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.completed_at is None

    @property
    def duration_seconds(self) -> float:
        end = self.completed_at or datetime.now(timezone.utc)
        return (end - self.start_time).total_seconds()

    def snapshot(self) -> ExecutionState:
        return ExecutionState(
            operation_id=self.operation_id,
            script_path=self.script_path,
            start_time=self.start_time,
            current_turn=self.current_turn,
            total_turns=self.total_turns,
            tool_calls=[replace(tc, args=copy.deepcopy(tc.args)) for tc in self.tool_calls],
            variables=copy.deepcopy(self.variables),
            completed_at=self.completed_at,
        )

    def to_doc(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "script_path": self.script_path,
            "start_time": self.start_time.isoformat(),
            "current_turn": self.current_turn,
            "total_turns": self.total_turns,
            "tool_calls": [tc.to_doc() for tc in self.tool_calls],
            "variables": self.variables,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
