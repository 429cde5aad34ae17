"""Per-operation execution ledger.

Each operation gets one ``ExecutionState`` entry guarded by its own
``threading.Lock``; there is no tracker-wide lock around operations, so
concurrent operations never contend with each other. Readers always get
``snapshot()`` copies. Completed entries stay readable for
``retention_seconds`` and are evicted lazily afterwards.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from agentloop.models.execution import ExecutionState, ToolCallInfo

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    state: ExecutionState
    lock: threading.Lock = field(default_factory=threading.Lock)


class ExecutionStateTracker:
    """Concurrency-safe store of ``ExecutionState`` keyed by operation id."""

    def __init__(self, retention_seconds: float = 3600) -> None:
        self._entries: dict[str, _Entry] = {}
        self._retention = timedelta(seconds=retention_seconds)

    def start(
        self,
        operation_id: str,
        script_path: str | None = None,
        total_turns: int = 0,
        variables: dict | None = None,
    ) -> ExecutionState:
        """Register a new operation. Restarting an id replaces its state."""
        self._evict_expired()
        state = ExecutionState(
            operation_id=operation_id,
            script_path=script_path,
            total_turns=total_turns,
            variables=dict(variables or {}),
        )
        self._entries[operation_id] = _Entry(state)
        logger.debug("Tracking operation %s", operation_id)
        return state.snapshot()

    def _entry(self, operation_id: str) -> _Entry | None:
        entry = self._entries.get(operation_id)
        if entry is None:
            logger.debug("No execution state for operation %s", operation_id)
        return entry

    def update_turn(self, operation_id: str, turn: int, total_turns: int | None = None) -> None:
        entry = self._entry(operation_id)
        if entry is None:
            return
        with entry.lock:
            if total_turns is not None:
                entry.state.total_turns = total_turns
            if entry.state.total_turns:
                turn = min(turn, entry.state.total_turns)
            entry.state.current_turn = turn

    def record_tool_call(
        self,
        operation_id: str,
        name: str,
        args: dict | None = None,
        duration_ms: int | None = None,
        success: bool | None = None,
        error: str | None = None,
    ) -> None:
        entry = self._entry(operation_id)
        if entry is None:
            return
        info = ToolCallInfo(
            name=name,
            args=copy.deepcopy(args or {}),
            duration_ms=duration_ms,
            success=success,
            error=error,
        )
        with entry.lock:
            entry.state.tool_calls.append(info)

    def set_variables(self, operation_id: str, variables: dict) -> None:
        """Merge ``variables`` into the operation's variables."""
        entry = self._entry(operation_id)
        if entry is None:
            return
        with entry.lock:
            entry.state.variables.update(variables)

    def set_variable(self, operation_id: str, name: str, value) -> bool:
        entry = self._entry(operation_id)
        if entry is None:
            return False
        with entry.lock:
            entry.state.variables[name] = value
        return True

    def get_variables(self, operation_id: str) -> dict | None:
        state = self.get_state(operation_id)
        return state.variables if state else None

    def get_state(self, operation_id: str) -> ExecutionState | None:
        entry = self._entries.get(operation_id)
        if entry is None:
            return None
        with entry.lock:
            return entry.state.snapshot()

    def get_all_active(self) -> list[ExecutionState]:
        snapshots = []
        for entry in list(self._entries.values()):
            with entry.lock:
                if entry.state.is_active:
                    snapshots.append(entry.state.snapshot())
        return snapshots

    def get_all(self) -> list[ExecutionState]:
        """Active and retained completed states, oldest first."""
        self._evict_expired()
        snapshots = []
        for entry in list(self._entries.values()):
            with entry.lock:
                snapshots.append(entry.state.snapshot())
        return sorted(snapshots, key=lambda s: s.start_time)

    def latest(self) -> ExecutionState | None:
        states = self.get_all()
        return states[-1] if states else None

    def end(self, operation_id: str) -> None:
        """Mark the operation complete; the entry is kept for the retention window."""
        entry = self._entry(operation_id)
        if entry is None:
            return
        with entry.lock:
            if entry.state.completed_at is None:
                entry.state.completed_at = datetime.now(timezone.utc)

    def clear(self) -> None:
        self._entries.clear()

    def _evict_expired(self) -> None:
        cutoff = datetime.now(timezone.utc) - self._retention
        for op_id, entry in list(self._entries.items()):
            completed = entry.state.completed_at
            if completed is not None and completed < cutoff:
                self._entries.pop(op_id, None)
                logger.debug("Evicted execution state %s", op_id)


# Process-wide default, created on first access
_TRACKER: ExecutionStateTracker | None = None


def get_execution_tracker() -> ExecutionStateTracker:
    """Get the shared tracker (lazily initialized)."""
    global _TRACKER
    if _TRACKER is None:
        _TRACKER = ExecutionStateTracker()
    return _TRACKER
