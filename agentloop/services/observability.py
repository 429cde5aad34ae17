"""Metering per operation and trace export."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from agentloop.models.execution import ExecutionState

logger = logging.getLogger(__name__)

# Approximate USD per 1K tokens; first substring match wins, so specific keys go first
COST_PER_1K_TOKENS: tuple[tuple[str, float], ...] = (
    ("claude-opus", 0.015),
    ("claude-sonnet", 0.003),
    ("claude-haiku", 0.00025),
    ("gpt-4-turbo", 0.01),
    ("gpt-4", 0.03),
    ("gpt-3.5-turbo", 0.0015),
    ("gemini", 0.0005),
    ("ollama", 0.0),
    ("llama", 0.0),
    ("local", 0.0),
    ("script", 0.0),
)
DEFAULT_COST_PER_1K = 0.001


def estimate_cost(model: str, tokens: int) -> float:
    model = (model or "").lower()
    per_1k = next(
        (cost for key, cost in COST_PER_1K_TOKENS if key in model), DEFAULT_COST_PER_1K
    )
    return tokens / 1000.0 * per_1k


@dataclass
class OperationMetrics:
    operation_id: str
    operation_type: str = "send_message"
    start_time: datetime | None = None
    end_time: datetime | None = None
    api_calls: int = 0
    tokens_used: int = 0
    tool_calls: int = 0
    errors: int = 0
    cost: float = 0.0

    def to_dict(self) -> dict:
        d = asdict(self)
        d["start_time"] = self.start_time.isoformat() if self.start_time else None
        d["end_time"] = self.end_time.isoformat() if self.end_time else None
        return d


class MetricsRecorder:
    """API/tool counters per operation plus process-wide totals.

    Ended operations are dropped once they are older than
    ``retention_seconds``; the process-wide totals keep their counts.
    """

    def __init__(self, retention_seconds: float = 3600) -> None:
        self._metrics: dict[str, OperationMetrics] = {}
        self._retention = timedelta(seconds=retention_seconds)
        self._lock = threading.Lock()
        self._totals = {
            "api_calls": 0,
            "tool_calls": 0,
            "tokens": 0,
            "cost": 0.0,
            "errors": 0,
        }

    def start_operation(self, operation_id: str, operation_type: str = "send_message") -> None:
        with self._lock:
            self._evict_expired()
            self._metrics[operation_id] = OperationMetrics(
                operation_id=operation_id,
                operation_type=operation_type,
                start_time=datetime.now(timezone.utc),
            )
        logger.debug("Started metering: %s (%s)", operation_type, operation_id)

    def end_operation(self, operation_id: str) -> None:
        with self._lock:
            m = self._metrics.get(operation_id)
            if m and m.end_time is None:
                m.end_time = datetime.now(timezone.utc)

    def _evict_expired(self) -> None:
        cutoff = datetime.now(timezone.utc) - self._retention
        for op_id, m in list(self._metrics.items()):
            if m.end_time is not None and m.end_time < cutoff:
                del self._metrics[op_id]
                logger.debug("Evicted metrics for %s", op_id)

    def record_api_call(self, operation_id: str, tokens: int, model: str = "") -> float:
        cost = estimate_cost(model, tokens)
        with self._lock:
            self._totals["api_calls"] += 1
            self._totals["tokens"] += tokens
            self._totals["cost"] += cost
            m = self._metrics.get(operation_id)
            if m:
                m.api_calls += 1
                m.tokens_used += tokens
                m.cost += cost
        return cost

    def record_tool_call(self, operation_id: str) -> None:
        with self._lock:
            self._totals["tool_calls"] += 1
            m = self._metrics.get(operation_id)
            if m:
                m.tool_calls += 1

    def record_error(self, operation_id: str) -> None:
        with self._lock:
            self._totals["errors"] += 1
            m = self._metrics.get(operation_id)
            if m:
                m.errors += 1

    def get_operation_metrics(self, operation_id: str) -> OperationMetrics | None:
        with self._lock:
            m = self._metrics.get(operation_id)
            return OperationMetrics(**asdict(m)) if m else None

    def get_global_stats(self) -> dict:
        with self._lock:
            return {
                "total_api_calls": self._totals["api_calls"],
                "total_tool_calls": self._totals["tool_calls"],
                "total_tokens": self._totals["tokens"],
                "total_cost": self._totals["cost"],
                "total_errors": self._totals["errors"],
                "operations": len(self._metrics),
            }

    def clear(self) -> None:
        with self._lock:
            self._metrics.clear()
            for key in self._totals:
                self._totals[key] = 0.0 if key == "cost" else 0


def build_trace(
    state: ExecutionState,
    metrics: OperationMetrics | None = None,
    include_variables: bool = True,
) -> dict:
    """Structured trace of one operation."""
    failed = [tc for tc in state.tool_calls if tc.success is False]
    trace = {
        "operation_id": state.operation_id,
        "script_path": state.script_path,
        "start_time": state.start_time.isoformat(),
        "end_time": state.completed_at.isoformat() if state.completed_at else None,
        "duration_ms": int(state.duration_seconds * 1000),
        "current_turn": state.current_turn,
        "total_turns": state.total_turns,
        "tool_calls": [tc.to_doc() for tc in state.tool_calls],
        "summary": {
            "total_turns": state.current_turn,
            "total_tool_calls": len(state.tool_calls),
            "failed_tool_calls": len(failed),
            "total_api_calls": metrics.api_calls if metrics else 0,
            "total_tokens": metrics.tokens_used if metrics else 0,
            "total_cost": metrics.cost if metrics else 0.0,
            "total_errors": (metrics.errors if metrics else 0) + len(failed),
        },
    }
    if include_variables:
        trace["variables"] = state.variables
    return trace


def format_trace_text(trace: dict) -> str:
    """Human-readable rendering of ``build_trace`` output."""
    summary = trace["summary"]
    rule = "=" * 80
    lines = [
        rule,
        f"Execution Trace: {trace['operation_id']}",
        rule,
        "",
        "Summary:",
        f"  Start Time: {trace['start_time']}",
    ]
    if trace.get("end_time"):
        lines.append(f"  End Time: {trace['end_time']}")
    lines += [
        f"  Duration: {trace['duration_ms']}ms",
        f"  Script: {trace.get('script_path') or 'N/A'}",
        "",
        "Statistics:",
        f"  Turns: {trace['current_turn']}/{trace['total_turns']}",
        f"  API Calls: {summary['total_api_calls']}",
        f"  Tool Calls: {summary['total_tool_calls']}",
        f"  Total Tokens: {summary['total_tokens']}",
        f"  Total Cost: ${summary['total_cost']:.4f}",
        f"  Errors: {summary['total_errors']}",
    ]
    if trace["tool_calls"]:
        lines += ["", "Tool Calls:"]
        for tc in trace["tool_calls"]:
            status = "ok" if tc["success"] else ("failed" if tc["success"] is False else "?")
            duration = f" {tc['duration_ms']}ms" if tc["duration_ms"] is not None else ""
            lines.append(f"  [{tc['timestamp']}] {tc['name']} ({status}{duration})")
            lines.append(f"    Args: {json.dumps(tc['args'], default=str)}")
            if tc["error"]:
                lines.append(f"    Error: {tc['error']}")
    if trace.get("variables"):
        lines += ["", "Variables:"]
        for name, value in sorted(trace["variables"].items()):
            lines.append(f"  {name} = {json.dumps(value, default=str)}")
    return "\n".join(lines)


_RECORDER: MetricsRecorder | None = None


def get_metrics_recorder() -> MetricsRecorder:
    """Get the shared metrics recorder (lazily initialized)."""
    global _RECORDER
    if _RECORDER is None:
        _RECORDER = MetricsRecorder()
    return _RECORDER
