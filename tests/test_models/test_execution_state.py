"""Tests for execution ledger models."""

from datetime import datetime, timedelta, timezone

from agentloop.models.execution import ExecutionState, ToolCallInfo


class TestToolCallInfo:
    def test_doc_roundtrip(self):
        info = ToolCallInfo(name="shell", args={"command": "ls"}, duration_ms=12, success=True)
        restored = ToolCallInfo.from_doc(info.to_doc())
        assert restored == info


class TestExecutionState:
    def test_active_until_completed(self):
        state = ExecutionState(operation_id="op1")
        assert state.is_active
        state.completed_at = datetime.now(timezone.utc)
        assert not state.is_active

    def test_duration(self):
        start = datetime.now(timezone.utc) - timedelta(seconds=5)
        state = ExecutionState(operation_id="op1", start_time=start, completed_at=start + timedelta(seconds=2))
        assert state.duration_seconds == 2.0

    def test_snapshot_is_independent(self):
        state = ExecutionState(operation_id="op1", variables={"nested": {"a": 1}})
        snap = state.snapshot()
        snap.variables["nested"]["a"] = 2
        snap.tool_calls.append(ToolCallInfo(name="x"))
        assert state.variables["nested"]["a"] == 1
        assert state.tool_calls == []

    def test_to_doc(self):
        state = ExecutionState(operation_id="op1", total_turns=3)
        doc = state.to_doc()
        assert doc["operation_id"] == "op1"
        assert doc["total_turns"] == 3
        assert doc["completed_at"] is None
