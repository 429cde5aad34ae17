"""Tests for metering and trace export."""

from datetime import timedelta

import pytest

from agentloop.services.execution_tracker import ExecutionStateTracker
from agentloop.services.observability import (
    MetricsRecorder,
    build_trace,
    estimate_cost,
    format_trace_text,
)


class TestEstimateCost:
    def test_known_models(self):
        assert estimate_cost("claude-sonnet-4-20250514", 1000) == pytest.approx(0.003)
        assert estimate_cost("gpt-4-turbo", 1000) == pytest.approx(0.01)
        assert estimate_cost("openai/gpt-4", 2000) == pytest.approx(0.06)

    def test_local_is_free(self):
        assert estimate_cost("llama-3-8b", 5000) == 0.0
        assert estimate_cost("script", 5000) == 0.0

    def test_default_rate(self):
        assert estimate_cost("mystery-model", 1000) == pytest.approx(0.001)
        assert estimate_cost("", 1000) == pytest.approx(0.001)


class TestMetricsRecorder:
    def test_operation_counters(self):
        recorder = MetricsRecorder()
        recorder.start_operation("op1")
        cost = recorder.record_api_call("op1", 2000, "claude-haiku")
        recorder.record_tool_call("op1")
        recorder.record_tool_call("op1")
        recorder.record_error("op1")
        recorder.end_operation("op1")

        m = recorder.get_operation_metrics("op1")
        assert m.api_calls == 1
        assert m.tokens_used == 2000
        assert m.cost == pytest.approx(cost)
        assert m.tool_calls == 2
        assert m.errors == 1
        assert m.end_time is not None

    def test_unknown_operation_still_counts_globally(self):
        recorder = MetricsRecorder()
        recorder.record_api_call("ghost", 100)
        assert recorder.get_operation_metrics("ghost") is None
        assert recorder.get_global_stats()["total_api_calls"] == 1

    def test_global_stats(self):
        recorder = MetricsRecorder()
        recorder.start_operation("a")
        recorder.start_operation("b")
        recorder.record_api_call("a", 100, "script")
        recorder.record_api_call("b", 300, "script")
        stats = recorder.get_global_stats()
        assert stats["total_api_calls"] == 2
        assert stats["total_tokens"] == 400
        assert stats["operations"] == 2

    def test_returned_metrics_are_copies(self):
        recorder = MetricsRecorder()
        recorder.start_operation("op1")
        recorder.get_operation_metrics("op1").api_calls = 99
        assert recorder.get_operation_metrics("op1").api_calls == 0

    def test_clear(self):
        recorder = MetricsRecorder()
        recorder.start_operation("op1")
        recorder.record_api_call("op1", 100)
        recorder.clear()
        assert recorder.get_global_stats()["total_tokens"] == 0
        assert recorder.get_operation_metrics("op1") is None

    def test_ended_operations_evicted_after_retention(self):
        recorder = MetricsRecorder(retention_seconds=60)
        recorder.start_operation("op1")
        recorder.record_api_call("op1", 100, "script")
        recorder.end_operation("op1")
        recorder._metrics["op1"].end_time -= timedelta(seconds=120)
        recorder.start_operation("running")

        recorder.start_operation("op2")
        assert recorder.get_operation_metrics("op1") is None
        assert recorder.get_operation_metrics("running") is not None
        stats = recorder.get_global_stats()
        assert stats["operations"] == 2
        assert stats["total_api_calls"] == 1
        assert stats["total_tokens"] == 100

    def test_recent_ended_operations_kept(self):
        recorder = MetricsRecorder(retention_seconds=60)
        recorder.start_operation("op1")
        recorder.end_operation("op1")
        recorder.start_operation("op2")
        assert recorder.get_operation_metrics("op1") is not None


class TestTrace:
    def _state(self):
        tracker = ExecutionStateTracker()
        tracker.start("op1", total_turns=4, variables={"target": "main.py"})
        tracker.update_turn("op1", 2)
        tracker.record_tool_call("op1", "read_file", {"file_path": "main.py"}, 3, True)
        tracker.record_tool_call("op1", "shell", {"command": "false"}, 10, False, "exit 1")
        tracker.end("op1")
        return tracker.get_state("op1")

    def test_build_trace_summary(self):
        recorder = MetricsRecorder()
        recorder.start_operation("op1")
        recorder.record_api_call("op1", 500, "script")
        trace = build_trace(self._state(), recorder.get_operation_metrics("op1"))
        assert trace["summary"]["total_turns"] == 2
        assert trace["summary"]["total_tool_calls"] == 2
        assert trace["summary"]["failed_tool_calls"] == 1
        assert trace["summary"]["total_tokens"] == 500
        assert trace["variables"] == {"target": "main.py"}
        assert trace["end_time"] is not None

    def test_variables_optional(self):
        trace = build_trace(self._state(), include_variables=False)
        assert "variables" not in trace
        assert trace["summary"]["total_api_calls"] == 0

    def test_text_format(self):
        text = format_trace_text(build_trace(self._state()))
        assert "Execution Trace: op1" in text
        assert "Turns: 2/4" in text
        assert "read_file (ok 3ms)" in text
        assert "shell (failed 10ms)" in text
        assert "Error: exit 1" in text
        assert 'target = "main.py"' in text
