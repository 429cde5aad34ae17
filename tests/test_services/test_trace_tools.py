"""Tests for execution_trace and inspect_variables."""

import json

import pytest

from agentloop.infra.cancellation import CancellationSignal
from agentloop.models.tool import ToolErrorType
from agentloop.services.edit_monitor import EditFailureMonitor
from agentloop.services.execution_tracker import ExecutionStateTracker
from agentloop.services.observability import MetricsRecorder
from agentloop.services.tools.context import ToolContext
from agentloop.services.tools.trace_tools import ExecutionTraceTool, InspectVariablesTool


@pytest.fixture
def tracker():
    tracker = ExecutionStateTracker()
    tracker.start("op1", total_turns=3, variables={"count": 2, "name": "demo"})
    tracker.record_tool_call("op1", "read_file", {"file_path": "a"}, 1, True)
    return tracker


@pytest.fixture
def ctx(tmp_path, tracker):
    metrics = MetricsRecorder()
    metrics.start_operation("op1")
    metrics.record_api_call("op1", 120, "script")
    return ToolContext(tmp_path, tracker, EditFailureMonitor(), metrics=metrics)


async def _run(tool, **args):
    return await tool.build(args).execute(CancellationSignal())


class TestExecutionTrace:
    @pytest.mark.asyncio
    async def test_text(self, ctx):
        result = await _run(ExecutionTraceTool(ctx), operation_id="op1")
        assert "Execution Trace: op1" in result.llm_content
        assert "Total Tokens: 120" in result.llm_content

    @pytest.mark.asyncio
    async def test_json_defaults_to_latest(self, ctx):
        result = await _run(ExecutionTraceTool(ctx), format="json", include_variables=False)
        trace = json.loads(result.llm_content)
        assert trace["operation_id"] == "op1"
        assert trace["summary"]["total_tool_calls"] == 1
        assert "variables" not in trace

    @pytest.mark.asyncio
    async def test_unknown_operation(self, ctx):
        result = await _run(ExecutionTraceTool(ctx), operation_id="missing")
        assert result.error.message == "No execution state found for operation: missing"


class TestInspectVariables:
    @pytest.mark.asyncio
    async def test_list(self, ctx):
        result = await _run(InspectVariablesTool(ctx), action="list")
        assert "Total: 2" in result.llm_content
        assert '- `count` (int): 2' in result.llm_content
        assert '- `name` (str): "demo"' in result.llm_content

    @pytest.mark.asyncio
    async def test_inspect(self, ctx):
        result = await _run(InspectVariablesTool(ctx), action="inspect", variable_name="name")
        assert "Type: str" in result.llm_content

    @pytest.mark.asyncio
    async def test_inspect_missing(self, ctx):
        result = await _run(InspectVariablesTool(ctx), action="inspect", variable_name="nope")
        assert result.error.type == ToolErrorType.INVALID_PARAMETERS
        assert "count, name" in result.error.message

    @pytest.mark.asyncio
    async def test_modify_parses_json(self, ctx, tracker):
        await _run(InspectVariablesTool(ctx), action="modify", variable_name="count", new_value="5")
        await _run(InspectVariablesTool(ctx), action="modify", variable_name="label", new_value="plain text")
        assert tracker.get_variables("op1") == {"count": 5, "name": "demo", "label": "plain text"}

    @pytest.mark.asyncio
    async def test_no_operations(self, tmp_path):
        ctx = ToolContext(tmp_path, ExecutionStateTracker(), EditFailureMonitor())
        result = await _run(InspectVariablesTool(ctx), action="list")
        assert result.error.message == "No execution state found"

    def test_modify_requires_value(self, ctx):
        from agentloop.errors import InvalidParameters

        with pytest.raises(InvalidParameters):
            InspectVariablesTool(ctx).build({"action": "modify", "variable_name": "x"})
