"""Debugging tools over the execution ledger: execution_trace, inspect_variables."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from agentloop.infra.cancellation import CancellationSignal
from agentloop.models.execution import ExecutionState
from agentloop.models.tool import ParameterSchema, PropertySchema, ToolErrorType, ToolResult
from agentloop.services.observability import build_trace, format_trace_text
from agentloop.services.tools.base import BaseInvocation, BaseTool, OutputCallback

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 100


def _find_state(invocation: BaseInvocation, operation_id: str) -> ExecutionState | None:
    """The named operation, or the most recently started one when no id is given."""
    tracker = invocation.ctx.tracker
    if operation_id:
        return tracker.get_state(operation_id)
    return tracker.latest()


def _no_state(operation_id: str) -> ToolResult:
    suffix = f" for operation: {operation_id}" if operation_id else ""
    return ToolResult.failure(f"No execution state found{suffix}")


# --- execution_trace ---


@dataclass(frozen=True)
class ExecutionTraceParams:
    operation_id: str = ""
    format: str = "text"
    include_variables: bool = True


class ExecutionTraceInvocation(BaseInvocation[ExecutionTraceParams]):
    cancel_label = "Execution trace"

    def get_description(self) -> str:
        target = self.params.operation_id or "latest operation"
        return f"Trace {target} ({self.params.format})"

    async def _run(
        self, signal: CancellationSignal, update_output: OutputCallback | None
    ) -> ToolResult:
        p = self.params
        state = _find_state(self, p.operation_id)
        if state is None:
            return _no_state(p.operation_id)

        metrics = None
        if self.ctx.metrics is not None:
            metrics = self.ctx.metrics.get_operation_metrics(state.operation_id)
        trace = build_trace(state, metrics, include_variables=p.include_variables)

        if p.format == "json":
            content = json.dumps(trace, indent=2, default=str)
        else:
            content = format_trace_text(trace)
        return ToolResult(
            llm_content=content,
            return_display=f"Trace of {state.operation_id}: {len(state.tool_calls)} tool call(s)",
        )


class ExecutionTraceTool(BaseTool[ExecutionTraceParams]):
    name = "execution_trace"
    display_name = "ExecutionTrace"
    description = (
        "Show the execution trace of an operation: turns, tool calls with "
        "timing and errors, token usage and variables."
    )
    parameter_schema = ParameterSchema(
        properties={
            "operation_id": PropertySchema("string", "Operation to trace (default: most recent)"),
            "format": PropertySchema("string", "Output format", enum=("text", "json")),
            "include_variables": PropertySchema("boolean", "Include operation variables"),
        },
    )

    def build_params(self, raw: dict) -> ExecutionTraceParams:
        return ExecutionTraceParams(
            operation_id=raw.get("operation_id") or "",
            format=raw.get("format") or "text",
            include_variables=raw.get("include_variables", True),
        )

    def create_invocation(self, params: ExecutionTraceParams) -> ExecutionTraceInvocation:
        return ExecutionTraceInvocation(params, self.ctx)


# --- inspect_variables ---


@dataclass(frozen=True)
class InspectVariablesParams:
    action: str
    operation_id: str = ""
    variable_name: str = ""
    new_value: str | None = None


def _type_name(value: Any) -> str:
    return type(value).__name__


def _preview(value: Any) -> str:
    text = json.dumps(value, default=str)
    return text if len(text) <= PREVIEW_CHARS else text[:PREVIEW_CHARS] + "..."


def _parse_value(raw: str) -> Any:
    """JSON if it parses, otherwise the raw string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


class InspectVariablesInvocation(BaseInvocation[InspectVariablesParams]):
    cancel_label = "Variable inspection"

    def get_description(self) -> str:
        p = self.params
        if p.action == "list":
            return "Listing all variables"
        if p.action == "inspect":
            return f"Inspecting variable: {p.variable_name}"
        return f"Modifying variable: {p.variable_name}"

    async def _run(
        self, signal: CancellationSignal, update_output: OutputCallback | None
    ) -> ToolResult:
        p = self.params
        state = _find_state(self, p.operation_id)
        if state is None:
            return _no_state(p.operation_id)

        if p.action == "list":
            return self._list(state)
        if p.action == "inspect":
            return self._inspect(state)
        return self._modify(state)

    def _list(self, state: ExecutionState) -> ToolResult:
        lines = [
            "# Variables",
            f"Operation: {state.operation_id}",
            f"Total: {len(state.variables)}",
            "",
        ]
        if not state.variables:
            lines.append("No variables found.")
        for name in sorted(state.variables):
            value = state.variables[name]
            lines.append(f"- `{name}` ({_type_name(value)}): {_preview(value)}")
        return ToolResult(
            llm_content="\n".join(lines),
            return_display=f"Found {len(state.variables)} variable(s)",
        )

    def _inspect(self, state: ExecutionState) -> ToolResult:
        name = self.params.variable_name
        if name not in state.variables:
            available = ", ".join(sorted(state.variables)) or "(none)"
            return ToolResult.failure(
                f"Variable `{name}` not found. Available variables: {available}",
                ToolErrorType.INVALID_PARAMETERS,
            )
        value = state.variables[name]
        content = (
            f"# Variable `{name}`\n"
            f"Operation: {state.operation_id}\n"
            f"Type: {_type_name(value)}\n"
            f"Value:\n{json.dumps(value, indent=2, default=str)}"
        )
        return ToolResult(llm_content=content, return_display=f"Inspected {name}")

    def _modify(self, state: ExecutionState) -> ToolResult:
        name = self.params.variable_name
        old = state.variables.get(name)
        value = _parse_value(self.params.new_value or "")
        self.ctx.tracker.set_variable(state.operation_id, name, value)
        logger.debug("Variable %s of %s set to %r", name, state.operation_id, value)
        return ToolResult(
            llm_content=(
                f"Variable `{name}` updated in {state.operation_id}: "
                f"{_preview(old)} -> {_preview(value)}"
            ),
            return_display=f"Modified {name}",
        )


class InspectVariablesTool(BaseTool[InspectVariablesParams]):
    name = "inspect_variables"
    display_name = "InspectVariables"
    description = (
        "List, inspect or modify the named variables of an operation in the "
        "execution ledger."
    )
    parameter_schema = ParameterSchema(
        properties={
            "action": PropertySchema("string", "What to do", enum=("list", "inspect", "modify")),
            "operation_id": PropertySchema("string", "Operation id (default: most recent)"),
            "variable_name": PropertySchema("string", "Variable name for inspect/modify"),
            "new_value": PropertySchema("string", "New value for modify (JSON or plain text)"),
        },
        required=("action",),
    )

    def build_params(self, raw: dict) -> InspectVariablesParams:
        action = raw["action"]
        name = raw.get("variable_name") or ""
        if action in ("inspect", "modify") and not name:
            raise ValueError(f"'variable_name' is required for action '{action}'")
        if action == "modify" and raw.get("new_value") is None:
            raise ValueError("'new_value' is required for action 'modify'")
        return InspectVariablesParams(
            action=action,
            operation_id=raw.get("operation_id") or "",
            variable_name=name,
            new_value=raw.get("new_value"),
        )

    def create_invocation(self, params: InspectVariablesParams) -> InspectVariablesInvocation:
        return InspectVariablesInvocation(params, self.ctx)
