"""Tool contract: descriptors, parameter validation and invocations.

A tool (``BaseTool``) advertises a ``FunctionDeclaration`` and turns an
untyped argument map into a frozen params dataclass. Only validated params
can become an invocation (``BaseInvocation``), and an invocation runs at most
once. ``execute`` never raises for tool failures; they come back as a
``ToolResult`` carrying a ``ToolError``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from agentloop.errors import InvalidParameters, OperationCancelled
from agentloop.infra.cancellation import CancellationSignal
from agentloop.models.tool import (
    FunctionDeclaration,
    ParameterSchema,
    PropertySchema,
    ToolErrorType,
    ToolLocation,
    ToolResult,
)
from agentloop.services.tools.context import ToolContext

logger = logging.getLogger(__name__)

P = TypeVar("P")

# Best-effort sink for streamed output (shell lines, progress notes)
OutputCallback = Callable[[str], None]

_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}


def _check_value(tool_name: str, field_name: str, prop: PropertySchema, value: Any) -> None:
    check = _TYPE_CHECKS.get(prop.type)
    if check is not None and not check(value):
        raise InvalidParameters(
            tool_name, f"'{field_name}' must be of type {prop.type}"
        )
    if prop.enum and value not in prop.enum:
        raise InvalidParameters(
            tool_name,
            f"'{field_name}' must be one of: {', '.join(prop.enum)} (got {value!r})",
        )
    if prop.type == "array" and prop.items is not None:
        for i, item in enumerate(value):
            _check_value(tool_name, f"{field_name}[{i}]", prop.items, item)


def check_against_schema(tool_name: str, schema: ParameterSchema, raw: dict) -> None:
    """Validate ``raw`` against ``schema``; unknown keys are ignored."""
    for name in schema.required:
        if raw.get(name) is None:
            raise InvalidParameters(tool_name, f"missing required parameter '{name}'")
    for name, prop in schema.properties.items():
        value = raw.get(name)
        if value is not None:
            _check_value(tool_name, name, prop, value)


class BaseInvocation(ABC, Generic[P]):
    """A validated, ready-to-run tool call.

    Subclasses implement ``_run``; ``execute`` wraps it with the cancellation
    check and the exception-to-ToolError mapping.
    """

    # Used for the "<label> cancelled" result
    cancel_label = "Operation"

    def __init__(self, params: P, ctx: ToolContext) -> None:
        self.params = params
        self.ctx = ctx
        self._executed = False

    @abstractmethod
    def get_description(self) -> str:
        """One-line summary of what this call will do."""

    def tool_locations(self) -> list[ToolLocation]:
        """Filesystem locations this call touches. Empty means unknown."""
        return []

    @abstractmethod
    async def _run(
        self, signal: CancellationSignal, update_output: OutputCallback | None
    ) -> ToolResult:
        ...

    async def execute(
        self,
        signal: CancellationSignal,
        update_output: OutputCallback | None = None,
    ) -> ToolResult:
        if self._executed:
            raise RuntimeError("Invocation has already been executed")
        self._executed = True

        if signal.is_cancelled:
            return ToolResult.cancelled(self.cancel_label)
        try:
            return await self._run(signal, update_output)
        except OperationCancelled:
            return ToolResult.cancelled(self.cancel_label)
        except MemoryError:
            raise
        except FileNotFoundError as e:
            return ToolResult.failure(
                f"File not found: {e.filename or e}", ToolErrorType.FILE_NOT_FOUND
            )
        except PermissionError as e:
            return ToolResult.failure(str(e), ToolErrorType.PERMISSION_DENIED)
        except Exception as e:
            logger.exception("Invocation failed: %s", self.get_description())
            return ToolResult.failure(str(e) or type(e).__name__)


class BaseTool(ABC, Generic[P]):
    """Descriptor for one capability the backend may call."""

    name: str = ""
    display_name: str = ""
    description: str = ""
    parameter_schema: ParameterSchema = ParameterSchema()

    def __init__(self, ctx: ToolContext) -> None:
        self.ctx = ctx

    def get_function_declaration(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters=self.parameter_schema,
        )

    def validate_and_convert_params(self, raw: dict) -> P:
        """Check ``raw`` against the schema and build the typed params."""
        if not isinstance(raw, dict):
            raise InvalidParameters(self.name, "arguments must be an object")
        check_against_schema(self.name, self.parameter_schema, raw)
        try:
            return self.build_params(raw)
        except InvalidParameters:
            raise
        except (TypeError, ValueError) as e:
            raise InvalidParameters(self.name, str(e)) from e

    @abstractmethod
    def build_params(self, raw: dict) -> P:
        """Build the frozen params dataclass from schema-checked input."""

    @abstractmethod
    def create_invocation(self, params: P) -> BaseInvocation[P]:
        ...

    def build(self, raw: dict) -> BaseInvocation[P]:
        return self.create_invocation(self.validate_and_convert_params(raw))
