"""Tool contract domain models: schemas, locations, results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ToolErrorType(str, Enum):
    INVALID_PARAMETERS = "invalid_parameters"
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_DENIED = "permission_denied"
    EXECUTION_ERROR = "execution_error"
    EDIT_NO_OCCURRENCE_FOUND = "edit_no_occurrence_found"
    EDIT_NO_CHANGE = "edit_no_change"
    TOOL_NOT_FOUND = "tool_not_found"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PropertySchema:
    """JSON-schema fragment describing one parameter."""

    type: str  # "string", "integer", "number", "boolean", "array", "object"
    description: str = ""
    enum: tuple[str, ...] | None = None
    items: PropertySchema | None = None

    def to_dict(self) -> dict:
        d: dict = {"type": self.type, "description": self.description}
        if self.enum:
            d["enum"] = list(self.enum)
        if self.items is not None:
            d["items"] = self.items.to_dict()
        return d


@dataclass(frozen=True)
class ParameterSchema:
    """Object schema for a tool's arguments."""

    properties: dict[str, PropertySchema] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "type": "object",
            "properties": {name: prop.to_dict() for name, prop in self.properties.items()},
            "required": list(self.required),
        }


@dataclass(frozen=True)
class FunctionDeclaration:
    """What a backend sees when a tool is advertised."""

    name: str
    description: str
    parameters: ParameterSchema

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.to_dict(),
        }


@dataclass(frozen=True)
class ToolLocation:
    """A filesystem location an invocation will touch."""

    path: str
    line: int | None = None


@dataclass(frozen=True)
class FileDiff:
    """Before/after content of a file changed by a tool."""

    path: str
    old_content: str
    new_content: str
    is_new_file: bool = False

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "old_content": self.old_content,
            "new_content": self.new_content,
            "is_new_file": self.is_new_file,
        }

    @classmethod
    def from_dict(cls, data: dict) -> FileDiff:
        return cls(
            path=data["path"],
            old_content=data.get("old_content", ""),
            new_content=data.get("new_content", ""),
            is_new_file=data.get("is_new_file", False),
        )


@dataclass(frozen=True)
class ToolError:
    message: str
    type: ToolErrorType = ToolErrorType.EXECUTION_ERROR

    def to_dict(self) -> dict:
        return {"message": self.message, "type": self.type.value}

    @classmethod
    def from_dict(cls, data: dict) -> ToolError:
        return cls(
            message=data.get("message", ""),
            type=ToolErrorType(data.get("type", ToolErrorType.EXECUTION_ERROR.value)),
        )


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one invocation.

    ``llm_content`` goes back to the backend, ``return_display`` is for the
    user. ``error`` is set when the invocation failed.
    """

    llm_content: str
    return_display: str = ""
    error: ToolError | None = None
    file_diff: FileDiff | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        message: str,
        error_type: ToolErrorType = ToolErrorType.EXECUTION_ERROR,
        display: str = "",
    ) -> ToolResult:
        return cls(
            llm_content=f"Error: {message}",
            return_display=display or f"Error: {message}",
            error=ToolError(message=message, type=error_type),
        )

    @classmethod
    def cancelled(cls, what: str = "Operation") -> ToolResult:
        return cls(
            llm_content=f"{what} cancelled",
            return_display="Cancelled",
            error=ToolError(message=f"{what} cancelled", type=ToolErrorType.CANCELLED),
        )

    def to_dict(self) -> dict:
        d: dict = {
            "llm_content": self.llm_content,
            "return_display": self.return_display,
        }
        if self.error:
            d["error"] = self.error.to_dict()
        if self.file_diff:
            d["file_diff"] = self.file_diff.to_dict()
        return d

    @classmethod
    def from_dict(cls, data: dict) -> ToolResult:
        error = data.get("error")
        diff = data.get("file_diff")
        return cls(
            llm_content=data.get("llm_content", ""),
            return_display=data.get("return_display", ""),
            error=ToolError.from_dict(error) if error else None,
            file_diff=FileDiff.from_dict(diff) if diff else None,
        )
