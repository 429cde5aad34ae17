"""File tools: read_file, write_file, list_directory."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from agentloop.infra.cancellation import CancellationSignal
from agentloop.models.tool import (
    FileDiff,
    ParameterSchema,
    PropertySchema,
    ToolErrorType,
    ToolLocation,
    ToolResult,
)
from agentloop.services.tools.base import BaseInvocation, BaseTool, OutputCallback
from agentloop.services.tools.context import write_text

logger = logging.getLogger(__name__)

# Cap on characters returned to the backend for a single read
MAX_READ_CHARS = 200_000


def _require_path(value: str, field_name: str = "file_path") -> str:
    if not value.strip():
        raise ValueError(f"'{field_name}' must not be empty")
    return value


# --- read_file ---


@dataclass(frozen=True)
class ReadFileParams:
    file_path: str
    offset: int | None = None
    limit: int | None = None


class ReadFileInvocation(BaseInvocation[ReadFileParams]):
    cancel_label = "File read"

    def get_description(self) -> str:
        return f"Read {self.params.file_path}"

    def tool_locations(self) -> list[ToolLocation]:
        return [ToolLocation(str(self.ctx.absolute(self.params.file_path)), self.params.offset)]

    async def _run(
        self, signal: CancellationSignal, update_output: OutputCallback | None
    ) -> ToolResult:
        path = self.ctx.resolve_path(self.params.file_path)
        rel = self.ctx.relative(path)
        if path.is_dir():
            return ToolResult.failure(f"Path is a directory, not a file: {rel}")

        signal.raise_if_cancelled()
        content = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        signal.raise_if_cancelled()
        self.ctx.clear_edit_failures(path)

        lines = content.splitlines(keepends=True)
        start = self.params.offset or 0
        end = start + self.params.limit if self.params.limit else len(lines)
        selected = "".join(lines[start:end])
        if len(selected) > MAX_READ_CHARS:
            selected = selected[:MAX_READ_CHARS] + "\n[... truncated]"

        shown_end = min(end, len(lines))
        if start > 0 or shown_end < len(lines):
            header = f"[Showing lines {start + 1}-{shown_end} of {len(lines)}]\n"
            return ToolResult(
                llm_content=header + selected,
                return_display=f"Read lines {start + 1}-{shown_end} of {rel}",
            )
        return ToolResult(
            llm_content=selected,
            return_display=f"Read {len(lines)} line(s) from {rel}",
        )


class ReadFileTool(BaseTool[ReadFileParams]):
    name = "read_file"
    display_name = "ReadFile"
    description = (
        "Read a text file from the workspace. Use offset/limit to page "
        "through large files."
    )
    parameter_schema = ParameterSchema(
        properties={
            "file_path": PropertySchema("string", "Path of the file, relative to the workspace root"),
            "offset": PropertySchema("integer", "0-based line number to start reading from"),
            "limit": PropertySchema("integer", "Maximum number of lines to read"),
        },
        required=("file_path",),
    )

    def build_params(self, raw: dict) -> ReadFileParams:
        offset = raw.get("offset")
        limit = raw.get("limit")
        if offset is not None and offset < 0:
            raise ValueError("'offset' must be >= 0")
        if limit is not None and limit <= 0:
            raise ValueError("'limit' must be > 0")
        return ReadFileParams(
            file_path=_require_path(raw["file_path"]),
            offset=offset,
            limit=limit,
        )

    def create_invocation(self, params: ReadFileParams) -> ReadFileInvocation:
        return ReadFileInvocation(params, self.ctx)


# --- write_file ---


@dataclass(frozen=True)
class WriteFileParams:
    file_path: str
    content: str


class WriteFileInvocation(BaseInvocation[WriteFileParams]):
    cancel_label = "File write"

    def get_description(self) -> str:
        return f"Write {self.params.file_path}"

    def tool_locations(self) -> list[ToolLocation]:
        return [ToolLocation(str(self.ctx.absolute(self.params.file_path)))]

    async def _run(
        self, signal: CancellationSignal, update_output: OutputCallback | None
    ) -> ToolResult:
        path = self.ctx.resolve_path(self.params.file_path)
        rel = self.ctx.relative(path)
        if path.is_dir():
            return ToolResult.failure(f"Path is a directory, not a file: {rel}")

        is_new = not path.exists()
        old_content = ""
        if not is_new:
            old_content = await asyncio.to_thread(
                path.read_text, encoding="utf-8", errors="replace"
            )

        signal.raise_if_cancelled()
        await asyncio.to_thread(write_text, path, self.params.content)
        self.ctx.clear_edit_failures(path)
        logger.debug("Wrote %d chars to %s", len(self.params.content), path)

        if is_new:
            message = f"Successfully created and wrote to new file: {rel}"
        else:
            message = f"Successfully overwrote file: {rel}"
        return ToolResult(
            llm_content=message,
            return_display=message,
            file_diff=FileDiff(
                path=str(path),
                old_content=old_content,
                new_content=self.params.content,
                is_new_file=is_new,
            ),
        )


class WriteFileTool(BaseTool[WriteFileParams]):
    name = "write_file"
    display_name = "WriteFile"
    description = (
        "Write content to a file in the workspace, creating it (and parent "
        "directories) if needed and overwriting it otherwise."
    )
    parameter_schema = ParameterSchema(
        properties={
            "file_path": PropertySchema("string", "Path of the file, relative to the workspace root"),
            "content": PropertySchema("string", "Full content to write"),
        },
        required=("file_path", "content"),
    )

    def build_params(self, raw: dict) -> WriteFileParams:
        return WriteFileParams(
            file_path=_require_path(raw["file_path"]),
            content=raw["content"],
        )

    def create_invocation(self, params: WriteFileParams) -> WriteFileInvocation:
        return WriteFileInvocation(params, self.ctx)


# --- list_directory ---


@dataclass(frozen=True)
class ListDirectoryParams:
    dir_path: str = "."
    show_hidden: bool = False


class ListDirectoryInvocation(BaseInvocation[ListDirectoryParams]):
    cancel_label = "Directory listing"

    def get_description(self) -> str:
        return f"List {self.params.dir_path}"

    def tool_locations(self) -> list[ToolLocation]:
        return [ToolLocation(str(self.ctx.absolute(self.params.dir_path)))]

    async def _run(
        self, signal: CancellationSignal, update_output: OutputCallback | None
    ) -> ToolResult:
        path = self.ctx.resolve_path(self.params.dir_path)
        rel = self.ctx.relative(path)
        if not path.exists():
            return ToolResult.failure(
                f"Directory not found: {rel}", ToolErrorType.FILE_NOT_FOUND
            )
        if not path.is_dir():
            return ToolResult.failure(f"Not a directory: {rel}")

        entries = await asyncio.to_thread(lambda: list(path.iterdir()))
        signal.raise_if_cancelled()
        if not self.params.show_hidden:
            entries = [e for e in entries if not e.name.startswith(".")]
        entries.sort(key=lambda e: (not e.is_dir(), e.name.lower()))

        if not entries:
            return ToolResult(
                llm_content=f"Directory {rel} is empty.",
                return_display="Directory is empty",
            )
        listing = "\n".join(
            f"[DIR] {e.name}" if e.is_dir() else e.name for e in entries
        )
        return ToolResult(
            llm_content=f"Directory listing for {rel}:\n{listing}",
            return_display=f"Listed {len(entries)} item(s)",
        )


class ListDirectoryTool(BaseTool[ListDirectoryParams]):
    name = "list_directory"
    display_name = "ListDirectory"
    description = "List the files and subdirectories of a workspace directory."
    parameter_schema = ParameterSchema(
        properties={
            "dir_path": PropertySchema("string", "Directory path, relative to the workspace root (default '.')"),
            "show_hidden": PropertySchema("boolean", "Include dotfiles"),
        },
    )

    def build_params(self, raw: dict) -> ListDirectoryParams:
        return ListDirectoryParams(
            dir_path=raw.get("dir_path") or ".",
            show_hidden=raw.get("show_hidden", False),
        )

    def create_invocation(self, params: ListDirectoryParams) -> ListDirectoryInvocation:
        return ListDirectoryInvocation(params, self.ctx)
