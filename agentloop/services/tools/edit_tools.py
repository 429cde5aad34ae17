"""edit_file: targeted string replacement with fuzzy fallback."""

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
from agentloop.services.edit_monitor import STRING_NOT_FOUND
from agentloop.services.tools.base import BaseInvocation, BaseTool, OutputCallback
from agentloop.services.tools.context import write_text
from agentloop.services.tools.fuzzy import count_exact, find_match

logger = logging.getLogger(__name__)

RETRY_LIMIT_REACHED = "Retry limit reached"
MULTIPLE_OCCURRENCES = "Multiple occurrences"


@dataclass(frozen=True)
class EditFileParams:
    file_path: str
    old_string: str
    new_string: str
    replace_all: bool = False


class EditFileInvocation(BaseInvocation[EditFileParams]):
    cancel_label = "File edit"

    def get_description(self) -> str:
        return f"Edit {self.params.file_path}"

    def tool_locations(self) -> list[ToolLocation]:
        return [ToolLocation(str(self.ctx.absolute(self.params.file_path)))]

    def _fail(self, key: str, reason: str, message: str, error_type: ToolErrorType) -> ToolResult:
        self.ctx.monitor.record_failure(key, reason)
        return ToolResult.failure(message, error_type)

    async def _run(
        self, signal: CancellationSignal, update_output: OutputCallback | None
    ) -> ToolResult:
        p = self.params
        path = self.ctx.resolve_path(p.file_path)
        key = str(path)
        rel = self.ctx.relative(path)
        limit = self.ctx.edit.max_fuzzy_attempts
        failures = self.ctx.edit_failures

        if failures.get(key, 0) >= limit:
            return self._fail(
                key,
                RETRY_LIMIT_REACHED,
                f"Edit of {rel} failed {failures[key]} times in a row; "
                "re-read the file with read_file or replace it with write_file",
                ToolErrorType.EXECUTION_ERROR,
            )

        if p.old_string == p.new_string:
            return ToolResult.failure(
                "old_string and new_string are identical; nothing to change",
                ToolErrorType.EDIT_NO_CHANGE,
            )

        # Empty old_string creates a new file
        if not p.old_string:
            if path.exists():
                return self._fail(
                    key,
                    "File already exists",
                    f"Cannot create {rel}: file already exists (old_string was empty)",
                    ToolErrorType.EXECUTION_ERROR,
                )
            signal.raise_if_cancelled()
            await asyncio.to_thread(write_text, path, p.new_string)
            self.ctx.monitor.record_success(key)
            return ToolResult(
                llm_content=f"Created new file: {rel}",
                return_display=f"Created {rel}",
                file_diff=FileDiff(str(path), "", p.new_string, is_new_file=True),
            )

        signal.raise_if_cancelled()
        content = await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        signal.raise_if_cancelled()

        occurrences = count_exact(content, p.old_string)
        if occurrences > 1 and not p.replace_all:
            return self._fail(
                key,
                MULTIPLE_OCCURRENCES,
                f"Found {occurrences} occurrences of old_string in {rel}; "
                "include more surrounding context or set replace_all",
                ToolErrorType.EXECUTION_ERROR,
            )

        if occurrences >= 1:
            new_content = content.replace(p.old_string, p.new_string)
            self.ctx.monitor.record_success(key)
            replaced = f"{occurrences} occurrence(s)"
        else:
            match = find_match(content, p.old_string, self.ctx.edit.min_similarity)
            if match is None:
                failures[key] = failures.get(key, 0) + 1
                remaining = max(limit - failures[key], 0)
                return self._fail(
                    key,
                    STRING_NOT_FOUND,
                    f"Could not find old_string in {rel} (exact or fuzzy); "
                    f"{remaining} attempt(s) left before re-reading is required",
                    ToolErrorType.EDIT_NO_OCCURRENCE_FOUND,
                )
            new_content = match.apply(content, p.new_string)
            self.ctx.monitor.record_fuzzy_match_success(key, match.similarity)
            replaced = f"1 {match.strategy} match (similarity {match.similarity:.2f})"
            logger.debug("Fuzzy edit of %s: %s", path, replaced)

        if new_content == content:
            return ToolResult.failure(
                f"Edit produced no change in {rel}", ToolErrorType.EDIT_NO_CHANGE
            )

        signal.raise_if_cancelled()
        await asyncio.to_thread(write_text, path, new_content)
        self.ctx.clear_edit_failures(path)

        return ToolResult(
            llm_content=f"Successfully edited {rel} ({replaced} replaced)",
            return_display=f"Edited {rel}",
            file_diff=FileDiff(str(path), content, new_content),
        )


class EditFileTool(BaseTool[EditFileParams]):
    name = "edit_file"
    display_name = "EditFile"
    description = (
        "Replace old_string with new_string in a workspace file. old_string "
        "should include enough surrounding lines to be unique. Small "
        "whitespace differences are tolerated. An empty old_string creates a "
        "new file."
    )
    parameter_schema = ParameterSchema(
        properties={
            "file_path": PropertySchema("string", "Path of the file, relative to the workspace root"),
            "old_string": PropertySchema("string", "Exact text to replace"),
            "new_string": PropertySchema("string", "Replacement text"),
            "replace_all": PropertySchema("boolean", "Replace every exact occurrence"),
        },
        required=("file_path", "old_string", "new_string"),
    )

    def consecutive_failures(self, path: str) -> int:
        return self.ctx.edit_failures.get(str(self.ctx.absolute(path)), 0)

    def build_params(self, raw: dict) -> EditFileParams:
        if not raw["file_path"].strip():
            raise ValueError("'file_path' must not be empty")
        return EditFileParams(
            file_path=raw["file_path"],
            old_string=raw["old_string"],
            new_string=raw["new_string"],
            replace_all=raw.get("replace_all", False),
        )

    def create_invocation(self, params: EditFileParams) -> EditFileInvocation:
        return EditFileInvocation(params, self.ctx)
