"""shell: run a command in the workspace, streaming its output."""

from __future__ import annotations

import asyncio
import codecs
import logging
import time
from dataclasses import dataclass

from agentloop.infra.cancellation import CancellationSignal
from agentloop.models.tool import (
    ParameterSchema,
    PropertySchema,
    ToolError,
    ToolErrorType,
    ToolResult,
)
from agentloop.services.tools.base import BaseInvocation, BaseTool, OutputCallback

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
READ_CHUNK = 4096
MAX_OUTPUT_CHARS = 30_000


@dataclass(frozen=True)
class ShellParams:
    command: str
    description: str = ""
    dir_path: str = ""


async def _stop(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=2.0)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()


class ShellInvocation(BaseInvocation[ShellParams]):
    cancel_label = "Command"

    def get_description(self) -> str:
        desc = self.params.command
        if self.params.dir_path:
            desc += f" [in {self.params.dir_path}]"
        if self.params.description:
            desc += f" ({self.params.description})"
        return desc

    async def _run(
        self, signal: CancellationSignal, update_output: OutputCallback | None
    ) -> ToolResult:
        cwd = self.ctx.resolve_path(self.params.dir_path or ".")
        if not cwd.is_dir():
            return ToolResult.failure(
                f"Working directory does not exist: {self.ctx.relative(cwd)}",
                ToolErrorType.FILE_NOT_FOUND,
            )

        timeout = self.ctx.tools.shell_timeout
        logger.debug("Running shell command in %s: %s", cwd, self.params.command)
        proc = await asyncio.create_subprocess_shell(
            self.params.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=str(cwd),
        )

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        chunks: list[str] = []
        pending = ""
        deadline = time.monotonic() + timeout
        timed_out = False
        eof = False

        def emit(text: str) -> None:
            chunks.append(text)
            if update_output:
                update_output(text.rstrip("\n"))

        try:
            while not eof or proc.returncode is None:
                signal.raise_if_cancelled()
                if time.monotonic() > deadline:
                    timed_out = True
                    break
                step = proc.wait() if eof else proc.stdout.read(READ_CHUNK)
                try:
                    data = await asyncio.wait_for(step, timeout=POLL_INTERVAL)
                except asyncio.TimeoutError:
                    continue
                if eof:
                    continue
                if not data:
                    eof = True
                    pending += decoder.decode(b"", final=True)
                    continue
                # Lines are unbounded; split on our side of the pipe
                *lines, pending = (pending + decoder.decode(data)).split("\n")
                for line in lines:
                    emit(line + "\n")
            if pending:
                emit(pending)
        finally:
            await _stop(proc)
        exit_code = proc.returncode

        output = "".join(chunks).rstrip()
        if len(output) > MAX_OUTPUT_CHARS:
            output = "[... truncated]\n" + output[-MAX_OUTPUT_CHARS:]

        rel = self.ctx.relative(cwd)
        llm_content = (
            f"Command: {self.params.command}\n"
            f"Directory: {rel}\n"
            f"Output: {output or '(empty)'}\n"
            f"Exit Code: {exit_code}"
        )
        if timed_out:
            message = f"Command timed out after {timeout}s"
            return ToolResult(
                llm_content=f"{llm_content}\n{message}",
                return_display=message,
                error=ToolError(message, ToolErrorType.EXECUTION_ERROR),
            )
        if exit_code != 0:
            return ToolResult(
                llm_content=llm_content,
                return_display=output or f"Exit code {exit_code}",
                error=ToolError(f"Command exited with code {exit_code}", ToolErrorType.EXECUTION_ERROR),
            )
        return ToolResult(llm_content=llm_content, return_display=output or "(no output)")


class ShellTool(BaseTool[ShellParams]):
    name = "shell"
    display_name = "Shell"
    description = (
        "Execute a shell command inside the workspace. Returns combined "
        "stdout/stderr and the exit code."
    )
    parameter_schema = ParameterSchema(
        properties={
            "command": PropertySchema("string", "The command to run with the system shell"),
            "description": PropertySchema("string", "Short note on what the command does"),
            "dir_path": PropertySchema("string", "Working directory relative to the workspace root"),
        },
        required=("command",),
    )

    def build_params(self, raw: dict) -> ShellParams:
        if not raw["command"].strip():
            raise ValueError("'command' must not be empty")
        return ShellParams(
            command=raw["command"],
            description=raw.get("description", ""),
            dir_path=raw.get("dir_path", ""),
        )

    def create_invocation(self, params: ShellParams) -> ShellInvocation:
        return ShellInvocation(params, self.ctx)
