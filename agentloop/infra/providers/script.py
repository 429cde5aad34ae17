"""Script-driven backend: an external process decides each step.

The process receives one JSON document on stdin::

    {"model": "...", "messages": [...], "tools": [...]}

and prints a JSON object on stdout (the last JSON line wins)::

    {"content": "...", "tool_calls": [{"id": "...", "name": "...", "arguments": {...}}]}

Timeouts and non-zero exits are treated as transient; a missing executable or
unparseable output is fatal.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from pathlib import Path

from agentloop.errors import BackendUnavailable
from agentloop.models.provider import LLMConfig, LLMMessage, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


class ScriptProvider:
    """Backend that shells out to a decision script per turn."""

    def __init__(
        self,
        command: list[str],
        cwd: str | Path | None = None,
        timeout: float = 120.0,
    ) -> None:
        if not command:
            raise ValueError("Script backend needs a command")
        self._command = list(command)
        self._cwd = str(cwd) if cwd else None
        self._timeout = timeout

    async def complete(
        self,
        messages: list[LLMMessage],
        config: LLMConfig | None = None,
    ) -> LLMResponse:
        config = config or LLMConfig()
        request = {
            "model": config.model,
            "messages": [m.to_dict() for m in messages],
            "tools": config.tools or [],
        }

        proc = await asyncio.create_subprocess_exec(
            *self._command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self._cwd,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(json.dumps(request).encode()),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise BackendUnavailable(
                f"script backend timed out after {self._timeout}s"
            ) from e
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()[-500:]
            raise BackendUnavailable(
                f"script backend exited with code {proc.returncode}: {detail}"
            )

        return self._parse_output(stdout.decode(errors="replace"), config.model)

    def _parse_output(self, output: str, model: str) -> LLMResponse:
        data = None
        for line in reversed(output.strip().splitlines()):
            line = line.strip()
            if line.startswith("{"):
                data = json.loads(line)
                break
        if not isinstance(data, dict):
            raise ValueError(f"script backend produced no JSON object: {output[:200]!r}")

        tool_calls = []
        for tc in data.get("tool_calls") or []:
            args = tc.get("arguments", {})
            if isinstance(args, str):
                args = json.loads(args) if args else {}
            tool_calls.append(ToolCall(
                id=tc.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                name=tc["name"],
                arguments=args,
            ))

        logger.debug("Script backend returned %d tool call(s)", len(tool_calls))
        return LLMResponse(
            content=data.get("content", "") or "",
            model=data.get("model", model or "script"),
            finish_reason="tool_use" if tool_calls else "end_turn",
            tool_calls=tool_calls,
            usage=data.get("usage", {}),
        )

    async def close(self) -> None:
        """Nothing to release; each turn spawns its own process."""
