"""Turn loop: drive a backend through tool calls until it answers.

One ``send_message`` call is one operation:

    IDLE -> AWAITING_BACKEND -> (answer) -> IDLE
                             -> (tool calls) -> DISPATCHING_TOOLS -> AWAITING_BACKEND ...
         -> TERMINATED (turn limit, cancelled, fatal error)

The backend is called at most ``max_turns`` times per operation. Tool calls
in a turn are resolved against a frozen registry, validated, then executed
in batches (see ``scheduling.plan_batches``); results always go back to the
backend, and into the execution ledger, in the order they were requested.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from agentloop.config import LoopConfig
from agentloop.errors import BackendUnavailable, InvalidParameters, OperationCancelled, ToolNotFound
from agentloop.infra.cancellation import CancellationSignal
from agentloop.infra.providers.base import LLMProvider
from agentloop.models.provider import LLMConfig, LLMMessage, LLMResponse, ToolCall
from agentloop.models.session import Session, SessionMessage
from agentloop.models.tool import ToolErrorType, ToolResult
from agentloop.models.turn import TerminationReason, ToolOutcome, TurnResult, TurnState
from agentloop.services.execution_tracker import ExecutionStateTracker
from agentloop.services.scheduling import PlannedCall, plan_batches
from agentloop.services.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from agentloop.infra.db.sessions import SessionRepo
    from agentloop.services.observability import MetricsRecorder

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
TurnCallback = Callable[[list[ToolOutcome]], Awaitable[None]]

DEFAULT_SYSTEM_PROMPT = """\
You are a coding agent working inside the workspace at {workspace_root}.
Use the available tools to inspect and change files and to run commands.
All paths are relative to the workspace root. When the task is done, reply
with a short summary and no tool calls."""


class AgentClient:
    """Conversation with one backend over one frozen tool registry."""

    def __init__(
        self,
        provider: LLMProvider,
        registry: ToolRegistry,
        *,
        workspace_root: str,
        loop_config: LoopConfig | None = None,
        tracker: ExecutionStateTracker | None = None,
        metrics: MetricsRecorder | None = None,
        session_repo: SessionRepo | None = None,
        model: str = "",
        system_prompt: str | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry.freeze()
        self._workspace_root = workspace_root
        self._loop = loop_config or LoopConfig()
        self._tracker = tracker or ExecutionStateTracker()
        self._metrics = metrics
        self._session_repo = session_repo
        self._system_prompt = (system_prompt or DEFAULT_SYSTEM_PROMPT).format(
            workspace_root=workspace_root
        )
        self._llm_config = LLMConfig(
            model=model,
            max_tokens=self._loop.max_tokens,
            temperature=self._loop.temperature,
            tools=self._registry.get_function_declarations(),
        )
        self._history: list[LLMMessage] = []
        self._state = TurnState.IDLE

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def history(self) -> tuple[LLMMessage, ...]:
        return tuple(self._history)

    def reset(self) -> None:
        """Forget the conversation."""
        self._history.clear()
        self._state = TurnState.IDLE

    async def close(self) -> None:
        await self._provider.close()

    # --- Public operations ---

    async def send_message(
        self,
        user_message: str,
        *,
        operation_id: str | None = None,
        signal: CancellationSignal | None = None,
        session_id: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> TurnResult:
        """Run one operation to termination. Never raises for backend or tool failures."""
        return await self._send(
            user_message,
            operation_id=operation_id,
            signal=signal,
            session_id=session_id,
            on_progress=on_progress,
        )

    async def resume(
        self,
        session_id: str,
        signal: CancellationSignal | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> TurnResult:
        """Re-send the prompt of a paused session."""
        if self._session_repo is None:
            raise RuntimeError("Resuming requires a session repository")
        session = await self._session_repo.load(session_id)
        if session is None:
            raise KeyError(f"Session not found: {session_id}")
        if not session.paused:
            raise ValueError(f"Session {session_id} is not paused")

        if not self._history:
            self._history = [
                LLMMessage(role="user" if m.is_user else "assistant", content=m.text)
                for m in session.messages
                if m.file_diff is None
            ]
        await self._session_repo.save(session.with_resumed())
        logger.info("Resuming session %s", session_id)
        return await self._send(
            session.last_prompt,
            operation_id=None,
            signal=signal,
            session_id=session_id,
            on_progress=on_progress,
            record_prompt=False,
        )

    async def ask(self, question: str, signal: CancellationSignal | None = None) -> str:
        """One-shot question (no conversation history, no session).

        Tool calls are still allowed so the backend can look things up.
        """
        messages = [LLMMessage(role="user", content=question)]
        result = await self._drive(messages, uuid.uuid4().hex, signal or CancellationSignal())
        return result.content

    # --- Operation driver ---

    async def _send(
        self,
        user_message: str,
        *,
        operation_id: str | None,
        signal: CancellationSignal | None,
        session_id: str | None,
        on_progress: ProgressCallback | None,
        record_prompt: bool = True,
    ) -> TurnResult:
        operation_id = operation_id or uuid.uuid4().hex
        signal = signal or CancellationSignal()

        session = await self._load_session(session_id)
        if session is not None and record_prompt:
            session = session.with_messages(SessionMessage(text=user_message, is_user=True))

        last_user = next((m.content for m in reversed(self._history) if m.role == "user"), None)
        if record_prompt or last_user != user_message:
            self._history.append(LLMMessage(role="user", content=user_message))

        async def after_turn(outcomes: list[ToolOutcome]) -> None:
            nonlocal session
            if session is None:
                return
            diffs = [
                SessionMessage(text=o.result.return_display, is_user=False, file_diff=o.result.file_diff)
                for o in outcomes
                if o.result.file_diff is not None
            ]
            if diffs:
                session = session.with_messages(*diffs)
            await self._save_session(session)

        result = await self._drive(
            self._history, operation_id, signal, on_progress=on_progress, after_turn=after_turn
        )

        if session is not None:
            if result.reason == TerminationReason.CANCELLED:
                session = session.with_paused(user_message, result.content)
            elif result.content:
                session = session.with_messages(SessionMessage(text=result.content, is_user=False))
            await self._save_session(session)
        return result

    async def _drive(
        self,
        messages: list[LLMMessage],
        operation_id: str,
        signal: CancellationSignal,
        on_progress: ProgressCallback | None = None,
        after_turn: TurnCallback | None = None,
    ) -> TurnResult:
        """The turn loop proper; appends to ``messages`` in place."""
        max_turns = self._loop.max_turns
        self._tracker.start(operation_id, total_turns=max_turns)
        if self._metrics:
            self._metrics.start_operation(operation_id)

        outcomes: list[ToolOutcome] = []
        usage = {"input_tokens": 0, "output_tokens": 0}
        response: LLMResponse | None = None
        turns_used = 0

        def finish(reason: TerminationReason, content: str, error: str = "") -> TurnResult:
            return TurnResult(
                operation_id=operation_id,
                reason=reason,
                content=content,
                turns_used=turns_used,
                max_turns=max_turns,
                tool_outcomes=tuple(outcomes),
                error=error,
                usage=dict(usage),
            )

        try:
            for turn in range(1, max_turns + 1):
                turns_used = turn
                self._state = TurnState.AWAITING_BACKEND
                self._tracker.update_turn(operation_id, turn)

                response = await self._complete_with_retry(messages, operation_id, signal)
                usage["input_tokens"] += response.usage.get("input_tokens", 0)
                usage["output_tokens"] += response.usage.get("output_tokens", 0)

                if not response.has_tool_calls:
                    messages.append(LLMMessage(role="assistant", content=response.content))
                    self._state = TurnState.IDLE
                    return finish(TerminationReason.COMPLETED, response.content)

                if response.content and on_progress:
                    on_progress(response.content)

                messages.append(LLMMessage(
                    role="assistant",
                    content=response.content,
                    tool_calls=[
                        {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                        for tc in response.tool_calls
                    ],
                ))

                self._state = TurnState.DISPATCHING_TOOLS
                turn_outcomes = await self._dispatch(
                    operation_id, response.tool_calls, signal, on_progress
                )
                outcomes.extend(turn_outcomes)
                for o in turn_outcomes:
                    messages.append(LLMMessage(
                        role="tool",
                        content=o.result.llm_content,
                        tool_call_id=o.call_id,
                        name=o.name,
                    ))
                if after_turn:
                    await after_turn(turn_outcomes)
                signal.raise_if_cancelled()

            # Turn limit reached with tool calls still pending. Close with an
            # assistant message so the history never ends on tool results.
            summary = self._partial_summary(response, outcomes, max_turns)
            messages.append(LLMMessage(role="assistant", content=summary))
            self._state = TurnState.TERMINATED
            logger.warning("Operation %s stopped at turn limit (%d)", operation_id, max_turns)
            return finish(TerminationReason.TURN_LIMIT_REACHED, summary)

        except OperationCancelled as e:
            self._state = TurnState.TERMINATED
            logger.info("Operation %s cancelled: %s", operation_id, e)
            partial = response.content if response else ""
            return finish(TerminationReason.CANCELLED, partial, error=str(e) or "cancelled")
        except BackendUnavailable as e:
            self._state = TurnState.TERMINATED
            logger.error("Operation %s failed, backend unavailable: %s", operation_id, e)
            return finish(TerminationReason.FATAL_ERROR, "", error=str(e))
        except Exception as e:
            self._state = TurnState.TERMINATED
            logger.exception("Operation %s failed", operation_id)
            return finish(TerminationReason.FATAL_ERROR, "", error=f"{type(e).__name__}: {e}")
        finally:
            self._tracker.end(operation_id)
            if self._metrics:
                self._metrics.end_operation(operation_id)

    @staticmethod
    def _partial_summary(
        response: LLMResponse | None, outcomes: list[ToolOutcome], max_turns: int
    ) -> str:
        failed = sum(1 for o in outcomes if not o.result.success)
        text = (
            f"Stopped after reaching the limit of {max_turns} turn(s) "
            f"({len(outcomes)} tool call(s), {failed} failed)."
        )
        if response and response.content:
            text = f"{response.content}\n\n{text}"
        return text

    # --- Backend ---

    async def _complete_with_retry(
        self,
        messages: list[LLMMessage],
        operation_id: str,
        signal: CancellationSignal,
    ) -> LLMResponse:
        """Query the backend, retrying transient failures.

        Uses exponential backoff with jitter; backoff sleeps end early on
        cancellation.
        """
        full = [LLMMessage(role="system", content=self._system_prompt), *messages]
        max_retries = self._loop.backend_max_retries
        attempt = 0
        while True:
            try:
                response = await signal.race(self._provider.complete(full, self._llm_config))
            except BackendUnavailable as e:
                if self._metrics:
                    self._metrics.record_error(operation_id)
                if attempt >= max_retries:
                    raise
                delay = self._loop.backend_retry_base_delay * ((1 << attempt) + random.random())
                attempt += 1
                logger.warning(
                    "Backend unavailable (attempt %d/%d), retrying in %.1fs: %s",
                    attempt, max_retries, delay, e,
                )
                await signal.sleep(delay)
                continue
            if self._metrics:
                self._metrics.record_api_call(
                    operation_id, response.total_tokens, response.model or self._llm_config.model
                )
            return response

    # --- Tool dispatch ---

    def _prepare(self, index: int, call: ToolCall) -> PlannedCall:
        try:
            tool = self._registry.get_tool(call.name)
        except ToolNotFound as e:
            logger.warning("Backend requested unknown tool %s", call.name)
            return PlannedCall(
                index, call, immediate=ToolResult.failure(str(e), ToolErrorType.TOOL_NOT_FOUND)
            )
        try:
            invocation = tool.build(call.arguments)
        except InvalidParameters as e:
            logger.warning("Invalid arguments for %s: %s", call.name, e.detail)
            return PlannedCall(
                index,
                call,
                immediate=ToolResult.failure(str(e), ToolErrorType.INVALID_PARAMETERS),
            )
        locations = frozenset(loc.path for loc in invocation.tool_locations())
        return PlannedCall(index, call, invocation=invocation, locations=locations)

    async def _timed_execute(
        self,
        planned: PlannedCall,
        signal: CancellationSignal,
        on_progress: ProgressCallback | None,
    ) -> tuple[ToolResult, int]:
        """Execute an invocation with timing. Returns (result, duration_ms)."""
        start = time.monotonic()
        result = await planned.invocation.execute(signal, update_output=on_progress)
        return result, int((time.monotonic() - start) * 1000)

    async def _dispatch(
        self,
        operation_id: str,
        calls: list[ToolCall],
        signal: CancellationSignal,
        on_progress: ProgressCallback | None,
    ) -> list[ToolOutcome]:
        planned = []
        for index, call in enumerate(calls):
            if on_progress:
                on_progress(f"[tool] {call.name}")
            planned.append(self._prepare(index, call))

        results: dict[int, tuple[ToolResult, int]] = {}
        for batch in plan_batches(planned):
            runnable = []
            for p in batch:
                if p.immediate is not None:
                    results[p.index] = (p.immediate, 0)
                elif signal.is_cancelled:
                    results[p.index] = (ToolResult.cancelled(p.invocation.cancel_label), 0)
                else:
                    runnable.append(p)
            if not runnable:
                continue
            if len(runnable) > 1:
                logger.debug("Running %d tool calls concurrently", len(runnable))
            timed = await asyncio.gather(
                *(self._timed_execute(p, signal, on_progress) for p in runnable)
            )
            for p, outcome in zip(runnable, timed):
                results[p.index] = outcome

        outcomes = []
        for p in planned:
            result, duration_ms = results[p.index]
            self._tracker.record_tool_call(
                operation_id,
                p.call.name,
                p.call.arguments,
                duration_ms=duration_ms,
                success=result.success,
                error=result.error.message if result.error else None,
            )
            if self._metrics:
                self._metrics.record_tool_call(operation_id)
            outcomes.append(ToolOutcome(
                call_id=p.call.id,
                name=p.call.name,
                arguments=p.call.arguments,
                result=result,
                duration_ms=duration_ms,
            ))
        return outcomes

    # --- Sessions ---

    async def _load_session(self, session_id: str | None) -> Session | None:
        if not session_id or self._session_repo is None:
            return None
        session = await self._session_repo.load(session_id)
        return session or Session(id=session_id, workspace_root=self._workspace_root)

    async def _save_session(self, session: Session) -> None:
        if self._session_repo is not None:
            await self._session_repo.save(session)
