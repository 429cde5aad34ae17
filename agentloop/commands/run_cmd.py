"""CLI handlers for running the agent loop."""

from __future__ import annotations

import asyncio
import signal as os_signal
import sys
from contextlib import contextmanager
from pathlib import Path

import click

from agentloop.config import AppConfig, load_config
from agentloop.context import AppContext
from agentloop.infra.cancellation import CancellationSignal
from agentloop.models.provider import BackendKind
from agentloop.models.turn import TurnResult
from agentloop.services.observability import build_trace, format_trace_text

BACKEND_CHOICES = click.Choice([k.value for k in BackendKind])


def _run(coro):
    """Run an async function from sync context."""
    return asyncio.run(coro)


def _cli_progress(text: str) -> None:
    if text.startswith("[tool]"):
        click.echo(click.style(f"  >> {text[7:]}", dim=True), err=True)
    else:
        click.echo(click.style(f"  {text}", dim=True), err=True)


@contextmanager
def _cancel_on_interrupt(signal: CancellationSignal):
    """Route Ctrl-C to ``signal`` while an operation runs."""
    loop = asyncio.get_running_loop()
    if sys.platform == "win32":
        yield
        return
    loop.add_signal_handler(os_signal.SIGINT, signal.cancel, "interrupted")
    try:
        yield
    finally:
        loop.remove_signal_handler(os_signal.SIGINT)


def _load(
    config_path: Path | None,
    workspace: str | None = None,
    backend: str | None = None,
    max_turns: int | None = None,
) -> AppConfig:
    config = load_config(config_path)
    if workspace:
        config.workspace_root = workspace
    if backend:
        config.backend = backend
    if max_turns:
        config.loop.max_turns = max_turns
    return config


def _print_trace(app: AppContext, result: TurnResult) -> None:
    state = app.tracker.get_state(result.operation_id)
    if state is None:
        return
    metrics = app.metrics.get_operation_metrics(result.operation_id)
    click.echo(format_trace_text(build_trace(state, metrics)), err=True)


def _report(result: TurnResult) -> None:
    if result.content:
        click.echo(result.content)
    color = "green" if result.completed else "yellow"
    click.echo(click.style(result.summary(), fg=color), err=True)


@click.command("run")
@click.argument("prompt")
@click.option("--workspace", "-w", default=None, help="Workspace root directory")
@click.option("--backend", "-b", type=BACKEND_CHOICES, default=None, help="Model backend")
@click.option("--max-turns", type=click.IntRange(min=1), default=None, help="Backend call limit")
@click.option("--session", "session_id", default=None, help="Persist under this session id")
@click.option("--trace", is_flag=True, help="Print the execution trace afterwards")
@click.pass_context
def run_command(ctx, prompt, workspace, backend, max_turns, session_id, trace):
    """Run PROMPT to completion against the workspace."""

    async def _go() -> TurnResult:
        app = AppContext(_load(ctx.obj.get("config_path"), workspace, backend, max_turns))
        await app.initialize()
        signal = CancellationSignal()
        try:
            with _cancel_on_interrupt(signal):
                result = await app.client.send_message(
                    prompt, signal=signal, session_id=session_id, on_progress=_cli_progress
                )
        finally:
            await app.close()
        _report(result)
        if trace:
            _print_trace(app, result)
        return result

    result = _run(_go())
    if not result.completed:
        ctx.exit(1)


@click.command("resume")
@click.argument("session_id")
@click.option("--trace", is_flag=True, help="Print the execution trace afterwards")
@click.pass_context
def resume_command(ctx, session_id, trace):
    """Resume a paused session (requires [mongodb] enabled)."""

    async def _go() -> TurnResult:
        app = AppContext(_load(ctx.obj.get("config_path")))
        await app.initialize()
        if app.session_repo is None:
            raise click.ClickException("Session persistence is disabled; set mongodb.enabled = true")
        signal = CancellationSignal()
        try:
            with _cancel_on_interrupt(signal):
                result = await app.client.resume(session_id, signal=signal, on_progress=_cli_progress)
        except (KeyError, ValueError) as e:
            raise click.ClickException(str(e)) from e
        finally:
            await app.close()
        _report(result)
        if trace:
            _print_trace(app, result)
        return result

    result = _run(_go())
    if not result.completed:
        ctx.exit(1)


@click.command("ask")
@click.argument("question")
@click.option("--workspace", "-w", default=None, help="Workspace root directory")
@click.option("--backend", "-b", type=BACKEND_CHOICES, default=None, help="Model backend")
@click.pass_context
def ask_command(ctx, question, workspace, backend):
    """One-shot question (no history, no session)."""

    async def _ask():
        app = AppContext(_load(ctx.obj.get("config_path"), workspace, backend))
        try:
            click.echo(await app.client.ask(question))
        finally:
            await app.close()

    _run(_ask())


@click.command("chat")
@click.option("--workspace", "-w", default=None, help="Workspace root directory")
@click.option("--backend", "-b", type=BACKEND_CHOICES, default=None, help="Model backend")
@click.option("--session", "session_id", default=None, help="Persist under this session id")
@click.pass_context
def chat_command(ctx, workspace, backend, session_id):
    """Interactive chat. Ctrl-C cancels the running operation.

    Commands: /trace, /reset, /workspace PATH, /backend NAME, quit
    """

    async def _chat():
        app = AppContext(_load(ctx.obj.get("config_path"), workspace, backend))
        await app.initialize()
        last: TurnResult | None = None
        try:
            click.echo(f"agentloop chat in {app.orchestration.workspace_root} (type 'quit' to exit)")
            click.echo("=" * 50)
            while True:
                try:
                    user_input = await asyncio.to_thread(click.prompt, "You", prompt_suffix="> ")
                except (EOFError, KeyboardInterrupt, click.Abort):
                    break

                text = user_input.strip()
                if text.lower() in ("quit", "exit", "q"):
                    break
                if text == "/reset":
                    app.client.reset()
                    click.echo("Conversation cleared.")
                    continue
                if text == "/trace":
                    if last is not None:
                        _print_trace(app, last)
                    continue
                if text.startswith("/workspace ") or text.startswith("/backend "):
                    command, _, arg = text.partition(" ")
                    try:
                        if command == "/workspace":
                            orch = await app.reconfigure(workspace_root=arg.strip())
                        else:
                            orch = await app.reconfigure(backend=arg.strip())
                    except ValueError as e:
                        click.echo(f"Cannot switch: {e}", err=True)
                        continue
                    click.echo(
                        f"Now using {orch.backend_selection.backend_kind.value} "
                        f"in {orch.workspace_root}"
                    )
                    continue

                signal = CancellationSignal()
                with _cancel_on_interrupt(signal):
                    last = await app.client.send_message(
                        text, signal=signal, session_id=session_id, on_progress=_cli_progress
                    )
                click.echo(f"\nAgent: {last.content}\n")
                if not last.completed:
                    click.echo(click.style(last.summary(), fg="yellow"), err=True)
        finally:
            await app.close()

    _run(_chat())
