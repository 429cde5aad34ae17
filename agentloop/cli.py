"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from agentloop.commands.config_cmd import config_group
from agentloop.commands.run_cmd import ask_command, chat_command, resume_command, run_command


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/agentloop/config.toml)",
)
@click.pass_context
def cli(ctx, debug: bool, config_path: Path | None) -> None:
    """agentloop - tool-calling agent loop over pluggable model backends."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = config_path


cli.add_command(run_command, "run")
cli.add_command(chat_command, "chat")
cli.add_command(ask_command, "ask")
cli.add_command(resume_command, "resume")
cli.add_command(config_group, "config")


if __name__ == "__main__":
    cli()
