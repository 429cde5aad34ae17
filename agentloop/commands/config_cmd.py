"""CLI handlers for config commands."""

from __future__ import annotations

import json

import click
import tomli_w

from agentloop.config import DEFAULT_CONFIG_PATH, init_config, load_config

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


def _coerce(value: str):
    """Best-effort typing of a command-line value for TOML."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.lstrip("-").isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        pass
    if value.startswith("[") or value.startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def config_init(ctx, force: bool):
    """Create default configuration file."""
    path = ctx.obj.get("config_path") or DEFAULT_CONFIG_PATH
    if path.exists() and not force:
        click.echo(f"Config already exists at {path} (use --force to overwrite)", err=True)
        ctx.exit(1)
    path = init_config(path)
    click.echo(f"Configuration created at: {path}")


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Show current configuration."""
    config = load_config(ctx.obj.get("config_path"))
    click.echo(f"Config file: {config.config_path}")
    click.echo(f"  Workspace root: {config.resolved_workspace_root}")
    click.echo(f"  Backend: {config.backend}")
    click.echo(
        f"  Loop: max_turns={config.loop.max_turns}, "
        f"retries={config.loop.backend_max_retries}, "
        f"base_delay={config.loop.backend_retry_base_delay}s"
    )
    click.echo(
        f"  Edit: max_fuzzy_attempts={config.edit.max_fuzzy_attempts}, "
        f"min_similarity={config.edit.min_similarity}"
    )
    click.echo(f"  Tracker retention: {config.tracker.retention_seconds}s")
    click.echo(f"  Shell timeout: {config.tools.shell_timeout}s")
    mongo_state = "enabled" if config.mongodb.enabled else "disabled"
    click.echo(f"  MongoDB: {mongo_state} ({config.mongodb.uri}/{config.mongodb.database})")

    click.echo("\n  Providers:")
    for name, prov in config.providers.items():
        if prov.command:
            click.echo(f"    {name}: command={' '.join(prov.command)}")
        elif prov.api_key_env:
            has_key = "configured" if prov.api_key else "not set"
            click.echo(f"    {name}: model={prov.default_model}, key={has_key}")
        else:
            click.echo(f"    {name}: base_url={prov.base_url}")


@config_group.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key: str, value: str):
    """Set a configuration value.

    Modifies the TOML config file. Key uses dot notation, e.g.:
    general.backend, loop.max_turns, providers.script.command
    """
    path = ctx.obj.get("config_path") or DEFAULT_CONFIG_PATH
    if not path.exists():
        click.echo("No config file found. Run 'agentloop config init' first.", err=True)
        ctx.exit(1)

    with open(path, "rb") as f:
        data = tomllib.load(f)

    # Navigate dot-separated key
    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        target = target.setdefault(part, {})
        if not isinstance(target, dict):
            click.echo(f"Cannot set {key}: '{part}' is not a table", err=True)
            ctx.exit(1)
    target[parts[-1]] = _coerce(value)

    with open(path, "wb") as f:
        tomli_w.dump(data, f)

    click.echo(f"Set {key} = {value}")
