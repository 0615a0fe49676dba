"""CLI commands for configuration management."""

import json
import shutil
import sys
from pathlib import Path
from typing import Any

import click  # type: ignore[import-not-found]
from rich.console import Console  # type: ignore[import-not-found]
from rich.table import Table  # type: ignore[import-not-found]

from commit_clock.core.config import ConfigManager
from commit_clock.core.errors import ConfigurationError

console = Console()
error_console = Console(stderr=True)


def _config_manager(ctx: click.Context) -> ConfigManager:
    """Load the config file chosen with the top-level --config option."""
    config_path = (ctx.obj or {}).get("config_path")
    try:
        return ConfigManager(Path(config_path) if config_path else None)
    except ConfigurationError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(2)


@click.group()  # type: ignore[misc]
def config() -> None:
    """Manage Commit Clock configuration.

    Configuration is stored in ~/.commit-clock/config.yml
    """
    pass


@config.command("show")  # type: ignore[misc]
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Show all configuration settings.

    Settings that differ from their default are highlighted.

    Example:
        commit-clock config show
        commit-clock config show --json
    """
    config_mgr = _config_manager(ctx)

    if as_json:
        print(json.dumps(config_mgr.to_dict(), indent=2))
        return

    table = Table(title="Commit Clock Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Default", style="dim")

    for key in config_mgr.keys():
        value = config_mgr.get(key)
        default = config_mgr.default(key)
        style = "green" if value == default else "bold yellow"
        table.add_row(key, f"[{style}]{value}[/{style}]", "" if default is None else str(default))

    console.print(table)
    console.print(f"\nConfig file: {config_mgr.config_path}")


@config.command("get")  # type: ignore[misc]
@click.argument("key")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_get(ctx: click.Context, key: str) -> None:
    """Get a setting, or every setting of a section.

    Example:
        commit-clock config get git.timeout
        commit-clock config get tracking
    """
    config_mgr = _config_manager(ctx)
    section_keys = [k for k in config_mgr.keys() if k.startswith(f"{key}.")]

    if key in config_mgr.keys():
        console.print(str(config_mgr.get(key)))
    elif section_keys:
        for full_key in section_keys:
            console.print(f"{full_key} = {config_mgr.get(full_key)}")
    else:
        error_console.print(f"[red]Error:[/red] Configuration key '{key}' not found")
        sys.exit(1)


@config.command("set")  # type: ignore[misc]
@click.argument("key")  # type: ignore[misc]
@click.argument("value")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a configuration value.

    The value is converted to the type of the setting's default.

    Example:
        commit-clock config set git.timeout 30
        commit-clock config set tracking.on_count_failure abort
    """
    config_mgr = _config_manager(ctx)

    try:
        converted_value = config_mgr.coerce(key, value)
        config_mgr.set(key, converted_value)
    except ValueError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Set {key} = {converted_value}")


@config.command("reset")  # type: ignore[misc]
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_reset(ctx: click.Context, yes: bool) -> None:
    """Reset configuration to defaults.

    Works even when the current file is invalid.

    Example:
        commit-clock config reset --yes
    """
    config_path = (ctx.obj or {}).get("config_path")
    path = Path(config_path) if config_path else Path.home() / ".commit-clock" / "config.yml"

    if not yes:
        console.print("[yellow]Warning:[/yellow] This will reset all configuration to defaults.")
        if not click.confirm("Continue?"):
            console.print("Cancelled")
            return

    if path.exists():
        backup_path = path.with_suffix(".yml.backup")
        shutil.copy(path, backup_path)
        console.print(f"Backed up current config to {backup_path}")
        path.unlink()

    config_mgr = ConfigManager(path)
    console.print("[green]✓[/green] Configuration reset to defaults")
    console.print(f"Config file: {config_mgr.config_path}")


@config.command("path")  # type: ignore[misc]
@click.pass_context  # type: ignore[misc]
def config_path(ctx: click.Context) -> None:
    """Show path to configuration file.

    Example:
        commit-clock config path
    """
    config_mgr = _config_manager(ctx)
    console.print(str(config_mgr.config_path))
