"""Main CLI application."""

import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from commit_clock import __version__
from commit_clock.cli.config_commands import config
from commit_clock.core.config import ConfigManager
from commit_clock.core.errors import (
    ConfigurationError,
    ExternalToolError,
    StorageError,
    ValidationError,
)
from commit_clock.core.git import CommitCounter
from commit_clock.core.history import HistoryColumn, HistoryView, format_duration
from commit_clock.core.models import Project
from commit_clock.core.storage import StorageManager
from commit_clock.core.tracker import SessionTracker

console = Console()
error_console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_log_handler: Optional[logging.Handler] = None


def _setup_logging(level: str) -> None:
    """Send log records to stderr at the given level."""
    global _log_handler
    log_level = getattr(logging, level)
    root_logger = logging.getLogger()

    # Replace the handler from a previous invocation in the same process
    if _log_handler is not None:
        root_logger.removeHandler(_log_handler)

    _log_handler = logging.StreamHandler(sys.stderr)
    _log_handler.setLevel(log_level)
    _log_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.setLevel(log_level)
    root_logger.addHandler(_log_handler)


def fail(message: str, exit_code: int = 1) -> NoReturn:
    """Print an error and exit."""
    error_console.print(f"[red]Error:[/red] {message}")
    sys.exit(exit_code)


def get_config(ctx: click.Context) -> ConfigManager:
    """Load the configuration selected on the command line (cached per invocation)."""
    if "config" not in ctx.obj:
        config_path = ctx.obj.get("config_path")
        try:
            config_mgr = ConfigManager(Path(config_path) if config_path else None)
        except ConfigurationError as e:
            fail(str(e), exit_code=2)
        level = "DEBUG" if ctx.obj.get("verbose") else config_mgr.get("advanced.log_level")
        _setup_logging(level)
        ctx.obj["config"] = config_mgr
    return ctx.obj["config"]


def get_storage(ctx: click.Context) -> StorageManager:
    """Build the storage manager from configuration and command-line overrides."""
    config_mgr = get_config(ctx)
    data_file = ctx.obj.get("data_file")
    counter = CommitCounter(**config_mgr.counter_options())
    try:
        return StorageManager(
            Path(data_file) if data_file else config_mgr.data_file,
            counter=counter,
            save_retries=config_mgr.get("storage.save_retries", 1),
        )
    except ConfigurationError as e:
        fail(str(e), exit_code=2)


def get_project(storage: StorageManager, project_id: int) -> Project:
    project = storage.get_project(project_id)
    if project is None:
        fail(f"Project not found: {project_id}")
    return project


def history_table(project: Project, date_format: str) -> Table:
    """Render a project's history, most recent session first."""
    view = HistoryView(project)
    table = Table(title=f"Sessions ({len(view)})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Date", style="cyan")
    table.add_column("Duration", style="magenta")
    table.add_column("Commits", style="green", justify="right")
    table.add_column("Comment")

    for row, session in enumerate(view.rows(), start=1):
        table.add_row(str(row), *(column.format(session, date_format) for column in HistoryColumn))
    return table


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", help="Custom config file", type=click.Path())
@click.option("--data-file", help="Custom project file", type=click.Path())
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[str],
    data_file: Optional[str],
    verbose: bool,
) -> None:
    """Commit Clock - time your work on projects alongside git commits.

    Each work session records how long you worked and how many commits
    you made in the project's repository meanwhile.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["data_file"] = data_file
    ctx.obj["verbose"] = verbose


cli.add_command(config)


@cli.command()
@click.argument("name")
@click.option("-d", "--description", default="", help="Project description")
@click.option(
    "--directory",
    required=True,
    type=click.Path(file_okay=False),
    help="Absolute path of the project's git working copy",
)
@click.pass_context
def create(ctx: click.Context, name: str, description: str, directory: str) -> None:
    """Create a new project.

    Example:
        commit-clock create "Tracker" -d "Time tracker" --directory ~/src/tracker
    """
    storage = get_storage(ctx)

    try:
        project = storage.create_project(name, description, directory)
    except (ValidationError, StorageError) as e:
        fail(str(e))

    console.print(f"[green]✓[/green] Created project {project.id}: {project.name}")
    console.print(f"  Directory: {project.directory}")


@cli.command("list")
@click.pass_context
def list_projects(ctx: click.Context) -> None:
    """List all projects.

    Example:
        commit-clock list
    """
    storage = get_storage(ctx)
    projects = storage.list_projects()

    if not projects:
        console.print("[yellow]No projects yet[/yellow]")
        console.print(
            '\nCreate one with: [cyan]commit-clock create "Name" --directory PATH[/cyan]'
        )
        return

    table = Table(title="Projects")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Time", style="magenta")
    table.add_column("Commits", style="green", justify="right")
    table.add_column("Last comment")
    table.add_column("Directory", style="blue")

    for project in projects:
        table.add_row(
            str(project.id),
            project.name,
            format_duration(project.total_duration),
            str(project.total_commits),
            project.last_comment or "-",
            project.directory,
        )

    console.print(table)


@cli.command()
@click.argument("project_id", type=int)
@click.pass_context
def show(ctx: click.Context, project_id: int) -> None:
    """Show a project and its session history.

    Example:
        commit-clock show 1
    """
    storage = get_storage(ctx)
    config_mgr = get_config(ctx)
    project = get_project(storage, project_id)
    date_format = config_mgr.get("general.date_format")

    content = f"""[bold]{project.name}[/bold]

[dim]Created:[/dim] {project.created_at.strftime(date_format)}
[dim]Directory:[/dim] {project.directory}
[dim]Total time:[/dim] {format_duration(project.total_duration)}
[dim]Total commits:[/dim] {project.total_commits}"""
    if project.description:
        content += f"\n[dim]Description:[/dim] {project.description}"

    console.print(Panel(content, title=f"Project {project.id}", border_style="green"))

    if project.history:
        console.print(history_table(project, date_format))
    else:
        console.print("[yellow]No sessions recorded yet[/yellow]")


@cli.command()
@click.argument("project_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete(ctx: click.Context, project_id: int, yes: bool) -> None:
    """Delete a project. Its id is never reused.

    Example:
        commit-clock delete 3
    """
    storage = get_storage(ctx)
    project = get_project(storage, project_id)

    if not yes and not click.confirm(f"Delete project {project.id} ({project.name})?"):
        console.print("Cancelled")
        return

    try:
        storage.delete_project(project_id)
    except StorageError as e:
        fail(str(e))

    console.print(f"[green]✓[/green] Project {project_id} was deleted")


@cli.command()
@click.argument("project_id", type=int)
@click.pass_context
def work(ctx: click.Context, project_id: int) -> None:
    """Work on a project: time a session and record it with a comment.

    Press Enter to start, Enter again to stop, then describe what you did.

    Example:
        commit-clock work 1
    """
    storage = get_storage(ctx)
    config_mgr = get_config(ctx)
    project = get_project(storage, project_id)

    console.print(f"Project : [bold]{project.name}[/bold]")

    while True:
        click.prompt("Press Enter to start", default="", show_default=False)

        with Live(
            Text("0s"),
            console=console,
            auto_refresh=False,
            transient=True,
            redirect_stdout=False,
            redirect_stderr=False,
        ) as live:

            def refresh(elapsed: timedelta) -> None:
                live.update(
                    Text(f"⏱  {format_duration(elapsed)}  (Enter to stop)", style="bold"),
                    refresh=True,
                )

            tracker = SessionTracker(
                storage,
                project_id,
                on_tick=refresh,
                **config_mgr.tracker_options(),
            )
            tracker.start()
            try:
                click.prompt("", default="", show_default=False, prompt_suffix="")
            except click.Abort:
                tracker.cancel()
                error_console.print("[yellow]Session discarded[/yellow]")
                raise

            # Stopping inside the live display cancels the ticker before it closes
            try:
                pending = tracker.stop()
            except ExternalToolError as e:
                fail(f"Session discarded, could not count commits: {e}")

        if pending.count_error is not None:
            error_console.print(
                f"[yellow]Warning:[/yellow] could not count commits, recording 0 "
                f"({pending.count_error})"
            )
        console.print(
            f"[yellow]⏹[/yellow]  Stopped after {format_duration(pending.duration)}, "
            f"{pending.commits} commits"
        )

        try:
            comment = click.prompt(
                "Enter comment for the session", default="", show_default=False
            )
        except click.Abort:
            # The interval is already measured; keep it without a comment
            try:
                tracker.submit_comment("")
            except StorageError as e:
                fail(str(e))
            error_console.print("[yellow]Session saved without a comment[/yellow]")
            raise

        try:
            session = tracker.submit_comment(comment)
        except StorageError as e:
            fail(str(e))

        console.print(
            f"[green]✓[/green] Saved session of {format_duration(session.duration)} "
            f"on {project.name}"
        )

        if not click.confirm("Start another session?", default=False):
            break


@cli.command()
@click.argument("project_id", type=int)
@click.argument("row", type=int)
@click.argument("column", type=click.Choice([c.value for c in HistoryColumn]))
@click.argument("value")
@click.pass_context
def edit(ctx: click.Context, project_id: int, row: int, column: str, value: str) -> None:
    """Edit a history row (1 = most recent session).

    Example:
        commit-clock edit 1 1 comment "Refactored storage"
        commit-clock edit 1 2 duration 1h30m
        commit-clock edit 1 3 date "2025-11-16 09:00"
    """
    storage = get_storage(ctx)
    config_mgr = get_config(ctx)
    project = get_project(storage, project_id)
    view = HistoryView(project)
    history_column = HistoryColumn(column)

    if not 1 <= row <= len(view):
        fail(f"Project {project_id} has no history row {row}")

    try:
        session = view.edit(storage, row - 1, history_column, history_column.parse(value))
    except (ValidationError, StorageError) as e:
        fail(str(e))

    console.print(
        f"[green]✓[/green] Updated {column} of row {row}: "
        f"{history_column.format(session, config_mgr.get('general.date_format'))}"
    )
    console.print(
        f"  Totals: {format_duration(project.total_duration)}, {project.total_commits} commits"
    )


if __name__ == "__main__":
    cli(obj={})
