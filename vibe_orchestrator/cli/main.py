"""Command-line interface for vibe-orchestrator"""

import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from vibe_orchestrator.cli.args import parse_args
from vibe_orchestrator.config import Config
from vibe_orchestrator.constants import COLUMNS, LEGEND_TEXT, TASK_COLUMNS
from vibe_orchestrator.core.launcher import SessionLauncher
from vibe_orchestrator.core.orchestrator import Orchestrator
from vibe_orchestrator.formatters import entry_cells, format_pr_link, format_staleness, task_cells
from vibe_orchestrator.models.resource import POLLED_RESOURCES, ResourceClass
from vibe_orchestrator.services.activity import ActivityProbe
from vibe_orchestrator.services.github_service import GitHubService
from vibe_orchestrator.services.multiplexer import MultiplexerService
from vibe_orchestrator.services.task_store import TaskStore
from vibe_orchestrator.services.worktrees import WorktreeService
from vibe_orchestrator.logging_config import setup_logging

console = Console()


def build_orchestrator(config: Config) -> Orchestrator:
    """Wire the production adapters into an orchestrator."""
    repo_path = str(config.resolved_repo_path)
    probe = ActivityProbe(
        config.resolved_activity_dir,
        fresh_seconds=config.activity_fresh_seconds,
        stale_seconds=config.activity_stale_seconds,
    )
    multiplexer = MultiplexerService(
        config.script_dir, probe=probe, zellij_bin=config.multiplexer_bin, timeout=config.command_timeout
    )
    worktrees = WorktreeService(repo_path, wt_bin=config.worktree_bin, timeout=config.command_timeout)
    github = GitHubService(repo_path, config)
    launcher = SessionLauncher(
        config.script_dir,
        config.agent_command,
        zellij_bin=config.multiplexer_bin,
        max_length=config.max_branch_length,
    )
    return Orchestrator(config, multiplexer, worktrees, github, launcher)


def load_once(orchestrator: Orchestrator, timeout: float) -> None:
    """Poll every resource class once and merge the results.

    Pull requests are only asked for once a worktree listing has been merged.
    A tick schedules before it merges, so a listing posted after the first
    tick's merge is merged by the second and the pull request poll goes out
    on the third.
    """
    for _ in range(3):
        orchestrator.tick()
        orchestrator.loader.wait_idle(timeout)
    orchestrator.tick()


def print_entries(orchestrator: Orchestrator) -> None:
    """Print the branch/session table."""
    snapshot = orchestrator.snapshot
    pull_requests_loaded = snapshot.pull_requests is not None

    table = Table(show_header=True, header_style="bold")
    for col in COLUMNS:
        table.add_column(col.label, min_width=min(col.width, 12) if col.width else None)

    for entry in orchestrator.entries:
        cells = entry_cells(entry, pull_requests_loaded)
        cells["pr"] = (format_pr_link(entry.pull_request, pull_requests_loaded), cells["pr"][1])
        table.add_row(*(f"[{style}]{text}[/{style}]" if style and text else text
                        for text, style in (cells[col.key] for col in COLUMNS)))

    console.print(table)

    stale = [resource for resource in POLLED_RESOURCES if orchestrator.is_stale(resource)]
    if ResourceClass.PULL_REQUESTS in stale and orchestrator.github is None:
        stale.remove(ResourceClass.PULL_REQUESTS)
    if stale:
        console.print(f"[yellow]{format_staleness(stale)}[/yellow]")
    console.print(f"[dim]{LEGEND_TEXT}[/dim]")


def print_tasks(store: TaskStore, orchestrator: Orchestrator, project_key: str) -> None:
    """Print the project's tasks with the branch each would launch on."""
    tasks = store.list(project_key)
    if not tasks:
        console.print(f"[yellow]No tasks in {store.tasks_dir(project_key)}[/yellow]")
        return

    worktrees = orchestrator.snapshot.worktrees or ()
    table = Table(show_header=True, header_style="bold")
    for col in TASK_COLUMNS:
        table.add_column(col.label)
    for task in tasks:
        cells = task_cells(task, orchestrator.launcher.derive_branch(task, worktrees))
        table.add_row(*(f"[{style}]{text}[/{style}]" if style and text else text
                        for text, style in (cells[col.key] for col in TASK_COLUMNS)))
    console.print(table)


def main(argv: Optional[List[str]] = None):
    """Main entry point for the application."""
    parsed_args = None
    try:
        # Parse command line arguments
        parsed_args = parse_args(argv)

        # Determine if we should use interactive mode
        # Default to interactive if running in a TTY, unless explicitly disabled
        use_interactive = (
            sys.stdin.isatty() and not parsed_args.no_interactive and not parsed_args.tasks
        )

        config = Config.from_env(
            repo_path=parsed_args.repo,
            project_key=parsed_args.project,
            workers=parsed_args.workers,
            session_poll_interval=parsed_args.poll_interval,
            worktree_poll_interval=parsed_args.poll_interval,
            verbose=parsed_args.verbose,
            debug=parsed_args.debug,
        )
        setup_logging(
            verbose=parsed_args.verbose,
            debug=parsed_args.debug,
            tui_mode=use_interactive,
            log_dir=Path(config.vibe_home),
        )

        if parsed_args.debug:
            console.print("[yellow]Debug mode enabled[/yellow]")

            # Show threading information
            from vibe_orchestrator.utils.threading import get_threading_info
            threading_info = get_threading_info()
            console.print("[yellow]Threading Information:[/yellow]")
            console.print(f"  Python version: {threading_info['python_version']}")
            console.print(f"  CPU count: {threading_info['cpu_count']}")
            console.print(f"  Loader workers: {threading_info['loader_workers']}")
            console.print(f"  Free-threading enabled: {threading_info['free_threading']}")

            console.print("[yellow]Configuration:[/yellow]")
            for key, value in config.to_dict().items():
                if key == "github_token" and value:
                    value = "***"
                console.print(f"  {key}: {value}")

        orchestrator = build_orchestrator(config)
        store = TaskStore(config.vibe_home)
        try:
            if use_interactive:
                from vibe_orchestrator.tui import VibeOrchestratorApp
                app = VibeOrchestratorApp(orchestrator, store, config)
                app.run()
                return 0

            load_once(orchestrator, config.network_timeout + config.command_timeout)
            for notice in orchestrator.pop_notices():
                color = {"error": "red", "warning": "yellow"}.get(notice.severity, "cyan")
                console.print(f"[{color}]{notice.message}[/{color}]")

            if parsed_args.tasks:
                print_tasks(store, orchestrator, config.resolved_project_key)
            else:
                print_entries(orchestrator)
        finally:
            orchestrator.close()

        return 0
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        return 1
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if parsed_args is not None and parsed_args.debug:
            console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
