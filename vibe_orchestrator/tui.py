"""Interactive TUI for vibe-orchestrator using Textual."""

import asyncio
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional

from textual import work
from textual.app import App, ComposeResult, SuspendNotSupported
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import DataTable, Footer, Header, Static
from rich.text import Text

from .__version__ import __version__
from .config import Config
from .constants import COLUMNS, LEGEND_TEXT, TASK_COLUMNS
from .core.orchestrator import Orchestrator
from .core.state_machine import BranchEntry, OrchestratorSnapshot
from .formatters import entry_cells, format_staleness, task_cells
from .models.resource import POLLED_RESOURCES, ResourceClass
from .models.session import SessionState
from .models.task import Task
from .services.task_store import TaskStore
from .ui.screens import ConfirmScreen, InfoScreen, describe_entry
from .logging_config import get_logger

logger = get_logger(__name__)


class VibeOrchestratorApp(App):
    """Tasks on top, branches with their sessions below.

    All state comes from the orchestrator; this class only renders its
    snapshot and turns key presses into orchestrator actions.
    """

    TITLE = "Vibe Orchestrator"
    SUB_TITLE = f"v{__version__}"

    CSS = """
    Screen {
        background: $surface;
    }

    #task-table {
        height: 2fr;
    }

    #branch-table {
        height: 3fr;
    }

    .section-title {
        height: 1;
        padding: 0 1;
        background: $panel;
        text-style: bold;
    }

    #status-bar {
        dock: bottom;
        height: auto;
        background: $panel;
        padding: 0 1;
    }

    ToastRack {
        offset: 0 -3;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("l", "launch", "Launch"),
        Binding("p", "launch_plan", "Plan"),
        Binding("a", "attach", "Attach"),
        Binding("k", "kill", "Kill Session"),
        Binding("d", "delete_worktree", "Delete Worktree"),
        Binding("D", "delete_worktree(True)", "Force Delete", show=False),
        Binding("i", "show_info", "Info"),
        Binding("r", "refresh", "Refresh"),
        Binding("question_mark", "show_legend", "Legend"),
    ]

    def __init__(self, orchestrator: Orchestrator, store: TaskStore, config: Config):
        super().__init__()
        self.orchestrator = orchestrator
        self.store = store
        self.config = config
        self.tasks: List[Task] = []
        self._tick_timer = None
        self._handoff_active = False

    def compose(self) -> ComposeResult:
        """Create child widgets."""
        yield Header(show_clock=False)
        with Vertical():
            yield Static("Tasks", classes="section-title")
            yield DataTable(id="task-table", cursor_type="row", zebra_stripes=True)
            yield Static("Worktrees & sessions", classes="section-title")
            yield DataTable(id="branch-table", cursor_type="row", zebra_stripes=True)
        yield Static(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Set up tables and start ticking the orchestrator."""
        task_table = self.query_one("#task-table", DataTable)
        for col in TASK_COLUMNS:
            task_table.add_column(col.label, width=None, key=col.key)

        branch_table = self.query_one("#branch-table", DataTable)
        for col in COLUMNS:
            branch_table.add_column(col.label, width=None, key=col.key)
        branch_table.loading = True

        self.orchestrator.add_listener(self._on_snapshot)
        self._tick_timer = self.set_interval(self.config.tick_interval, self._on_tick)
        self.load_tasks()

    # Orchestrator plumbing

    def _on_tick(self) -> None:
        self.orchestrator.tick()
        for notice in self.orchestrator.pop_notices():
            self.notify(notice.message, severity=notice.severity)
        self._update_status()

    def _on_snapshot(self, snapshot: OrchestratorSnapshot) -> None:
        if snapshot.worktrees is not None or snapshot.axis(ResourceClass.WORKTREES).failing:
            self.query_one("#branch-table", DataTable).loading = False
        self._populate_branches()
        self._populate_tasks()

    # Rendering

    @staticmethod
    def _row(cells: Dict[str, tuple], columns) -> List[Text]:
        return [Text(cells[col.key][0], style=cells[col.key][1]) for col in columns]

    @staticmethod
    def _restore_cursor(table: DataTable, row: int) -> None:
        if table.row_count:
            table.move_cursor(row=min(row, table.row_count - 1))

    def _populate_branches(self) -> None:
        table = self.query_one("#branch-table", DataTable)
        cursor = table.cursor_row
        table.clear()

        pull_requests_loaded = self.orchestrator.snapshot.pull_requests is not None
        for entry in self.orchestrator.entries:
            table.add_row(*self._row(entry_cells(entry, pull_requests_loaded), COLUMNS), key=entry.branch)
        self._restore_cursor(table, cursor)

    def _populate_tasks(self) -> None:
        table = self.query_one("#task-table", DataTable)
        cursor = table.cursor_row
        table.clear()

        worktrees = self.orchestrator.snapshot.worktrees or ()
        for task in self.tasks:
            branch = self.orchestrator.launcher.derive_branch(task, worktrees)
            table.add_row(*self._row(task_cells(task, branch), TASK_COLUMNS), key=task.id)
        self._restore_cursor(table, cursor)

    def _update_status(self) -> None:
        """Update status bar with session counts and staleness."""
        status = self.query_one("#status-bar", Static)
        entries = self.orchestrator.entries

        counts = {state: 0 for state in SessionState}
        for entry in entries:
            counts[entry.state] += 1

        stale = [
            resource for resource in POLLED_RESOURCES
            if resource is not ResourceClass.PULL_REQUESTS or self.orchestrator.github is not None
            if self.orchestrator.is_stale(resource)
        ]
        parts = [
            f"Branches: {len(entries)}",
            f"Running: {counts[SessionState.RUNNING] + counts[SessionState.ATTACHED]}",
            f"Exited: {counts[SessionState.EXITED]}",
            f"Launching: {counts[SessionState.LAUNCHING]}",
            f"Tasks: {len(self.tasks)}",
        ]
        staleness = format_staleness(stale)
        if staleness:
            parts.append(staleness)
        status.update(" | ".join(parts))

    # Selection helpers

    def _selected_key(self, table_id: str) -> Optional[str]:
        table = self.query_one(table_id, DataTable)
        if not table.row_count or table.cursor_row is None:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return row_key.value

    def _selected_task(self) -> Optional[Task]:
        task_id = self._selected_key("#task-table")
        return next((task for task in self.tasks if task.id == task_id), None)

    def _selected_entry(self) -> Optional[BranchEntry]:
        branch = self._selected_key("#branch-table")
        return self.orchestrator.entry_for(branch) if branch else None

    def _task_for_entry(self, entry: BranchEntry) -> Optional[Task]:
        if entry.task_id is None:
            return None
        return next((task for task in self.tasks if task.id == entry.task_id), None)

    def _tasks_focused(self) -> bool:
        return self.focused is self.query_one("#task-table", DataTable)

    # Actions

    def _launch(self, plan_mode: bool) -> None:
        if self._tasks_focused():
            task = self._selected_task()
        else:
            entry = self._selected_entry()
            task = self._task_for_entry(entry) if entry else None
            if task is None and entry is not None and entry.session is not None:
                # Worktree made outside the launcher: just attach
                self.action_attach()
                return

        if task is None:
            self.notify("Select a task to launch", severity="warning")
            return
        self.hand_off(lambda: self.orchestrator.launch(task, plan_mode=plan_mode))

    def action_launch(self) -> None:
        """Launch (or re-attach to) the selected task's session."""
        self._launch(plan_mode=False)

    def action_launch_plan(self) -> None:
        """Launch the selected task's agent in plan mode."""
        self._launch(plan_mode=True)

    def action_attach(self) -> None:
        """Attach to the selected branch's session."""
        entry = self._selected_entry()
        if entry is None or entry.session is None:
            self.notify("No session to attach to", severity="warning")
            return
        self.hand_off(lambda: self.orchestrator.attach(entry.branch))

    def action_kill(self) -> None:
        """Kill the selected branch's session after confirmation."""
        entry = self._selected_entry()
        if entry is None or entry.session is None:
            self.notify("No session to kill", severity="warning")
            return

        def handle(confirmed: bool | None) -> None:
            if confirmed:
                self.orchestrator.kill(entry.branch)
                self.notify(f"Killing session {entry.session_name}")

        self.push_screen(ConfirmScreen(f"Kill session '{entry.session_name}'?"), handle)

    def action_delete_worktree(self, force: bool = False) -> None:
        """Remove the selected branch's worktree after confirmation."""
        entry = self._selected_entry()
        if entry is None or entry.worktree is None:
            self.notify("No worktree selected", severity="warning")
            return
        if entry.worktree.is_main:
            self.notify("The main worktree cannot be deleted", severity="warning")
            return

        message = f"{'Force-remove' if force else 'Remove'} worktree {entry.worktree.path}?"
        if entry.session is not None and entry.state is not SessionState.EXITED:
            message += f"\n\nSession '{entry.session_name}' is still running."

        def handle(confirmed: bool | None) -> None:
            if confirmed:
                self.orchestrator.delete_worktree(entry.branch, force=force)
                self.notify(f"Removing worktree for {entry.branch}")

        self.push_screen(ConfirmScreen(message), handle)

    def action_show_info(self) -> None:
        """Show details of the selected branch or task."""
        if self._tasks_focused():
            task = self._selected_task()
            if task is not None:
                self.push_screen(InfoScreen(task.context))
            return

        entry = self._selected_entry()
        if entry is not None:
            self.push_screen(InfoScreen(describe_entry(entry, self._task_for_entry(entry))))

    def action_show_legend(self) -> None:
        """Show legend explaining states and symbols."""
        self.push_screen(InfoScreen(LEGEND_TEXT))

    def action_refresh(self) -> None:
        """Poll everything now, including sources paused after an auth failure."""
        self.orchestrator.refresh()
        self.load_tasks()
        self.notify("Refreshing")

    # Background work

    @work(exclusive=True, thread=False, group="tasks")
    async def load_tasks(self) -> None:
        """Read task files off the event loop."""
        project_key = self.config.resolved_project_key
        try:
            self.tasks = await asyncio.to_thread(self.store.list, project_key)
        except OSError as e:
            logger.error(f"Error loading tasks: {e}", exc_info=True)
            self.notify(f"Could not read tasks: {e}", severity="error")
            return

        for warning in self.store.warnings:
            self.notify(warning, severity="warning")
        self.store.warnings.clear()
        self._populate_tasks()
        self._update_status()

    @work(exclusive=True, thread=False, group="handoff")
    async def hand_off(self, start: Callable[[], Optional[Future]]) -> None:
        """Give the terminal to an interactive session until it detaches or exits."""
        if self._handoff_active:
            return
        self._handoff_active = True
        if self._tick_timer is not None:
            self._tick_timer.pause()
        try:
            with self.suspend():
                future = start()
                if future is not None:
                    await asyncio.wrap_future(future)
        except SuspendNotSupported:
            self.notify("This terminal cannot be handed over", severity="error")
        finally:
            self._handoff_active = False
            if self._tick_timer is not None:
                self._tick_timer.resume()
            self.refresh(layout=True)
            self._on_tick()

    async def action_quit(self) -> None:
        """Override quit action to clean up resources before exiting."""
        try:
            # Cancel all running workers before exit
            self.workers.cancel_all()
            self.orchestrator.close()
        finally:
            self.exit()
