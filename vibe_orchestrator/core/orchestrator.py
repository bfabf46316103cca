"""Orchestrator core: owns the aggregate state and turns user intents into work.

Everything here runs on the UI thread. Adapters are only ever called from
work functions handed to the background loader.
"""

import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, TYPE_CHECKING, Union

from vibe_orchestrator.core import state_machine as sm
from vibe_orchestrator.core.launcher import SessionLauncher
from vibe_orchestrator.core.loader import LANE_GENERAL, LANE_WORKTREES, BackgroundLoader, LoadResult
from vibe_orchestrator.exceptions import NotAuthenticated, ToolMissing
from vibe_orchestrator.models.resource import POLLED_RESOURCES, ResourceClass
from vibe_orchestrator.models.task import Task
from vibe_orchestrator.services.multiplexer import session_name_for_branch
from vibe_orchestrator.logging_config import get_logger

if TYPE_CHECKING:
    from vibe_orchestrator.config import Config
    from vibe_orchestrator.services.github_service import GitHubService
    from vibe_orchestrator.services.multiplexer import MultiplexerService
    from vibe_orchestrator.services.worktrees import WorktreeService

logger = get_logger(__name__)

Listener = Callable[[sm.OrchestratorSnapshot], None]


@dataclass(frozen=True)
class Notice:
    """A message for the user; severity uses Textual's notify() levels."""
    message: str
    severity: str = "information"  # information, warning or error


class Orchestrator:
    """Single owner of the aggregate orchestrator state."""

    def __init__(
        self,
        config: Union['Config', dict],
        multiplexer: 'MultiplexerService',
        worktrees: 'WorktreeService',
        github: Optional['GitHubService'],
        launcher: SessionLauncher,
        loader: Optional[BackgroundLoader] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.multiplexer = multiplexer
        self.worktrees = worktrees
        self.github = github
        self.launcher = launcher
        self._clock = clock
        self.loader = loader or BackgroundLoader(config.get('workers'), clock=clock)

        self._snapshot = sm.OrchestratorSnapshot()
        self._listeners: List[Listener] = []
        self._notices: List[Notice] = []
        self._intervals: Dict[ResourceClass, float] = {
            ResourceClass.SESSIONS: config.get('session_poll_interval', 5.0),
            ResourceClass.WORKTREES: config.get('worktree_poll_interval', 5.0),
            ResourceClass.PULL_REQUESTS: config.get('pr_poll_interval', 60.0),
        }
        self._next_due: Dict[ResourceClass, float] = {resource: 0.0 for resource in POLLED_RESOURCES}
        self._missing_reported: Set[ResourceClass] = set()
        self._paused: Set[ResourceClass] = set()  # Not polled until refresh()
        self._pending_owners: Dict[str, str] = {}  # branch -> task id of in-flight launches
        self._closed = False
        self._signalled_version = self._snapshot.version

        if github is None:
            self._paused.add(ResourceClass.PULL_REQUESTS)

    # State access

    @property
    def snapshot(self) -> sm.OrchestratorSnapshot:
        return self._snapshot

    @property
    def entries(self) -> List[sm.BranchEntry]:
        return sm.entries(self._snapshot)

    def entry_for(self, branch: str) -> Optional[sm.BranchEntry]:
        return next((entry for entry in self.entries if entry.branch == branch), None)

    def is_stale(self, resource: ResourceClass, now: Optional[float] = None) -> bool:
        """Whether a resource class's data is older than the staleness threshold."""
        now = self._clock() if now is None else now
        return sm.is_stale(self._snapshot, resource, now, self.config.get('staleness_threshold', 30.0))

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked at most once per tick when state changed."""
        self._listeners.append(listener)

    def pop_notices(self) -> List[Notice]:
        notices, self._notices = self._notices, []
        return notices

    def _notify(self, message: str, severity: str = "information") -> None:
        self._notices.append(Notice(message, severity))

    # Event loop

    def tick(self, now: Optional[float] = None) -> bool:
        """Schedule due polls, merge every posted result and signal listeners.

        Returns:
            True if the snapshot changed since the previous tick
        """
        if self._closed:
            return False
        now = self._clock() if now is None else now

        self._schedule_due(now)

        for result in self.loader.drain():
            self._merge(result)

        # Actions taken between ticks count too; they are signalled here
        changed = self._snapshot.version != self._signalled_version
        if changed:
            self._signalled_version = self._snapshot.version
            for listener in self._listeners:
                listener(self._snapshot)
        return changed

    def _poll_work(self, resource: ResourceClass) -> Optional[Callable]:
        if resource is ResourceClass.SESSIONS:
            return self.multiplexer.list_sessions
        if resource is ResourceClass.WORKTREES:
            worktrees, launcher = self.worktrees, self.launcher
            return lambda: launcher.annotate_owners(worktrees.list_worktrees())

        # Pull requests need a worktree listing to know which branches to ask about
        if self._snapshot.worktrees is None or self.github is None:
            return None
        branches = [wt.branch for wt in self._snapshot.worktrees if wt.branch and not wt.is_main]
        github = self.github
        return lambda: github.list_pull_requests(branches)

    def _schedule_due(self, now: float) -> None:
        for resource in POLLED_RESOURCES:
            if resource in self._paused or now < self._next_due[resource]:
                continue
            work = self._poll_work(resource)
            if work is None:
                continue
            self.loader.request(resource, work)
            self._next_due[resource] = now + self._intervals[resource]

    def _merge(self, result: LoadResult) -> None:
        if result.resource is ResourceClass.ACTIONS:
            self._merge_action(result)
            return

        if not sm.accepts(self._snapshot, result.resource, result.generation):
            logger.debug(f"Dropping out-of-date {result.resource.value} result (generation {result.generation})")
            return

        if result.ok:
            self._missing_reported.discard(result.resource)
            if result.resource is ResourceClass.SESSIONS:
                self._snapshot = sm.apply_sessions(self._snapshot, result.value, result.generation, result.completed_at)
            elif result.resource is ResourceClass.WORKTREES:
                self._snapshot = sm.apply_worktrees(self._snapshot, result.value, result.generation, result.completed_at)
            else:
                self._snapshot = sm.apply_pull_requests(
                    self._snapshot, result.value, result.generation, result.completed_at
                )
            return

        self._handle_poll_failure(result)
        self._snapshot = sm.apply_failure(
            self._snapshot, result.resource, str(result.error), result.generation, result.completed_at
        )

    def _handle_poll_failure(self, result: LoadResult) -> None:
        resource, error = result.resource, result.error
        if isinstance(error, ToolMissing):
            if resource not in self._missing_reported:
                self._missing_reported.add(resource)
                logger.warning(f"{resource.value}: {error}")
                self._notify(f"{error}. {resource.value.replace('_', ' ').capitalize()} are unavailable.", "warning")
            else:
                logger.debug(f"{resource.value}: {error}")
        elif isinstance(error, NotAuthenticated):
            self._paused.add(resource)
            logger.warning(f"{resource.value}: {error}")
            self._notify(f"{error}. Press r to retry after logging in.", "error")
        else:
            # Transient: the next natural poll retries
            logger.warning(f"{resource.value} poll failed: {error}")

    def _merge_action(self, result: LoadResult) -> None:
        action, branch = result.tag if isinstance(result.tag, tuple) else (str(result.tag), None)

        if action == "launch" and branch is not None:
            self._pending_owners.pop(branch, None)
            self._snapshot = sm.clear_launching(self._snapshot, branch)
        # The terminal is handed back once the launch or attach command returns
        if action in ("launch", "attach") and self._snapshot.foreground == branch:
            self._snapshot = sm.set_foreground(self._snapshot, None)

        if result.ok:
            logger.info(f"{action} {branch or ''} finished")
        else:
            logger.error(f"{action} {branch or ''} failed: {result.error}")
            self._notify(f"{action.capitalize()} {branch or ''} failed: {result.error}", "error")

        # Whatever the command did, look again right away
        self._next_due[ResourceClass.SESSIONS] = 0.0
        self._next_due[ResourceClass.WORKTREES] = 0.0

    # Actions

    def refresh(self) -> None:
        """Poll every resource class on the next tick, including paused ones."""
        self._paused.clear()
        if self.github is None:
            self._paused.add(ResourceClass.PULL_REQUESTS)
        for resource in POLLED_RESOURCES:
            self._next_due[resource] = 0.0

    def launch(self, task: Task, plan_mode: bool = False) -> 'Future[LoadResult]':
        """Create the task's worktree if needed and hand the terminal to its session.

        The branch is marked launching and foreground immediately; the
        hand-off itself runs on the serialized worktree lane.
        """
        worktrees = tuple(self._snapshot.worktrees or ())
        pending = dict(self._pending_owners)
        branch = self.launcher.derive_branch(task, worktrees, pending)

        self._pending_owners[branch] = task.id
        self._snapshot = sm.mark_launching(self._snapshot, branch)
        self._snapshot = sm.set_foreground(self._snapshot, branch)

        launcher, worktree_service = self.launcher, self.worktrees

        def work():
            plan = launcher.launch(task, worktrees, plan_mode=plan_mode, pending_owners=pending)
            worktree_service.switch_or_create(plan.branch, execute=str(plan.script_path))
            return plan

        logger.info(f"Launching {branch} for task {task.id}")
        return self.loader.submit(LANE_WORKTREES, work, tag=("launch", branch))

    def launch_with_plan(self, task: Task) -> 'Future[LoadResult]':
        return self.launch(task, plan_mode=True)

    def attach(self, branch: str) -> Optional['Future[LoadResult]']:
        """Hand the terminal to a branch's session (resurrecting it if exited)."""
        session = self._snapshot.session_for(branch)
        if session is None:
            self._notify(f"No session for {branch}", "warning")
            return None

        self._snapshot = sm.set_foreground(self._snapshot, branch)
        multiplexer = self.multiplexer
        return self.loader.submit(
            LANE_GENERAL,
            lambda: multiplexer.attach(session.name, resurrect=session.exited),
            tag=("attach", branch),
        )

    def kill(self, branch: str) -> Optional['Future[LoadResult]']:
        """Kill a branch's session."""
        session = self._snapshot.session_for(branch)
        if session is None:
            self._notify(f"No session for {branch}", "warning")
            return None

        multiplexer = self.multiplexer
        return self.loader.submit(
            LANE_GENERAL,
            lambda: multiplexer.kill(session.name, exited=session.exited),
            tag=("kill", branch),
        )

    def delete_worktree(self, branch: str, force: bool = False) -> Optional['Future[LoadResult]']:
        """Remove a branch's worktree and the launcher files of its session."""
        worktree = self._snapshot.worktree_for(branch)
        if worktree is None:
            self._notify(f"No worktree for {branch}", "warning")
            return None
        if worktree.is_main:
            self._notify("The main worktree cannot be deleted", "warning")
            return None

        worktree_service, launcher = self.worktrees, self.launcher

        def work():
            worktree_service.remove_worktree(branch, force=force)
            launcher.forget(session_name_for_branch(branch))

        return self.loader.submit(LANE_WORKTREES, work, tag=("delete", branch))

    def set_foreground(self, branch: Optional[str]) -> None:
        """Record the branch whose session the user currently has in front."""
        self._snapshot = sm.set_foreground(self._snapshot, branch)

    def close(self) -> None:
        """Stop background work and release the code-host connection."""
        if self._closed:
            return
        self._closed = True
        self.loader.shutdown()
        if self.github is not None:
            self.github.close()
