"""Session lifecycle state, derived from independent worktree and session listings.

The aggregate state is an immutable, versioned ``OrchestratorSnapshot``.
Every merge returns a new snapshot; nothing here performs I/O.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from vibe_orchestrator.models.pull_request import PullRequestSummary
from vibe_orchestrator.models.resource import ResourceClass
from vibe_orchestrator.models.session import SessionInfo, SessionState
from vibe_orchestrator.models.worktree import WorktreeInfo
from vibe_orchestrator.services.multiplexer import session_name_for_branch


@dataclass(frozen=True)
class AxisStatus:
    """Freshness bookkeeping for one resource class."""
    last_success_at: Optional[float] = None
    last_error: Optional[str] = None
    last_error_at: Optional[float] = None
    generation: int = 0  # Generation of the last applied result

    @property
    def failing(self) -> bool:
        """The most recent completed poll failed."""
        if self.last_error_at is None:
            return False
        return self.last_success_at is None or self.last_error_at > self.last_success_at


@dataclass(frozen=True)
class BranchEntry:
    """One row of aggregate state: a branch with its worktree, session and PR."""
    branch: str
    state: SessionState
    worktree: Optional[WorktreeInfo]
    session: Optional[SessionInfo]
    pull_request: Optional[PullRequestSummary]
    stale: bool = False

    @property
    def session_name(self) -> str:
        return session_name_for_branch(self.branch)

    @property
    def task_id(self) -> Optional[str]:
        return self.worktree.task_id if self.worktree else None


@dataclass(frozen=True)
class OrchestratorSnapshot:
    """Immutable aggregate state; replaced as a whole on every merge.

    ``None`` for a listing means it has never been loaded successfully.
    """
    version: int = 0
    worktrees: Optional[Tuple[WorktreeInfo, ...]] = None
    sessions: Optional[Tuple[SessionInfo, ...]] = None
    pull_requests: Optional[Mapping[str, PullRequestSummary]] = None
    launching: FrozenSet[str] = frozenset()
    foreground: Optional[str] = None
    axes: Mapping[ResourceClass, AxisStatus] = field(
        default_factory=lambda: MappingProxyType({resource: AxisStatus() for resource in ResourceClass})
    )

    def axis(self, resource: ResourceClass) -> AxisStatus:
        return self.axes[resource]

    def worktree_for(self, branch: str) -> Optional[WorktreeInfo]:
        for worktree in self.worktrees or ():
            if worktree.branch == branch:
                return worktree
        return None

    def session_for(self, branch: str) -> Optional[SessionInfo]:
        name = session_name_for_branch(branch)
        for session in self.sessions or ():
            if session.name == name:
                return session
        return None

    def pull_request_for(self, branch: str) -> Optional[PullRequestSummary]:
        if self.pull_requests is None:
            return None
        return self.pull_requests.get(branch)


def classify(
    worktree: Optional[WorktreeInfo],
    session: Optional[SessionInfo],
    launching: bool = False,
    foreground: bool = False,
) -> SessionState:
    """Lifecycle state of one worktree/session pairing.

    An exited session is EXITED whatever else is known about it.
    """
    if session is not None and session.exited:
        return SessionState.EXITED
    if worktree is None:
        return SessionState.LAUNCHING if launching else SessionState.ABSENT
    if session is None:
        return SessionState.LAUNCHING if launching else SessionState.WORKTREE_ONLY
    if foreground:
        return SessionState.ATTACHED
    return SessionState.RUNNING


def _next(snapshot: OrchestratorSnapshot, **changes) -> OrchestratorSnapshot:
    return replace(snapshot, version=snapshot.version + 1, **changes)


def _with_axis(snapshot: OrchestratorSnapshot, resource: ResourceClass, status: AxisStatus) -> Mapping:
    axes: Dict[ResourceClass, AxisStatus] = dict(snapshot.axes)
    axes[resource] = status
    return MappingProxyType(axes)


def _succeeded(snapshot: OrchestratorSnapshot, resource: ResourceClass, generation: int, completed_at: float) -> Mapping:
    status = replace(snapshot.axis(resource), last_success_at=completed_at, generation=generation)
    return _with_axis(snapshot, resource, status)


def accepts(snapshot: OrchestratorSnapshot, resource: ResourceClass, generation: int) -> bool:
    """Whether a result of this generation is newer than the last one applied."""
    return generation > snapshot.axis(resource).generation


def apply_worktrees(
    snapshot: OrchestratorSnapshot,
    worktrees: Iterable[WorktreeInfo],
    generation: int,
    completed_at: float,
) -> OrchestratorSnapshot:
    """Replace the worktree axis with a fresh listing."""
    return _next(
        snapshot,
        worktrees=tuple(worktrees),
        axes=_succeeded(snapshot, ResourceClass.WORKTREES, generation, completed_at),
    )


def apply_sessions(
    snapshot: OrchestratorSnapshot,
    sessions: Iterable[SessionInfo],
    generation: int,
    completed_at: float,
) -> OrchestratorSnapshot:
    """Replace the session axis; launches whose session is now visible are done."""
    sessions = tuple(sessions)
    names = {session.name for session in sessions}
    launching = frozenset(b for b in snapshot.launching if session_name_for_branch(b) not in names)
    return _next(
        snapshot,
        sessions=sessions,
        launching=launching,
        axes=_succeeded(snapshot, ResourceClass.SESSIONS, generation, completed_at),
    )


def apply_pull_requests(
    snapshot: OrchestratorSnapshot,
    pull_requests: Mapping[str, PullRequestSummary],
    generation: int,
    completed_at: float,
) -> OrchestratorSnapshot:
    """Replace the pull-request axis."""
    return _next(
        snapshot,
        pull_requests=MappingProxyType(dict(pull_requests)),
        axes=_succeeded(snapshot, ResourceClass.PULL_REQUESTS, generation, completed_at),
    )


def apply_failure(
    snapshot: OrchestratorSnapshot,
    resource: ResourceClass,
    error: str,
    generation: int,
    completed_at: float,
) -> OrchestratorSnapshot:
    """Record a failed poll; the axis keeps its last known-good data."""
    status = replace(
        snapshot.axis(resource),
        last_error=error,
        last_error_at=completed_at,
        generation=generation,
    )
    return _next(snapshot, axes=_with_axis(snapshot, resource, status))


def mark_launching(snapshot: OrchestratorSnapshot, branch: str) -> OrchestratorSnapshot:
    if branch in snapshot.launching:
        return snapshot
    return _next(snapshot, launching=snapshot.launching | {branch})


def clear_launching(snapshot: OrchestratorSnapshot, branch: str) -> OrchestratorSnapshot:
    if branch not in snapshot.launching:
        return snapshot
    return _next(snapshot, launching=snapshot.launching - {branch})


def set_foreground(snapshot: OrchestratorSnapshot, branch: Optional[str]) -> OrchestratorSnapshot:
    """Record the branch whose session the user is looking at (UI-reported)."""
    if snapshot.foreground == branch:
        return snapshot
    return _next(snapshot, foreground=branch)


def entries(snapshot: OrchestratorSnapshot) -> List[BranchEntry]:
    """Derive one entry per branch: worktrees in listing order, then pending launches.

    Detached worktrees have no branch and are not tracked. Sessions without
    a worktree in this repository are not listed.
    """
    stale = snapshot.axis(ResourceClass.SESSIONS).failing or snapshot.axis(ResourceClass.WORKTREES).failing

    result = []
    seen = set()
    for worktree in snapshot.worktrees or ():
        if not worktree.branch or worktree.branch in seen:
            continue
        seen.add(worktree.branch)
        session = snapshot.session_for(worktree.branch)
        result.append(
            BranchEntry(
                branch=worktree.branch,
                state=classify(
                    worktree,
                    session,
                    launching=worktree.branch in snapshot.launching,
                    foreground=worktree.branch == snapshot.foreground,
                ),
                worktree=worktree,
                session=session,
                pull_request=snapshot.pull_request_for(worktree.branch),
                stale=stale,
            )
        )

    for branch in sorted(snapshot.launching - seen):
        result.append(
            BranchEntry(
                branch=branch,
                state=classify(None, None, launching=True),
                worktree=None,
                session=None,
                pull_request=snapshot.pull_request_for(branch),
                stale=stale,
            )
        )
    return result


def is_stale(snapshot: OrchestratorSnapshot, resource: ResourceClass, now: float, threshold: float) -> bool:
    """Whether the last successful poll of a resource class is older than threshold."""
    last_success = snapshot.axis(resource).last_success_at
    return last_success is None or now - last_success > threshold
