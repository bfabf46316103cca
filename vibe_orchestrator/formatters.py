"""Shared formatting utilities for vibe-orchestrator (CLI table and TUI)."""

import os
from typing import Dict, Iterable, Optional, Tuple

from vibe_orchestrator.core.state_machine import BranchEntry
from vibe_orchestrator.models.pull_request import PullRequestSummary
from vibe_orchestrator.models.resource import ResourceClass
from vibe_orchestrator.models.session import ActivityState, SessionState
from vibe_orchestrator.models.task import Task
from vibe_orchestrator.constants import (
    ACTIVITY_COLORS,
    ACTIVITY_DISPLAY,
    PR_COLORS,
    STATE_COLORS,
    STATE_DISPLAY,
    SYMBOL_ATTACHED,
    SYMBOL_NO_DATA,
    SYMBOL_STALE,
)

# (text, style) pairs; style is a Rich style string
Cell = Tuple[str, str]


def format_state(state: SessionState) -> str:
    return STATE_DISPLAY.get(state.value, state.value)


def format_activity(activity: ActivityState) -> str:
    return ACTIVITY_DISPLAY.get(activity.value, activity.value)


def format_tokens(count: Optional[int]) -> str:
    """
    Format a token counter compactly.

    Args:
        count: Number of tokens, or None when unknown

    Returns:
        "850", "12k", "1.2M" or "" when unknown
    """
    if count is None:
        return ""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count // 1_000}k"
    return str(count)


def format_pull_request(pr: Optional[PullRequestSummary], loaded: bool = True) -> str:
    """
    Format PR summary as display text.

    Args:
        pr: PR summary for the branch, if any
        loaded: Whether pull requests have ever been fetched; unknown PR
            data is shown as "-" rather than blank

    Returns:
        Display text such as "#12 open ✓"
    """
    if pr is None:
        return "" if loaded else SYMBOL_NO_DATA

    checks = {"passing": " ✓", "failing": " ✗", "pending": " …"}.get(pr.checks.value, "")
    return f"#{pr.number} {pr.state.value}{checks}"


def format_pr_link(pr: Optional[PullRequestSummary], loaded: bool = True) -> str:
    """Format PR summary with a Rich link to the pull request."""
    text = format_pull_request(pr, loaded)
    if pr is None or not pr.url:
        return text
    return f"[link={pr.url}]{text}[/link]"


def format_path(path: str, repo_root: Optional[str] = None) -> str:
    """Show worktree paths relative to the repository's parent directory."""
    if not repo_root:
        return path
    parent = os.path.dirname(repo_root.rstrip("/"))
    try:
        return os.path.relpath(path, parent) if parent else path
    except ValueError:
        return path


def format_session(entry: BranchEntry) -> str:
    if entry.session is None:
        return ""
    marker = f" {SYMBOL_ATTACHED}" if entry.session.attached else ""
    return f"{entry.session.name}{marker}"


def entry_cells(entry: BranchEntry, pull_requests_loaded: bool = True) -> Dict[str, Cell]:
    """
    Build the display cells of one branch row, keyed by column.

    Args:
        entry: Derived branch entry
        pull_requests_loaded: Whether PR data has been fetched at least once

    Returns:
        Mapping of column key (see constants.COLUMNS) to (text, style)
    """
    branch = entry.branch + (f" {SYMBOL_STALE}" if entry.stale else "")

    activity_state = entry.session.activity if entry.session else ActivityState.UNKNOWN
    activity = format_activity(activity_state)
    if entry.session is not None and entry.session.output_tokens is not None:
        activity = f"{activity} {format_tokens(entry.session.output_tokens)}".strip()

    pr_style = PR_COLORS.get(entry.pull_request.state.value, "") if entry.pull_request else "dim"
    path = format_path(entry.worktree.path, entry.worktree.repo_root) if entry.worktree else ""

    return {
        "branch": (branch, "yellow" if entry.stale else ""),
        "state": (format_state(entry.state), STATE_COLORS.get(entry.state.value, "")),
        "activity": (activity, ACTIVITY_COLORS.get(activity_state.value, "")),
        "session": (format_session(entry), ""),
        "pr": (format_pull_request(entry.pull_request, pull_requests_loaded), pr_style),
        "path": (path, "dim"),
    }


def task_cells(task: Task, branch: str) -> Dict[str, Cell]:
    """Build the display cells of one task row, keyed by column."""
    return {
        "title": (task.title, "bold"),
        "branch": (branch, "cyan"),
        "created": (task.created.isoformat(), "dim"),
        "linear": (task.linear_id or "", "magenta"),
    }


def format_staleness(stale_resources: Iterable[ResourceClass]) -> str:
    """Status-bar text naming resource classes whose data is out of date."""
    names = [resource.value.replace("_", " ") for resource in stale_resources]
    if not names:
        return ""
    return f"{SYMBOL_STALE} stale: {', '.join(names)}"
