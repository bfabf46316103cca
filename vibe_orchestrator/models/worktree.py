"""Worktree data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class WorktreeInfo:
    """Information about a git worktree."""

    branch: str  # Empty for detached HEAD
    path: str
    repo_root: str
    exists: bool  # Directory present on disk?
    is_main: bool = False  # Is this the main working tree?
    commit_sha: str = ""
    task_id: Optional[str] = None  # Owning task, when created by the launcher

    def __str__(self) -> str:
        """String representation of worktree."""
        status = "active" if self.exists else "missing"
        main_marker = " (main)" if self.is_main else ""
        return f"{self.branch or '(detached)'} @ {self.path}{main_marker} [{status}]"
