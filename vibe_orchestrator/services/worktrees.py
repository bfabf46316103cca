"""Worktree operations service for vibe-orchestrator."""

import git
import os
from threading import Lock
from typing import Optional, Dict, Any, List

from vibe_orchestrator.exceptions import (
    NonZeroExit,
    ToolMissing,
    VibeError,
    WorktreeNotFoundError,
)
from vibe_orchestrator.models.worktree import WorktreeInfo
from vibe_orchestrator.services.process import run_tool
from vibe_orchestrator.logging_config import get_logger

logger = get_logger(__name__)


def parse_porcelain(output: str) -> List[WorktreeInfo]:
    """Parse ``git worktree list --porcelain`` output.

    Format::

        worktree /path/to/worktree
        HEAD commit_sha
        branch refs/heads/branch-name
        (blank line between worktrees)

    The first entry is always the main worktree and gives the repository root.
    """
    entries: List[Dict[str, Any]] = []
    current: Dict[str, Any] = {}

    for line in output.split("\n"):
        line = line.strip()

        if not line:
            # Empty line marks end of worktree entry
            if current.get("path"):
                entries.append(current)
            current = {}
            continue

        if line.startswith("worktree "):
            current["path"] = line.split(" ", 1)[1]
        elif line.startswith("HEAD "):
            current["HEAD"] = line.split(" ", 1)[1]
        elif line.startswith("branch "):
            branch_ref = line.split(" ", 1)[1]
            if branch_ref.startswith("refs/heads/"):
                current["branch"] = branch_ref[len("refs/heads/"):]
            else:
                current["branch"] = ""
        elif line.startswith("detached"):
            current["branch"] = ""

    # Handle last entry if no trailing blank line
    if current.get("path"):
        entries.append(current)

    if not entries:
        return []

    repo_root = entries[0]["path"]
    worktrees = []
    seen_branches = set()
    for index, entry in enumerate(entries):
        branch = entry.get("branch", "")
        # At most one worktree per branch; git should never report two
        if branch and branch in seen_branches:
            logger.warning(f"[wt] Duplicate worktree for branch {branch} at {entry['path']}, ignoring")
            continue
        if branch:
            seen_branches.add(branch)
        worktrees.append(
            WorktreeInfo(
                branch=branch,
                path=entry["path"],
                repo_root=repo_root,
                exists=os.path.exists(entry["path"]),
                is_main=index == 0,
                commit_sha=entry.get("HEAD", ""),
            )
        )
    return worktrees


class WorktreeService:
    """Service for listing and mutating git worktrees.

    Reads go through GitPython; switch-or-create goes through the worktree
    manager (``wt``) so it can run a launch script inside the new worktree.
    """

    def __init__(self, repo_path: str, wt_bin: str = "wt", timeout: float = 10.0):
        """Initialize the worktree service.

        Args:
            repo_path: Path to the git repository
            wt_bin: Worktree manager executable
            timeout: Wall-clock timeout for non-interactive commands
        """
        self.repo_path = repo_path
        self.wt_bin = wt_bin
        self.timeout = timeout
        self._mutation_lock = Lock()  # Worktree creation/removal is serialized

    def _get_repo(self):
        """Get a fresh git.Repo instance.

        Creates a new repo instance for each call to ensure thread safety.

        Returns:
            git.Repo: A fresh repository instance
        """
        try:
            return git.Repo(self.repo_path, search_parent_directories=True)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
            raise NonZeroExit("git", "open-repository", 128, f"not a git repository: {e}") from e

    def _git_worktree(self, operation: str, *args) -> str:
        """Run ``git worktree <args>`` with the timeout and typed failures."""
        try:
            repo = self._get_repo()
            return repo.git.worktree(*args, kill_after_timeout=self.timeout)
        except git.exc.GitCommandNotFound as e:
            raise ToolMissing("git", operation, str(e)) from e
        except git.exc.GitCommandError as e:
            # Extract detailed error information from GitCommandError
            stderr = (e.stderr if isinstance(e.stderr, str) else str(e)).strip()
            status = e.status if isinstance(e.status, int) else None
            raise NonZeroExit("git", operation, status, stderr) from e

    def list_worktrees(self) -> List[WorktreeInfo]:
        """Get detailed information about all worktrees.

        Returns:
            List of WorktreeInfo objects, main worktree first
        """
        output = self._git_worktree("worktree-list", "list", "--porcelain")
        worktree_list = parse_porcelain(output)

        logger.debug(f"[wt] Found {len(worktree_list)} worktrees")
        for wt in worktree_list:
            logger.debug(f"  {wt}")
        return worktree_list

    def branch_exists(self, branch: str) -> bool:
        """Check whether a local branch exists."""
        repo = self._get_repo()
        return branch in {head.name for head in repo.heads}

    def switch_or_create(self, branch: str, execute: Optional[str] = None) -> None:
        """Switch to the branch's worktree, creating branch and worktree if needed.

        Args:
            branch: Branch name
            execute: Script the worktree manager runs inside the worktree. When
                given, the script takes over the terminal and there is no timeout.
        """
        with self._mutation_lock:
            args = [self.wt_bin, "switch"]
            if not self.branch_exists(branch):
                args.append("--create")
            args.extend([branch, "-y"])
            if execute:
                args.extend(["-x", execute])

            interactive = execute is not None
            run_tool(
                args,
                timeout=None if interactive else self.timeout,
                operation="switch",
                cwd=self.repo_path,
                interactive=interactive,
            )
            logger.info(f"[wt] Switched to worktree for {branch}")

    def remove_worktree(self, branch: str, force: bool = False) -> None:
        """Remove the worktree checked out on a branch.

        Args:
            branch: Branch whose worktree should be removed
            force: Force removal even if working tree is dirty or locked

        Raises:
            WorktreeNotFoundError: No worktree is checked out on the branch
        """
        with self._mutation_lock:
            worktree = next((wt for wt in self.list_worktrees() if wt.branch == branch), None)
            if worktree is None:
                raise WorktreeNotFoundError(branch)
            if worktree.is_main:
                raise VibeError(f"Refusing to remove the main worktree ({worktree.path})")

            args = ["remove", worktree.path]
            if force:
                args.append("--force")
            self._git_worktree("worktree-remove", *args)
            logger.info(f"[wt] Removed worktree at {worktree.path}")
