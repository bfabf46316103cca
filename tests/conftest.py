"""Pytest fixtures for vibe-orchestrator tests"""
import tempfile
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import git

from vibe_orchestrator.config import Config
from vibe_orchestrator.core.launcher import SessionLauncher
from vibe_orchestrator.core.loader import BackgroundLoader
from vibe_orchestrator.core.orchestrator import Orchestrator
from vibe_orchestrator.models.pull_request import PullRequestSummary
from vibe_orchestrator.models.session import SessionInfo
from vibe_orchestrator.models.task import Task
from vibe_orchestrator.models.worktree import WorktreeInfo


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir):
    """Create a configuration bound to temporary directories."""
    return Config(
        repo_path=str(temp_dir / "repo"),
        project_key="demo",
        vibe_home=str(temp_dir / "vibe"),
        script_dir=str(temp_dir / "scripts"),
        worktree_bin="wt",
        github_token="test_token_for_testing",
        workers=4,
    )


@pytest.fixture
def git_repo(temp_dir):
    """Create a real Git repository for testing."""
    repo_path = temp_dir / "test_repo"
    repo_path.mkdir()

    # Initialize repository
    repo = git.Repo.init(repo_path)

    # Configure git user for commits
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    # Create initial commit on main branch
    test_file = repo_path / "README.md"
    test_file.write_text("# Test Repository\n")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")

    # Rename master to main if needed
    repo.git.branch('-M', 'main')

    # Add a fake GitHub remote for testing
    repo.create_remote('origin', 'git@github.com:test/test-repo.git')

    yield repo

    # Cleanup
    repo.close()


def make_task(title: str = "Fix login bug!!", task_id: str = "task-1", body: str = "", **kwargs) -> Task:
    """Build a task without touching the filesystem."""
    return Task(
        id=task_id,
        title=title,
        body=body,
        created=kwargs.pop("created", date(2026, 1, 4)),
        project_key=kwargs.pop("project_key", "demo"),
        **kwargs,
    )


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMultiplexer:
    """In-memory stand-in for MultiplexerService."""

    def __init__(self):
        self.sessions: List[SessionInfo] = []
        self.error: Optional[Exception] = None
        self.calls = 0
        self.attached: List[tuple] = []
        self.killed: List[str] = []

    def list_sessions(self) -> List[SessionInfo]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.sessions)

    def attach(self, name: str, resurrect: bool = False) -> None:
        self.attached.append((name, resurrect))

    def kill(self, name: str, exited: bool = False) -> None:
        self.killed.append(name)
        self.sessions = [s for s in self.sessions if s.name != name]


class FakeWorktrees:
    """In-memory stand-in for WorktreeService; switch_or_create adds worktrees."""

    def __init__(self, repo_root: str = "/work/repo"):
        self.repo_root = repo_root
        self.worktrees: List[WorktreeInfo] = [
            WorktreeInfo(branch="main", path=repo_root, repo_root=repo_root, exists=True, is_main=True)
        ]
        self.error: Optional[Exception] = None
        self.calls = 0
        self.switches: List[tuple] = []
        self.created: List[str] = []
        self.removed: List[str] = []

    def add(self, branch: str, task_id: Optional[str] = None) -> WorktreeInfo:
        worktree = WorktreeInfo(
            branch=branch,
            path=f"{self.repo_root}.{branch}",
            repo_root=self.repo_root,
            exists=True,
            task_id=task_id,
        )
        self.worktrees.append(worktree)
        return worktree

    def list_worktrees(self) -> List[WorktreeInfo]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.worktrees)

    def switch_or_create(self, branch: str, execute: Optional[str] = None) -> None:
        self.switches.append((branch, execute))
        if not any(wt.branch == branch for wt in self.worktrees):
            self.created.append(branch)
            self.add(branch)

    def remove_worktree(self, branch: str, force: bool = False) -> None:
        self.removed.append(branch)
        self.worktrees = [wt for wt in self.worktrees if wt.branch != branch]


class FakeGitHub:
    """In-memory stand-in for GitHubService."""

    def __init__(self):
        self.pull_requests: Dict[str, PullRequestSummary] = {}
        self.error: Optional[Exception] = None
        self.calls = 0
        self.closed = False

    def list_pull_requests(self, branch_names: List[str]) -> Dict[str, PullRequestSummary]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {b: pr for b, pr in self.pull_requests.items() if b in branch_names}

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_multiplexer():
    return FakeMultiplexer()


@pytest.fixture
def fake_worktrees():
    return FakeWorktrees()


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def launcher(config):
    return SessionLauncher(config.script_dir, "claude --dangerously-skip-permissions")


@pytest.fixture
def orchestrator(config, fake_multiplexer, fake_worktrees, fake_github, launcher, clock):
    """Orchestrator wired to fakes, with a real background loader."""
    loader = BackgroundLoader(4, clock=clock)
    orch = Orchestrator(config, fake_multiplexer, fake_worktrees, fake_github, launcher, loader=loader, clock=clock)
    yield orch
    orch.close()


def settle(orch: Orchestrator, rounds: int = 3) -> None:
    """Tick until every scheduled poll (and the PR poll that follows worktrees) is merged."""
    for _ in range(rounds):
        orch.tick()
        assert orch.loader.wait_idle(5.0)
    orch.tick()
