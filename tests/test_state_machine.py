"""Tests for the session state machine"""
import pytest

from vibe_orchestrator.core import state_machine as sm
from vibe_orchestrator.models.pull_request import PullRequestState, PullRequestSummary
from vibe_orchestrator.models.resource import ResourceClass
from vibe_orchestrator.models.session import SessionInfo, SessionState
from vibe_orchestrator.models.worktree import WorktreeInfo

MAIN = WorktreeInfo(branch="main", path="/work/repo", repo_root="/work/repo", exists=True, is_main=True)
FEATURE = WorktreeInfo(branch="feature/login", path="/work/repo.feature-login", repo_root="/work/repo", exists=True)
DETACHED = WorktreeInfo(branch="", path="/work/repo.detached", repo_root="/work/repo", exists=True)


def session(name="feature-login", exited=False, attached=False):
    return SessionInfo(name=name, attached=attached, exited=exited)


def states(snapshot):
    return {entry.branch: entry.state for entry in sm.entries(snapshot)}


class TestClassify:
    """Test classification of one worktree/session pairing."""

    def test_absent(self):
        assert sm.classify(None, None) is SessionState.ABSENT

    def test_worktree_only(self):
        assert sm.classify(FEATURE, None) is SessionState.WORKTREE_ONLY

    def test_launching_without_worktree(self):
        assert sm.classify(None, None, launching=True) is SessionState.LAUNCHING

    def test_launching_with_worktree(self):
        assert sm.classify(FEATURE, None, launching=True) is SessionState.LAUNCHING

    def test_running(self):
        assert sm.classify(FEATURE, session()) is SessionState.RUNNING

    def test_attached(self):
        assert sm.classify(FEATURE, session(), foreground=True) is SessionState.ATTACHED

    @pytest.mark.parametrize("launching,foreground", [(False, False), (True, False), (False, True), (True, True)])
    def test_exited_always_wins(self, launching, foreground):
        result = sm.classify(FEATURE, session(exited=True), launching=launching, foreground=foreground)
        assert result is SessionState.EXITED


class TestMerge:
    """Test merging the independent listings."""

    def test_merge_is_commutative(self):
        base = sm.mark_launching(sm.OrchestratorSnapshot(), "feature/login")
        worktrees = [MAIN, FEATURE]
        sessions = [session()]

        a = sm.apply_sessions(sm.apply_worktrees(base, worktrees, 1, 10.0), sessions, 2, 11.0)
        b = sm.apply_worktrees(sm.apply_sessions(base, sessions, 2, 11.0), worktrees, 1, 10.0)

        assert sm.entries(a) == sm.entries(b)
        assert states(a) == {"main": SessionState.WORKTREE_ONLY, "feature/login": SessionState.RUNNING}

    def test_merge_is_commutative_for_exited(self):
        worktrees = [FEATURE]
        sessions = [session(exited=True)]
        base = sm.OrchestratorSnapshot()

        a = sm.apply_sessions(sm.apply_worktrees(base, worktrees, 1, 1.0), sessions, 2, 1.0)
        b = sm.apply_worktrees(sm.apply_sessions(base, sessions, 2, 1.0), worktrees, 1, 1.0)

        assert states(a) == states(b) == {"feature/login": SessionState.EXITED}

    def test_each_merge_returns_new_version(self):
        snapshot = sm.OrchestratorSnapshot()
        merged = sm.apply_worktrees(snapshot, [MAIN], 1, 1.0)

        assert merged.version == snapshot.version + 1
        assert snapshot.worktrees is None

    def test_worktree_without_session_flickers_to_worktree_only(self):
        snapshot = sm.apply_worktrees(sm.OrchestratorSnapshot(), [FEATURE], 1, 1.0)
        assert states(snapshot) == {"feature/login": SessionState.WORKTREE_ONLY}

        snapshot = sm.apply_sessions(snapshot, [session()], 2, 2.0)
        assert states(snapshot) == {"feature/login": SessionState.RUNNING}

    def test_sessions_clear_launching(self):
        snapshot = sm.mark_launching(sm.OrchestratorSnapshot(), "feature/login")
        assert states(snapshot) == {"feature/login": SessionState.LAUNCHING}

        snapshot = sm.apply_sessions(snapshot, [session()], 1, 1.0)
        assert snapshot.launching == frozenset()

    def test_detached_worktrees_are_not_entries(self):
        snapshot = sm.apply_worktrees(sm.OrchestratorSnapshot(), [MAIN, DETACHED], 1, 1.0)
        assert [entry.branch for entry in sm.entries(snapshot)] == ["main"]

    def test_sessions_of_other_repositories_are_not_entries(self):
        snapshot = sm.apply_worktrees(sm.OrchestratorSnapshot(), [MAIN], 1, 1.0)
        snapshot = sm.apply_sessions(snapshot, [session("somewhere-else")], 2, 1.0)
        assert [entry.branch for entry in sm.entries(snapshot)] == ["main"]

    def test_foreground(self):
        snapshot = sm.apply_worktrees(sm.OrchestratorSnapshot(), [FEATURE], 1, 1.0)
        snapshot = sm.apply_sessions(snapshot, [session()], 2, 1.0)
        snapshot = sm.set_foreground(snapshot, "feature/login")
        assert states(snapshot) == {"feature/login": SessionState.ATTACHED}

        snapshot = sm.set_foreground(snapshot, None)
        assert states(snapshot) == {"feature/login": SessionState.RUNNING}

    def test_pull_requests_attach_to_entries(self):
        pr = PullRequestSummary("test/repo", 7, "feature/login", PullRequestState.OPEN)
        snapshot = sm.apply_worktrees(sm.OrchestratorSnapshot(), [FEATURE], 1, 1.0)
        assert sm.entries(snapshot)[0].pull_request is None

        snapshot = sm.apply_pull_requests(snapshot, {"feature/login": pr}, 2, 1.0)
        assert sm.entries(snapshot)[0].pull_request == pr


class TestFailures:
    """Test failure bookkeeping and staleness."""

    def test_failure_keeps_previous_data(self):
        snapshot = sm.apply_sessions(sm.OrchestratorSnapshot(), [session()], 1, 1.0)
        snapshot = sm.apply_failure(snapshot, ResourceClass.SESSIONS, "bad output", 2, 2.0)

        assert snapshot.sessions == (session(),)
        assert snapshot.axis(ResourceClass.SESSIONS).last_error == "bad output"
        assert snapshot.axis(ResourceClass.SESSIONS).failing

    def test_failure_marks_entries_stale(self):
        snapshot = sm.apply_worktrees(sm.OrchestratorSnapshot(), [FEATURE], 1, 1.0)
        snapshot = sm.apply_failure(snapshot, ResourceClass.WORKTREES, "git failed", 2, 2.0)
        assert sm.entries(snapshot)[0].stale

        snapshot = sm.apply_worktrees(snapshot, [FEATURE], 3, 3.0)
        assert not sm.entries(snapshot)[0].stale

    def test_pull_request_failure_does_not_mark_entries_stale(self):
        snapshot = sm.apply_worktrees(sm.OrchestratorSnapshot(), [FEATURE], 1, 1.0)
        snapshot = sm.apply_failure(snapshot, ResourceClass.PULL_REQUESTS, "rate limited", 2, 2.0)
        assert not sm.entries(snapshot)[0].stale

    def test_accepts_only_newer_generations(self):
        snapshot = sm.apply_sessions(sm.OrchestratorSnapshot(), [], 5, 1.0)
        assert not sm.accepts(snapshot, ResourceClass.SESSIONS, 4)
        assert not sm.accepts(snapshot, ResourceClass.SESSIONS, 5)
        assert sm.accepts(snapshot, ResourceClass.SESSIONS, 6)
        assert sm.accepts(snapshot, ResourceClass.WORKTREES, 1)

    def test_is_stale(self):
        snapshot = sm.OrchestratorSnapshot()
        assert sm.is_stale(snapshot, ResourceClass.SESSIONS, now=0.0, threshold=30.0)

        snapshot = sm.apply_sessions(snapshot, [], 1, 100.0)
        assert not sm.is_stale(snapshot, ResourceClass.SESSIONS, now=120.0, threshold=30.0)
        assert sm.is_stale(snapshot, ResourceClass.SESSIONS, now=131.0, threshold=30.0)
