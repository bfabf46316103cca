"""Tests for the session launcher"""
import os

import pytest

from vibe_orchestrator.core.launcher import SessionLauncher, slugify
from vibe_orchestrator.models.worktree import WorktreeInfo

from conftest import make_task


def worktree(branch, task_id=None):
    return WorktreeInfo(branch=branch, path=f"/work/repo.{branch}", repo_root="/work/repo", exists=True, task_id=task_id)


class TestSlugify:
    """Test branch-name derivation from titles."""

    @pytest.mark.parametrize("title,expected", [
        ("Fix login bug!!", "fix-login-bug"),
        ("Hello World", "hello-world"),
        ("Add feature: user auth", "add-feature-user-auth"),
        ("  Spaces  everywhere  ", "spaces-everywhere"),
        ("feature/Sub_Task", "feature-sub-task"),
        ("!!!", "task"),
        ("", "task"),
    ])
    def test_slugify(self, title, expected):
        assert slugify(title) == expected

    def test_deterministic(self):
        assert slugify("Refactor the parser") == slugify("Refactor the parser")

    @pytest.mark.parametrize("title", [
        "Fix login bug!!",
        "A very long task title that keeps going well past the maximum length",
        "x--y",
        "!!!",
    ])
    def test_idempotent(self, title):
        slug = slugify(title)
        assert slugify(slug) == slug

    def test_truncates_without_trailing_hyphen(self):
        slug = slugify("abcdefghij klmnopqrst uvwxyz0123 4567890", max_length=21)
        assert len(slug) <= 21
        assert not slug.endswith("-")
        assert slug == "abcdefghij-klmnopqrst"


class TestDeriveBranch:
    """Test collision handling."""

    def test_no_worktrees(self, launcher):
        assert launcher.derive_branch(make_task()) == "fix-login-bug"

    def test_same_task_reuses_branch(self, launcher):
        task = make_task()
        assert launcher.derive_branch(task, [worktree("fix-login-bug", task.id)]) == "fix-login-bug"

    def test_unowned_worktree_is_reused(self, launcher):
        assert launcher.derive_branch(make_task(), [worktree("fix-login-bug")]) == "fix-login-bug"

    def test_different_task_gets_suffix(self, launcher):
        task = make_task(task_id="task-2")
        assert launcher.derive_branch(task, [worktree("fix-login-bug", "task-1")]) == "fix-login-bug-2"

    def test_suffix_increments(self, launcher):
        task = make_task(task_id="task-3")
        worktrees = [worktree("fix-login-bug", "task-1"), worktree("fix-login-bug-2", "task-2")]
        assert launcher.derive_branch(task, worktrees) == "fix-login-bug-3"

    def test_pending_launch_of_other_task_counts(self, launcher):
        task = make_task(task_id="task-2")
        assert launcher.derive_branch(task, [], {"fix-login-bug": "task-1"}) == "fix-login-bug-2"

    def test_suffix_respects_max_length(self, config):
        launcher = SessionLauncher(config.script_dir, "claude", max_length=12)
        task = make_task("abcdefghijkl", task_id="task-2")
        branch = launcher.derive_branch(task, [worktree("abcdefghijkl", "task-1")])
        assert branch == "abcdefghij-2"
        assert len(branch) <= 12

    def test_max_length_is_capped_at_session_name_length(self, config):
        launcher = SessionLauncher(config.script_dir, "claude", max_length=80)
        first = launcher.launch(make_task("Implement the new authentication flow for admin users", task_id="task-1"))
        second = launcher.launch(
            make_task("Implement the new authentication flow for normal users", task_id="task-2"),
            pending_owners={first.branch: "task-1"},
        )

        assert first.session_name == first.branch
        assert second.session_name == second.branch
        assert first.session_name != second.session_name
        assert launcher.owner_of(first.session_name) == "task-1"

    def test_branch_sharing_a_session_name_counts(self, launcher):
        task = make_task("Feature login", task_id="task-2")
        assert launcher.derive_branch(task, [worktree("feature/login")]) == "feature-login-2"

    def test_long_existing_branch_sharing_a_session_name_counts(self, launcher):
        existing = worktree("implement-the-new-authentication-flow-for-admin-users", "task-1")
        task = make_task("Implement the new authentication flow for normal users", task_id="task-2")

        branch = launcher.derive_branch(task, [existing])

        assert branch == "implement-the-new-authentication-f-2"


class TestLaunch:
    """Test launch plan materialization."""

    def test_writes_files(self, launcher):
        task = make_task(body="Users cannot log in after reset.")
        plan = launcher.launch(task)

        assert plan.branch == "fix-login-bug"
        assert plan.session_name == "fix-login-bug"
        assert plan.create_worktree is True
        assert plan.script_path.exists()
        assert os.access(plan.script_path, os.X_OK)
        assert plan.context_path.read_text() == (
            "Task: Fix login bug!!\n\nDescription:\nUsers cannot log in after reset."
        )
        assert launcher.owner_of("fix-login-bug") == task.id

    def test_existing_worktree_is_not_recreated(self, launcher):
        task = make_task()
        plan = launcher.launch(task, [worktree("fix-login-bug", task.id)])
        assert plan.create_worktree is False

    def test_script_contents(self, launcher):
        plan = launcher.launch(make_task())
        script = plan.script_path.read_text()

        assert script.startswith("#!/usr/bin/env bash")
        assert 'exec "$ZELLIJ" attach "$SESSION"' in script
        assert "delete-session --force" in script
        assert "printf 'EXITED %s\\n'" in script
        assert "claude --dangerously-skip-permissions --continue" in script
        assert "--permission-mode plan" not in script
        assert str(plan.sentinel_path) in script

    def test_plan_mode_flag(self, launcher):
        plan = launcher.launch(make_task(), plan_mode=True)
        script = plan.script_path.read_text()

        assert plan.plan_mode is True
        assert "--permission-mode plan" in script

    def test_launcher_does_not_run_script(self, launcher):
        plan = launcher.launch(make_task())
        assert not plan.sentinel_path.exists()

    def test_annotate_owners(self, launcher):
        task = make_task()
        launcher.launch(task)
        annotated = launcher.annotate_owners([worktree("fix-login-bug"), worktree("other"), worktree("")])

        assert annotated[0].task_id == task.id
        assert annotated[1].task_id is None
        assert annotated[2].task_id is None

    def test_forget_removes_files(self, launcher):
        plan = launcher.launch(make_task())
        plan.sentinel_path.write_text("EXITED 0\n")

        launcher.forget(plan.session_name)

        assert not plan.script_path.exists()
        assert not plan.context_path.exists()
        assert not plan.sentinel_path.exists()
        assert launcher.owner_of(plan.session_name) is None
