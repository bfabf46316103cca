"""Session launcher: task -> branch name -> launch script.

The launcher only writes files. Running the script is the worktree
manager's job (``wt switch -x``), which makes sure the worktree exists
before the script starts inside it.
"""

import re
import shlex
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Union

from vibe_orchestrator.constants import DEFAULT_SLUG, EXITED_SENTINEL, SESSION_NAME_MAX_LENGTH
from vibe_orchestrator.models.task import Task
from vibe_orchestrator.models.worktree import WorktreeInfo
from vibe_orchestrator.services.multiplexer import sentinel_path_for, session_name_for_branch
from vibe_orchestrator.logging_config import get_logger

logger = get_logger(__name__)

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")

PLAN_MODE_FLAGS = "--permission-mode plan"
RESUME_FLAG = "--continue"


def slugify(title: str, max_length: int = SESSION_NAME_MAX_LENGTH) -> str:
    """Turn a task title into a branch-safe slug.

    Lower-cases, collapses runs of other characters into one ``-``, trims
    hyphens at both ends and truncates. Re-slugifying a slug returns it
    unchanged.
    """
    slug = _NON_ALPHANUMERIC.sub("-", title.lower()).strip("-")
    slug = slug[:max_length].rstrip("-")
    return slug or DEFAULT_SLUG


@dataclass(frozen=True)
class LaunchPlan:
    """Everything needed to hand a launch off to the worktree manager."""
    task_id: str
    branch: str
    session_name: str
    script_path: Path
    context_path: Path
    sentinel_path: Path
    plan_mode: bool = False
    create_worktree: bool = True


LAUNCH_SCRIPT_TEMPLATE = """#!/usr/bin/env bash
# Launch script for session {session_name} (task {task_id})
SESSION={session}
SENTINEL={sentinel}
CONTEXT_FILE={context}
SCRIPT={script}
ZELLIJ={zellij}

if [ "${{VIBE_LAUNCH_AGENT:-}}" = "1" ]; then
  # Running as the session's shell: run the agent, then leave the sentinel
  rm -f "$SENTINEL"
  if [ "${{VIBE_LAUNCH_RESUME:-}}" = "1" ]; then
    {agent_command} {resume_flag}{plan_flags}
  else
    {agent_command}{plan_flags} "$(cat "$CONTEXT_FILE")"
  fi
  code=$?
  printf '{exited} %s\\n' "$code" > "$SENTINEL"
  exit "$code"
fi

SESSION_LINE=$("$ZELLIJ" list-sessions --no-formatting 2>/dev/null | sed 's/\\x1b\\[[0-9;]*m//g' | grep -E "^$SESSION( |$)")
if [ -n "$SESSION_LINE" ]; then
  if [ -f "$SENTINEL" ] || printf '%s' "$SESSION_LINE" | grep -q "{exited}"; then
    "$ZELLIJ" delete-session --force "$SESSION" >/dev/null 2>&1
    VIBE_LAUNCH_AGENT=1 VIBE_LAUNCH_RESUME=1 SHELL="$SCRIPT" exec "$ZELLIJ" -s "$SESSION"
  fi
  exec "$ZELLIJ" attach "$SESSION"
fi

if [ -f "$SENTINEL" ]; then
  VIBE_LAUNCH_AGENT=1 VIBE_LAUNCH_RESUME=1 SHELL="$SCRIPT" exec "$ZELLIJ" -s "$SESSION"
fi
VIBE_LAUNCH_AGENT=1 SHELL="$SCRIPT" exec "$ZELLIJ" -s "$SESSION"
"""


class SessionLauncher:
    """Derives branch names for tasks and materializes launch scripts."""

    def __init__(
        self,
        script_dir: Union[str, Path],
        agent_command: str,
        zellij_bin: str = "zellij",
        max_length: int = SESSION_NAME_MAX_LENGTH,
    ):
        self.script_dir = Path(script_dir).expanduser()
        self.agent_command = agent_command
        self.zellij_bin = zellij_bin
        self.max_length = min(max_length, SESSION_NAME_MAX_LENGTH)

    def script_path_for(self, session_name: str) -> Path:
        return self.script_dir / f"{session_name}-launch.sh"

    def context_path_for(self, session_name: str) -> Path:
        return self.script_dir / f"{session_name}-context.txt"

    def owner_path_for(self, session_name: str) -> Path:
        return self.script_dir / f"{session_name}.task"

    def owner_of(self, session_name: str) -> Optional[str]:
        """Task id recorded for a session, if the launcher created it."""
        try:
            return self.owner_path_for(session_name).read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    def annotate_owners(self, worktrees: Iterable[WorktreeInfo]) -> List[WorktreeInfo]:
        """Fill ``task_id`` on worktrees from ownership markers."""
        annotated = []
        for worktree in worktrees:
            owner = self.owner_of(session_name_for_branch(worktree.branch)) if worktree.branch else None
            annotated.append(replace(worktree, task_id=owner) if owner else worktree)
        return annotated

    def derive_branch(
        self,
        task: Task,
        worktrees: Iterable[WorktreeInfo] = (),
        pending_owners: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Branch name for a task.

        The slug of the title, with ``-2``, ``-3``, ... appended while the
        candidate is taken by a worktree (or an in-flight launch) that belongs
        to a different task. A worktree with no recorded owner counts as
        this task's. A candidate is also taken when another branch maps to
        the same session name.
        """
        owners = {wt.branch: wt.task_id for wt in worktrees if wt.branch}
        pending = pending_owners or {}
        sessions = {session_name_for_branch(branch) for branch in (*owners, *pending)}

        def taken_by_other(candidate: str) -> bool:
            for owner in (owners.get(candidate), pending.get(candidate)):
                if owner is not None and owner != task.id:
                    return True
            if candidate in owners or candidate in pending:
                return False
            return session_name_for_branch(candidate) in sessions

        base = slugify(task.title, self.max_length)
        candidate = base
        suffix = 2
        while taken_by_other(candidate):
            tail = f"-{suffix}"
            candidate = f"{base[:self.max_length - len(tail)].rstrip('-')}{tail}"
            suffix += 1
        return candidate

    def render_script(self, plan: LaunchPlan) -> str:
        return LAUNCH_SCRIPT_TEMPLATE.format(
            session_name=plan.session_name,
            task_id=plan.task_id,
            session=shlex.quote(plan.session_name),
            sentinel=shlex.quote(str(plan.sentinel_path)),
            context=shlex.quote(str(plan.context_path)),
            script=shlex.quote(str(plan.script_path)),
            zellij=shlex.quote(self.zellij_bin),
            agent_command=self.agent_command,
            resume_flag=RESUME_FLAG,
            plan_flags=f" {PLAN_MODE_FLAGS}" if plan.plan_mode else "",
            exited=EXITED_SENTINEL,
        )

    def launch(
        self,
        task: Task,
        worktrees: Iterable[WorktreeInfo] = (),
        plan_mode: bool = False,
        pending_owners: Optional[Mapping[str, str]] = None,
    ) -> LaunchPlan:
        """Write the context file, ownership marker and launch script for a task.

        The script is not executed here.
        """
        worktrees = list(worktrees)
        branch = self.derive_branch(task, worktrees, pending_owners)
        session_name = session_name_for_branch(branch)

        plan = LaunchPlan(
            task_id=task.id,
            branch=branch,
            session_name=session_name,
            script_path=self.script_path_for(session_name),
            context_path=self.context_path_for(session_name),
            sentinel_path=sentinel_path_for(self.script_dir, session_name),
            plan_mode=plan_mode,
            create_worktree=not any(wt.branch == branch for wt in worktrees),
        )

        self.script_dir.mkdir(parents=True, exist_ok=True)
        plan.context_path.write_text(task.context, encoding="utf-8")
        self.owner_path_for(session_name).write_text(f"{task.id}\n", encoding="utf-8")
        plan.script_path.write_text(self.render_script(plan), encoding="utf-8")
        plan.script_path.chmod(0o755)

        logger.info(f"Prepared launch of {branch} for task {task.id}{' (plan mode)' if plan_mode else ''}")
        return plan

    def forget(self, session_name: str) -> None:
        """Remove every file written for a session."""
        for path in (
            self.script_path_for(session_name),
            self.context_path_for(session_name),
            self.owner_path_for(session_name),
            sentinel_path_for(self.script_dir, session_name),
        ):
            path.unlink(missing_ok=True)
