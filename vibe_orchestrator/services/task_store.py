"""File-backed task storage.

Tasks live as markdown files under ``<base>/projects/<project>/tasks/``::

    ---
    id: 4f1c...
    linear_id: TEAM-12
    linear_url: https://linear.app/team/issue/TEAM-12
    linear_labels: bug, auth
    created: 2026-01-04
    ---

    # Fix login bug

    Free-text description.
"""

import os
import tempfile
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

import yaml

from vibe_orchestrator.exceptions import TaskNotFoundError, TaskParseError
from vibe_orchestrator.models.task import Task
from vibe_orchestrator.logging_config import get_logger

logger = get_logger(__name__)

FRONT_MATTER_DELIMITER = "---"
KNOWN_KEYS = ("id", "linear_id", "linear_url", "linear_labels", "created")


def _parse_created(value, path: Path) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise TaskParseError(str(path), f"invalid created date: {value!r}")


def parse_task(path: Path, content: str, project_key: str = "") -> Task:
    """Parse the content of one task file.

    Raises:
        TaskParseError: Missing or invalid front matter, or no ``id``
    """
    if not content.startswith(FRONT_MATTER_DELIMITER):
        raise TaskParseError(str(path), "missing front matter")

    parts = content.split(FRONT_MATTER_DELIMITER, 2)
    if len(parts) < 3:
        raise TaskParseError(str(path), "unterminated front matter")

    try:
        header = yaml.safe_load(parts[1]) or {}
    except yaml.YAMLError as e:
        raise TaskParseError(str(path), f"invalid YAML: {e}") from e
    if not isinstance(header, dict):
        raise TaskParseError(str(path), "front matter is not a mapping")

    task_id = header.get("id")
    if not task_id:
        raise TaskParseError(str(path), "missing id")

    lines = parts[2].strip().splitlines()
    title = path.stem
    for index, line in enumerate(lines):
        if line.startswith("#"):
            title = line.lstrip("#").strip()
            lines = lines[index + 1:]
            break

    def optional(key: str) -> Optional[str]:
        value = header.get(key)
        return str(value) if value else None

    return Task(
        id=str(task_id),
        title=title,
        body="\n".join(lines).strip(),
        created=_parse_created(header.get("created"), path),
        linear_id=optional("linear_id"),
        linear_url=optional("linear_url"),
        linear_labels=optional("linear_labels"),
        project_key=project_key,
        extra={k: v for k, v in header.items() if k not in KNOWN_KEYS},
    )


def render_task(task: Task) -> str:
    """Render a task as file content (header, title heading, body).

    Unrecognized header keys read from the file are written back after the
    known ones.
    """
    header = {"id": task.id}
    for key in ("linear_id", "linear_url", "linear_labels"):
        value = getattr(task, key)
        if value:
            header[key] = value
    header["created"] = task.created.isoformat()
    header.update((k, v) for k, v in task.extra.items() if k not in KNOWN_KEYS)

    front_matter = yaml.safe_dump(header, sort_keys=False, default_flow_style=False)
    content = f"{FRONT_MATTER_DELIMITER}\n{front_matter}{FRONT_MATTER_DELIMITER}\n\n# {task.title}\n"
    if task.body:
        content += f"\n{task.body.rstrip()}\n"
    return content


class TaskStore:
    """Repository of task files, one file per task named after its id.

    Writes replace the whole file and take no lock: two writers of the same
    task race and the last one wins.
    """

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir).expanduser()
        self.warnings: List[str] = []

    def tasks_dir(self, project_key: str) -> Path:
        return self.base_dir / "projects" / project_key / "tasks"

    def _task_path(self, task: Task) -> Path:
        """Path of the file holding the task, or ``<id>.md`` for a new one."""
        tasks_dir = self.tasks_dir(task.project_key)
        path = tasks_dir / f"{task.id}.md"
        if path.is_file():
            return path
        return self._scan(tasks_dir.glob("*.md"), task.id) or path

    @staticmethod
    def _scan(paths, task_id: str) -> Optional[Path]:
        """First file among paths whose front matter carries the id."""
        # Files created by hand may be named after their title
        for path in sorted(paths):
            try:
                if parse_task(path, path.read_text(encoding="utf-8")).id == task_id:
                    return path
            except (OSError, UnicodeDecodeError, TaskParseError):
                continue
        return None

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def list(self, project_key: str) -> List[Task]:
        """List a project's tasks, newest first.

        Malformed files are skipped; each skip is logged and recorded in
        ``warnings``.
        """
        tasks_dir = self.tasks_dir(project_key)
        if not tasks_dir.is_dir():
            return []

        tasks = []
        for path in sorted(tasks_dir.glob("*.md")):
            try:
                tasks.append(parse_task(path, path.read_text(encoding="utf-8"), project_key))
            except (OSError, UnicodeDecodeError, TaskParseError) as e:
                self._warn(f"Skipping task file {path}: {e}")

        tasks.sort(key=lambda t: t.created, reverse=True)
        logger.debug(f"Loaded {len(tasks)} tasks for project {project_key}")
        return tasks

    def _find(self, task_id: str) -> Tuple[Path, str]:
        """Locate a task file by id; returns (path, project_key)."""
        projects_dir = self.base_dir / "projects"
        if not projects_dir.is_dir():
            raise TaskNotFoundError(task_id)

        for project_dir in sorted(p for p in projects_dir.iterdir() if p.is_dir()):
            candidate = project_dir / "tasks" / f"{task_id}.md"
            if candidate.is_file():
                return candidate, project_dir.name

        path = self._scan(projects_dir.glob("*/tasks/*.md"), task_id)
        if path is not None:
            return path, path.parent.parent.name
        raise TaskNotFoundError(task_id)

    def read(self, task_id: str) -> Task:
        """Read one task by id.

        Raises:
            TaskNotFoundError: No file for the id
            TaskParseError: The file is malformed
        """
        path, project_key = self._find(task_id)
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise TaskParseError(str(path), str(e)) from e
        return parse_task(path, content, project_key)

    def write(self, task: Task) -> None:
        """Replace the task's file with the task's current content.

        A task read from a hand-named file is written back to that file.
        """
        if not task.project_key:
            raise ValueError("Task has no project_key")

        path = self._task_path(task)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{task.id}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(render_task(task))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote task {task.id} to {path}")

    def delete(self, task_id: str) -> None:
        """Remove a task's file.

        Raises:
            TaskNotFoundError: No file for the id
        """
        path, _ = self._find(task_id)
        path.unlink()
        logger.info(f"Deleted task {task_id}")

    def create(
        self,
        project_key: str,
        title: str,
        body: str = "",
        linear_id: Optional[str] = None,
    ) -> Task:
        """Create and persist a new task with a fresh id."""
        task = Task(
            id=str(uuid.uuid4()),
            title=title.strip(),
            body=body,
            created=date.today(),
            linear_id=linear_id,
            project_key=project_key,
        )
        self.write(task)
        return task
