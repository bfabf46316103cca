"""Agent activity classification from status-hook files."""

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from vibe_orchestrator.models.session import ActivityState
from vibe_orchestrator.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class AgentStatus:
    """Contents of one status file written by the agent's status hook."""
    working_dir: str
    timestamp: float
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    needs_input: bool = False


class ActivityProbe:
    """Classifies agent activity from the JSON files in the activity directory.

    Each file is written externally (one per worktree) and is only ever read
    here. A file is matched to a session by its ``working_dir``.
    """

    def __init__(
        self,
        activity_dir: Union[str, Path],
        fresh_seconds: float = 10.0,
        stale_seconds: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        self.activity_dir = Path(activity_dir)
        self.fresh_seconds = fresh_seconds
        self.stale_seconds = stale_seconds
        self._clock = clock

    def load_statuses(self) -> List[AgentStatus]:
        """Read every parseable status file. Unreadable files are skipped."""
        if not self.activity_dir.is_dir():
            return []

        statuses = []
        for path in sorted(self.activity_dir.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                statuses.append(
                    AgentStatus(
                        working_dir=str(data["working_dir"]),
                        timestamp=float(data["timestamp"]),
                        input_tokens=data.get("input_tokens"),
                        output_tokens=data.get("output_tokens"),
                        needs_input=bool(data.get("needs_input", False)),
                    )
                )
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.debug(f"Skipping unreadable status file {path}: {e}")
        return statuses

    @staticmethod
    def matches(session_name: str, working_dir: str) -> bool:
        """Check whether a status file's working_dir belongs to a session."""
        normalized_session = session_name.lower()
        normalized_dir = working_dir.rstrip("/").lower()
        if not normalized_session:
            return False

        last_component = normalized_dir.rsplit("/", 1)[-1]
        if last_component == normalized_session:
            return True
        return normalized_session in normalized_dir

    def classify(self, status: Optional[AgentStatus]) -> ActivityState:
        """Classify a status record (None = no file for this session)."""
        if status is None:
            return ActivityState.UNKNOWN

        age = self._clock() - status.timestamp
        if age > self.stale_seconds:
            return ActivityState.UNKNOWN
        if status.needs_input:
            return ActivityState.WAITING
        if age <= self.fresh_seconds:
            return ActivityState.THINKING
        return ActivityState.IDLE

    def find_status(self, session_name: str, statuses: List[AgentStatus]) -> Optional[AgentStatus]:
        """Return the newest status file matching a session.

        Exact directory-name matches win over substring matches, so session
        ``fix`` does not pick up the file of ``fix-login-bug``.
        """
        exact = [
            s for s in statuses
            if s.working_dir.rstrip("/").rsplit("/", 1)[-1].lower() == session_name.lower()
        ]
        matching = exact or [s for s in statuses if self.matches(session_name, s.working_dir)]
        if not matching:
            return None
        return max(matching, key=lambda s: s.timestamp)
