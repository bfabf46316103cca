"""Zellij multiplexer adapter."""

import re
import time
from pathlib import Path
from typing import List, Optional, Union

from vibe_orchestrator.constants import EXITED_SENTINEL, SESSION_NAME_MAX_LENGTH
from vibe_orchestrator.exceptions import NonZeroExit, ParseError, ToolMissing
from vibe_orchestrator.models.session import ActivityState, SessionInfo
from vibe_orchestrator.services.activity import ActivityProbe
from vibe_orchestrator.services.process import run_tool
from vibe_orchestrator.logging_config import get_logger

logger = get_logger(__name__)

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")
_INVALID_SESSION_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def session_name_for_branch(branch: str) -> str:
    """Convert a branch name to a valid zellij session name.

    Slashes and other special characters become dashes. Names are truncated
    because long session names make zellij hang when started via ``wt -x``.
    """
    sanitized = _INVALID_SESSION_CHARS.sub("-", branch).strip("-")
    if len(sanitized) > SESSION_NAME_MAX_LENGTH:
        sanitized = sanitized[:SESSION_NAME_MAX_LENGTH].rstrip("-")
    return sanitized


def sentinel_path_for(script_dir: Union[str, Path], session_name: str) -> Path:
    """Path of the file the launch script writes when the agent exits."""
    return Path(script_dir) / f"{session_name}.exited"


def read_sentinel(path: Path) -> bool:
    """Check whether a sentinel file reports an exited agent."""
    try:
        return path.read_text(encoding="utf-8").startswith(EXITED_SENTINEL)
    except OSError:
        return False


class MultiplexerService:
    """Service for listing, attaching to and killing zellij sessions."""

    def __init__(
        self,
        script_dir: Union[str, Path],
        probe: Optional[ActivityProbe] = None,
        zellij_bin: str = "zellij",
        timeout: float = 10.0,
    ):
        """Initialize the multiplexer service.

        Args:
            script_dir: Directory where launch scripts write sentinel files
            probe: Activity probe used to annotate sessions (optional)
            zellij_bin: zellij executable
            timeout: Wall-clock timeout for non-interactive commands
        """
        self.script_dir = Path(script_dir)
        self.probe = probe
        self.zellij_bin = zellij_bin
        self.timeout = timeout

    def list_sessions(self) -> List[SessionInfo]:
        """List sessions with exit and activity status.

        Returns:
            List of SessionInfo, empty when zellij has no sessions

        Raises:
            ToolMissing: zellij is not installed
            NonZeroExit: zellij failed for another reason
            ParseError: a line of output had no session name
        """
        try:
            result = run_tool(
                [self.zellij_bin, "list-sessions", "--no-formatting"],
                timeout=self.timeout,
                operation="list-sessions",
            )
            output = result.stdout
        except NonZeroExit as e:
            # zellij exits non-zero when no sessions exist
            if "No active" in e.stderr or not e.stderr:
                return []
            raise

        seen_at = time.time()
        statuses = self.probe.load_statuses() if self.probe else []
        sessions = []
        for line in _ANSI_ESCAPE.sub("", output).splitlines():
            if not line.strip():
                continue
            sessions.append(self._parse_line(line, seen_at, statuses))

        logger.debug(f"[zellij] Found {len(sessions)} sessions")
        return sessions

    def _parse_line(self, line: str, seen_at: float, statuses) -> SessionInfo:
        """Parse one list-sessions line.

        Format: ``name [Created 3m 5s ago] (current)`` or, for dead
        sessions, ``name [Created ...] (EXITED - attach to resurrect)``.
        """
        name = line.split("[", 1)[0].strip()
        if not name or " " in name:
            raise ParseError("zellij", "list-sessions", f"unexpected line: {line!r}")

        metadata = line[len(name):]
        exited = EXITED_SENTINEL in metadata or read_sentinel(sentinel_path_for(self.script_dir, name))

        activity = ActivityState.UNKNOWN
        input_tokens = output_tokens = None
        if self.probe is not None:
            status = self.probe.find_status(name, statuses)
            activity = self.probe.classify(status)
            if status is not None:
                input_tokens, output_tokens = status.input_tokens, status.output_tokens

        return SessionInfo(
            name=name,
            attached="(current)" in metadata,
            exited=exited,
            activity=activity,
            seen_at=seen_at,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    def attach(self, name: str, resurrect: bool = False) -> None:
        """Attach to a session in the current terminal (blocks until detach).

        Args:
            name: Session name
            resurrect: Force resurrection of a dead session
        """
        args = [self.zellij_bin, "attach"]
        if resurrect:
            args.append("-f")
        args.append(name)
        run_tool(args, timeout=None, operation="attach", interactive=True)

    def kill(self, name: str, exited: bool = False) -> None:
        """Kill a session and forget its exit sentinel.

        Args:
            name: Session name
            exited: The session is already dead; delete it instead of killing
        """
        if exited:
            run_tool(
                [self.zellij_bin, "delete-session", "--force", name],
                timeout=self.timeout,
                operation="delete-session",
            )
        else:
            run_tool([self.zellij_bin, "kill-session", name], timeout=self.timeout, operation="kill-session")
        sentinel_path_for(self.script_dir, name).unlink(missing_ok=True)
        logger.info(f"[zellij] Removed session {name}")

    def is_installed(self) -> bool:
        """Check whether zellij can be executed."""
        try:
            run_tool([self.zellij_bin, "--version"], timeout=self.timeout, operation="version")
            return True
        except (ToolMissing, NonZeroExit):
            return False
