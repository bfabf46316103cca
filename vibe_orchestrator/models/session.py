"""Session model and related enums"""
from enum import Enum
from dataclasses import dataclass
from typing import Optional


class SessionState(Enum):
    """Lifecycle state of a worktree/session pairing."""
    ABSENT = "absent"
    WORKTREE_ONLY = "worktree_only"
    LAUNCHING = "launching"
    RUNNING = "running"
    EXITED = "exited"
    ATTACHED = "attached"


class ActivityState(Enum):
    """What the agent inside a session appears to be doing."""
    THINKING = "thinking"
    WAITING = "waiting"  # Asked for input
    IDLE = "idle"
    UNKNOWN = "unknown"  # Missing or stale status file


@dataclass(frozen=True)
class SessionInfo:
    """A multiplexer session as observed by the last poll."""
    name: str
    attached: bool  # Some client is attached (zellij "current")
    exited: bool  # Session kept alive after its process ended
    activity: ActivityState = ActivityState.UNKNOWN
    seen_at: float = 0.0  # time.time() of the poll that observed it
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
