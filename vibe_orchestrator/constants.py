"""Shared constants for vibe-orchestrator."""

from dataclasses import dataclass
from typing import List


@dataclass
class ColumnDefinition:
    """Definition of a table column."""

    key: str
    label: str
    width: int = 0  # 0 means auto-width


# Unified column definitions for both CLI and TUI
COLUMNS: List[ColumnDefinition] = [
    ColumnDefinition("branch", "Branch", 36),
    ColumnDefinition("state", "State", 14),
    ColumnDefinition("activity", "Agent", 10),
    ColumnDefinition("session", "Session", 24),
    ColumnDefinition("pr", "PR", 18),
    ColumnDefinition("path", "Worktree", 40),
]

TASK_COLUMNS: List[ColumnDefinition] = [
    ColumnDefinition("title", "Task", 50),
    ColumnDefinition("branch", "Branch", 36),
    ColumnDefinition("created", "Created", 12),
    ColumnDefinition("linear", "Linear", 12),
]


# Session names longer than this hang zellij when started via wt -x
SESSION_NAME_MAX_LENGTH = 36

# Marker written by the launch script when the agent process exits
EXITED_SENTINEL = "EXITED"

# Fallback slug when a title has no usable characters
DEFAULT_SLUG = "task"


# Symbol constants
SYMBOL_STALE = "⚠"
SYMBOL_NO_DATA = "-"
SYMBOL_ATTACHED = "●"


# Display names for session states
STATE_DISPLAY = {
    "absent": "absent",
    "worktree_only": "no session",
    "launching": "launching…",
    "running": "running",
    "exited": "exited",
    "attached": "attached",
}

# Display names for agent activity
ACTIVITY_DISPLAY = {
    "thinking": "thinking",
    "waiting": "waiting",
    "idle": "idle",
    "unknown": "",
}


# Color constants for session states (Rich/Textual color names)
STATE_COLORS = {
    "absent": "dim",
    "worktree_only": "white",
    "launching": "cyan",
    "running": "green",
    "exited": "red",
    "attached": "bold green",
}

ACTIVITY_COLORS = {
    "thinking": "yellow",
    "waiting": "magenta",
    "idle": "dim",
    "unknown": "dim",
}

PR_COLORS = {
    "open": "green",
    "merged": "magenta",
    "closed": "red",
}


# Legend text for CLI summary
LEGEND_TEXT = """
Legend:
running    = agent session alive      exited  = agent process ended
no session = worktree without session launching = launch issued
● = attached session                  ⚠ = data is stale (last poll failed)

Agent:
thinking = status file updated recently
waiting  = agent asked for input
idle     = no recent activity
"""
