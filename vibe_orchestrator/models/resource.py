"""Resource classes polled by the background loader"""
from enum import Enum


class ResourceClass(Enum):
    """Independent result channels; each is coalesced and merged on its own."""
    SESSIONS = "sessions"
    WORKTREES = "worktrees"
    PULL_REQUESTS = "pull_requests"
    ACTIONS = "actions"  # Outcomes of user-initiated commands


# Classes that are polled on a fixed cadence
POLLED_RESOURCES = (ResourceClass.SESSIONS, ResourceClass.WORKTREES, ResourceClass.PULL_REQUESTS)
