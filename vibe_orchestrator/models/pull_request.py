"""Pull request summary model"""
from enum import Enum
from dataclasses import dataclass


class PullRequestState(Enum):
    """State of a pull request."""
    OPEN = "open"
    MERGED = "merged"
    CLOSED = "closed"


class ChecksStatus(Enum):
    """Combined status of the checks on a pull request's head commit."""
    PASSING = "passing"
    FAILING = "failing"
    PENDING = "pending"
    NONE = "none"


@dataclass(frozen=True)
class PullRequestSummary:
    """Read-only PR data, refreshed opportunistically and never persisted."""
    repository: str
    number: int
    branch: str
    state: PullRequestState
    checks: ChecksStatus = ChecksStatus.NONE
    url: str = ""
    title: str = ""
