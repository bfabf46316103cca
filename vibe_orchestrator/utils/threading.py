"""Worker pool sizing for the background loader."""

import os
import sys
from typing import Dict, Any, Optional

# Resource classes that may poll concurrently (sessions, worktrees, PRs)
# plus one slot for a command such as a kill or a hand-off.
MIN_LOADER_WORKERS = 4

# Parallel code-host requests per poll; kept low for API rate limits
MAX_API_WORKERS = 8


def is_free_threading_enabled() -> bool:
    """Detect if Python is running with the GIL disabled (3.13+ free-threading)."""
    is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
    if is_gil_enabled is None:
        return False
    return not is_gil_enabled()


def get_optimal_worker_count(user_specified: Optional[int] = None) -> int:
    """Calculate the loader's worker count.

    Loader work is dominated by waiting on child processes and HTTP, so the
    count is not tied to CPU parallelism; it only has to cover every
    resource class plus hand-offs.

    Args:
        user_specified: User-specified worker count, if provided

    Returns:
        Number of loader workers
    """
    if user_specified is not None and user_specified > 0:
        return user_specified

    cpu_count = os.cpu_count() or 1
    if is_free_threading_enabled():
        return max(MIN_LOADER_WORKERS, min(16, cpu_count))
    return max(MIN_LOADER_WORKERS, min(8, cpu_count + 2))


def get_api_worker_count(branch_count: int) -> int:
    """Number of threads for a parallel pull-request fetch."""
    return max(1, min(MAX_API_WORKERS, branch_count))


def get_threading_info() -> Dict[str, Any]:
    """Describe the threading configuration (shown with --debug)."""
    return {
        "free_threading": is_free_threading_enabled(),
        "cpu_count": os.cpu_count() or 1,
        "loader_workers": get_optimal_worker_count(),
        "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
    }
