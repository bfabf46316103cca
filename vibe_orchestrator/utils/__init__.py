"""Utility functions for vibe-orchestrator."""

from .threading import (
    is_free_threading_enabled,
    get_optimal_worker_count,
    get_api_worker_count,
    get_threading_info,
)

__all__ = [
    "is_free_threading_enabled",
    "get_optimal_worker_count",
    "get_api_worker_count",
    "get_threading_info",
]
