"""
vibe-orchestrator - supervise AI coding-agent sessions in git worktrees
"""

from .__version__ import __version__
from .core import Orchestrator
from .cli.main import main

__all__ = ["Orchestrator", "main", "__version__"]
