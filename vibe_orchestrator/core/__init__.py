"""Core orchestration: state machine, background loader, launcher and event loop."""

from .orchestrator import Orchestrator, Notice
from .launcher import SessionLauncher, LaunchPlan, slugify
from .loader import BackgroundLoader, LoadResult

__all__ = ["Orchestrator", "Notice", "SessionLauncher", "LaunchPlan", "slugify", "BackgroundLoader", "LoadResult"]
