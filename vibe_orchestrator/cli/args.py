"""Command-line argument parsing for vibe-orchestrator."""

import argparse
from typing import List, Optional

from vibe_orchestrator.__version__ import __version__


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="vibe-orchestrator",
        description="Supervise AI coding-agent sessions running in git worktrees",
        epilog="Requires zellij and a worktree manager (wt). Pull request status uses "
        "GITHUB_TOKEN or an authenticated 'gh' CLI.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    parser.add_argument("--version", action="version", version=f"vibe-orchestrator {__version__}")
    parser.add_argument(
        "--debug", action="store_true", help="Show debug information for troubleshooting"
    )
    parser.add_argument(
        "--repo",
        metavar="PATH",
        default=".",
        help="Repository whose worktrees are managed (default: current directory)",
    )
    parser.add_argument(
        "--project",
        metavar="KEY",
        help="Project key for the task directory (default: repository directory name)",
    )
    parser.add_argument(
        "--no-interactive",
        action="store_true",
        help="Print the current branch/session table once and exit",
    )
    parser.add_argument("--tasks", action="store_true", help="List the project's tasks and exit")
    parser.add_argument(
        "--workers",
        type=int,
        metavar="N",
        help="Number of background workers (default: auto-detect)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        metavar="SECONDS",
        help="Session and worktree poll interval (default: 5)",
    )

    return parser.parse_args(argv)
