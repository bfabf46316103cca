"""Subprocess execution with hard timeouts and typed failures."""

import os
import subprocess
from typing import Mapping, Optional, Sequence

from vibe_orchestrator.exceptions import CommandTimeout, NonZeroExit, ToolMissing
from vibe_orchestrator.logging_config import get_logger

logger = get_logger(__name__)


def run_tool(
    args: Sequence[str],
    timeout: Optional[float],
    operation: str,
    cwd: Optional[str] = None,
    interactive: bool = False,
    env: Optional[Mapping[str, str]] = None,
) -> subprocess.CompletedProcess:
    """Run an external tool and return its completed process.

    Args:
        args: Command line, executable first
        timeout: Wall-clock limit in seconds; the child is killed when exceeded.
            None means no limit (interactive hand-offs only).
        operation: Short name of the operation, used in errors and logs
        cwd: Working directory for the child
        interactive: If True, the child inherits the terminal instead of
            having its output captured
        env: Extra environment variables layered over os.environ

    Returns:
        The completed process (stdout/stderr are text when captured)

    Raises:
        ToolMissing: The executable does not exist or is not executable
        CommandTimeout: The timeout expired and the child was killed
        NonZeroExit: The child exited with a non-zero status
    """
    tool = os.path.basename(args[0])
    child_env = None
    if env:
        child_env = dict(os.environ)
        child_env.update(env)

    logger.debug(f"[{tool}] {operation}: {' '.join(args)}")
    try:
        if interactive:
            result = subprocess.run(list(args), cwd=cwd, env=child_env, timeout=timeout)
        else:
            result = subprocess.run(
                list(args),
                cwd=cwd,
                env=child_env,
                timeout=timeout,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
            )
    except (FileNotFoundError, PermissionError) as e:
        raise ToolMissing(tool, operation, str(e)) from e
    except subprocess.TimeoutExpired as e:
        # subprocess.run kills the child before re-raising
        logger.warning(f"[{tool}] {operation} killed after {timeout}s")
        raise CommandTimeout(tool, operation, timeout or 0) from e

    if result.returncode != 0:
        stderr = result.stderr if isinstance(result.stderr, str) else ""
        raise NonZeroExit(tool, operation, result.returncode, stderr)

    return result
