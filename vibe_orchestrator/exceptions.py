"""Custom exceptions for vibe-orchestrator"""

from typing import Optional


class VibeError(Exception):
    """Base exception for all vibe-orchestrator errors."""
    pass


class AdapterError(VibeError):
    """Exception raised when an external tool invocation fails."""

    def __init__(self, tool: str, operation: str, message: Optional[str] = None):
        self.tool = tool
        self.operation = operation
        self.message = message

        error_msg = f"{tool} operation '{operation}' failed"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class ToolMissing(AdapterError):
    """Exception raised when an external executable cannot be found."""

    def __init__(self, tool: str, operation: str, message: Optional[str] = None):
        super().__init__(tool, operation, message or f"'{tool}' executable not found")


class NotAuthenticated(AdapterError):
    """Exception raised when a tool is installed but not logged in."""

    def __init__(self, tool: str, operation: str, message: Optional[str] = None):
        super().__init__(tool, operation, message or f"'{tool}' is not authenticated")


class NonZeroExit(AdapterError):
    """Exception raised when a tool exits with a failure status.

    This is the transient execution failure: it is retried on the next
    natural poll cycle, never immediately.
    """

    def __init__(self, tool: str, operation: str, code: Optional[int], stderr: str = ""):
        self.code = code
        self.stderr = stderr.strip()

        message = f"exit {code}" if code is not None else "no exit status"
        if self.stderr:
            message += f": {self.stderr}"

        super().__init__(tool, operation, message)


class CommandTimeout(NonZeroExit):
    """Exception raised when a tool exceeds its wall-clock timeout and is killed."""

    def __init__(self, tool: str, operation: str, timeout: float):
        self.timeout = timeout
        super().__init__(tool, operation, None, f"timed out after {timeout:g}s")


class ParseError(AdapterError):
    """Exception raised when tool output cannot be parsed."""
    pass


class TaskStoreError(VibeError):
    """Exception raised for task file errors."""
    pass


class TaskNotFoundError(TaskStoreError):
    """Exception raised when no task file exists for an id."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class TaskParseError(TaskStoreError):
    """Exception raised when a task file is malformed."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Malformed task file {path}: {message}")


class WorktreeNotFoundError(VibeError):
    """Exception raised when a branch has no worktree."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"No worktree for branch '{branch}'")


class ConfigError(VibeError, ValueError):
    """Exception raised for invalid configuration values."""
    pass
