"""Configuration handling for vibe-orchestrator"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from vibe_orchestrator.constants import SESSION_NAME_MAX_LENGTH
from vibe_orchestrator.exceptions import ConfigError


def default_worktree_bin() -> str:
    """Resolve the worktree manager executable.

    Checks VIBE_WORKTREE_BIN, then WORKTRUNK_BIN, then the cargo install
    location, and finally falls back to ``wt`` on PATH.
    """
    for var in ("VIBE_WORKTREE_BIN", "WORKTRUNK_BIN"):
        value = os.environ.get(var)
        if value:
            return value

    cargo_bin = Path.home() / ".cargo" / "bin" / "wt"
    if cargo_bin.exists():
        return str(cargo_bin)
    return "wt"


def _default_vibe_home() -> str:
    return os.environ.get("VIBE_HOME") or str(Path.home() / ".vibe")


def _default_script_dir() -> str:
    return os.environ.get("VIBE_SCRIPT_DIR") or str(Path.home() / ".cache" / "vibe-scripts")


@dataclass
class Config:
    """Configuration for vibe-orchestrator with validation."""

    # Repository / project
    repo_path: str = "."
    project_key: Optional[str] = None  # None = repository directory name

    # Locations
    vibe_home: str = field(default_factory=_default_vibe_home)
    script_dir: str = field(default_factory=_default_script_dir)
    activity_dir: Optional[str] = None  # None = <vibe_home>/claude-activity

    # External tools
    worktree_bin: str = field(default_factory=default_worktree_bin)
    multiplexer_bin: str = "zellij"
    gh_bin: str = "gh"
    agent_command: str = "claude --dangerously-skip-permissions"
    github_token: Optional[str] = None

    # Poll cadence (seconds)
    session_poll_interval: float = 5.0
    worktree_poll_interval: float = 5.0
    pr_poll_interval: float = 60.0
    tick_interval: float = 0.2

    # Timeouts (seconds)
    command_timeout: float = 10.0
    network_timeout: float = 30.0

    # Activity classification windows (seconds)
    activity_fresh_seconds: float = 10.0
    activity_stale_seconds: float = 300.0

    # Age after which a resource class is shown as stale
    staleness_threshold: float = 30.0

    max_branch_length: int = SESSION_NAME_MAX_LENGTH
    workers: Optional[int] = None  # None = auto-detect

    verbose: bool = False
    debug: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_intervals()
        self._validate_timeouts()
        self._validate_activity_windows()
        self._validate_executables()
        self._validate_branch_length()
        self._validate_workers()

    def _validate_intervals(self):
        """Validate poll intervals are positive."""
        for name in ("session_poll_interval", "worktree_poll_interval", "pr_poll_interval", "tick_interval"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

    def _validate_timeouts(self):
        """Validate timeouts and the staleness threshold are positive."""
        for name in ("command_timeout", "network_timeout", "staleness_threshold"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

    def _validate_activity_windows(self):
        """Validate the freshness window is shorter than the stale window."""
        if self.activity_fresh_seconds <= 0:
            raise ConfigError(f"activity_fresh_seconds must be positive, got {self.activity_fresh_seconds}")
        if self.activity_stale_seconds < self.activity_fresh_seconds:
            raise ConfigError("activity_stale_seconds must not be shorter than activity_fresh_seconds")

    def _validate_executables(self):
        """Validate executables and the agent command are not empty."""
        for name in ("worktree_bin", "multiplexer_bin", "gh_bin", "agent_command"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ConfigError(f"{name} cannot be empty")
            setattr(self, name, value.strip())

    def _validate_branch_length(self):
        """Validate max_branch_length fits in a session name."""
        if not 8 <= self.max_branch_length <= SESSION_NAME_MAX_LENGTH:
            raise ConfigError(
                f"max_branch_length must be between 8 and {SESSION_NAME_MAX_LENGTH}, got {self.max_branch_length}"
            )

    def _validate_workers(self):
        """Validate workers is positive when given."""
        if self.workers is not None and self.workers <= 0:
            raise ConfigError(f"workers must be positive, got {self.workers}")

    @property
    def resolved_repo_path(self) -> Path:
        """Absolute repository path."""
        return Path(self.repo_path).expanduser().resolve()

    @property
    def resolved_project_key(self) -> str:
        """Project key used for the task directory."""
        return self.project_key or self.resolved_repo_path.name

    @property
    def resolved_activity_dir(self) -> Path:
        """Directory holding agent status files."""
        if self.activity_dir:
            return Path(self.activity_dir).expanduser()
        return Path(self.vibe_home).expanduser() / "claude-activity"

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def get(self, key: str, default=None):
        """Get config value by key."""
        return getattr(self, key, default)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Create Config from dictionary."""
        # Extract only known fields
        known_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in config_dict.items() if k in known_fields}
        return cls(**filtered)

    @classmethod
    def from_env(cls, **overrides) -> "Config":
        """Create Config from environment variables, then apply overrides.

        None-valued overrides are ignored so CLI flags that were not given
        keep the environment/default value.
        """
        values = {}
        if os.environ.get("GITHUB_TOKEN"):
            values["github_token"] = os.environ["GITHUB_TOKEN"]
        if os.environ.get("VIBE_AGENT_COMMAND"):
            values["agent_command"] = os.environ["VIBE_AGENT_COMMAND"]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(values)
