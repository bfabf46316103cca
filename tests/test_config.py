"""Tests for configuration handling"""
from pathlib import Path
from unittest.mock import patch

import pytest

from vibe_orchestrator.config import Config
from vibe_orchestrator.exceptions import ConfigError


class TestConfigValidation:
    """Test validation in __post_init__."""

    def test_defaults_are_valid(self):
        config = Config()
        assert config.session_poll_interval == 5.0
        assert config.pr_poll_interval == 60.0
        assert config.workers is None

    @pytest.mark.parametrize("kwargs", [
        {"session_poll_interval": 0},
        {"tick_interval": -1},
        {"command_timeout": 0},
        {"staleness_threshold": -5},
        {"activity_fresh_seconds": 0},
        {"activity_fresh_seconds": 60, "activity_stale_seconds": 30},
        {"agent_command": "   "},
        {"worktree_bin": ""},
        {"max_branch_length": 4},
        {"max_branch_length": 37},
        {"max_branch_length": 200},
        {"workers": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigError):
            Config(**kwargs)

    def test_executables_are_stripped(self):
        assert Config(gh_bin=" gh ").gh_bin == "gh"


class TestConfigResolution:
    """Test derived values and construction helpers."""

    def test_project_key_defaults_to_repo_name(self, temp_dir):
        repo = temp_dir / "my-project"
        repo.mkdir()
        assert Config(repo_path=str(repo)).resolved_project_key == "my-project"
        assert Config(repo_path=str(repo), project_key="other").resolved_project_key == "other"

    def test_activity_dir(self, temp_dir):
        config = Config(vibe_home=str(temp_dir))
        assert config.resolved_activity_dir == temp_dir / "claude-activity"
        assert Config(activity_dir="/tmp/status").resolved_activity_dir == Path("/tmp/status")

    def test_get(self):
        config = Config(workers=3)
        assert config.get("workers") == 3
        assert config.get("missing", "fallback") == "fallback"

    def test_from_dict_ignores_unknown_keys(self):
        config = Config.from_dict({"workers": 2, "bogus": True})
        assert config.workers == 2

    @patch.dict('os.environ', {'GITHUB_TOKEN': 'env_token', 'VIBE_AGENT_COMMAND': 'claude'})
    def test_from_env(self):
        config = Config.from_env(workers=None, pr_poll_interval=120.0)

        assert config.github_token == "env_token"
        assert config.agent_command == "claude"
        assert config.workers is None
        assert config.pr_poll_interval == 120.0

    @patch.dict('os.environ', {'GITHUB_TOKEN': 'env_token'})
    def test_overrides_win(self):
        assert Config.from_env(github_token="flag_token").github_token == "flag_token"

    def test_to_dict(self):
        data = Config(workers=2).to_dict()
        assert data["workers"] == 2
        assert "agent_command" in data
