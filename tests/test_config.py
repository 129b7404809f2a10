"""Tests for configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from ghc_api.config import Config, config_dir, load_config


class TestConfigDefaults:
    """Tests for default configuration values."""

    def test_defaults(self) -> None:
        """Test built-in defaults."""
        config = Config()
        assert config.default_host == "github.com"
        assert config.env.token_vars == ["GH_TOKEN", "GITHUB_TOKEN"]
        assert config.env.enterprise_token_vars == ["GH_ENTERPRISE_TOKEN", "GITHUB_ENTERPRISE_TOKEN"]
        assert config.oauth.default_scopes == ["repo", "read:org", "gist"]
        assert config.oauth.min_poll_interval == 5.0
        assert config.http.graphql_features == ["merge_queue"]
        assert config.storage.prefer_secure is True

    def test_default_host_normalized(self) -> None:
        """Test default_host is stored lowercase without scheme."""
        config = Config(default_host="HTTPS://GHE.Example.com/")
        assert config.default_host == "ghe.example.com"

    def test_invalid_timeout(self) -> None:
        """Test non-positive timeouts are rejected."""
        with pytest.raises(ValidationError):
            Config.model_validate({"http": {"timeout": 0}})

    def test_effective_default_host_override(self) -> None:
        """Test GH_HOST overrides the configured default host."""
        config = Config()
        assert config.effective_default_host({"GH_HOST": "ghe.example.com"}) == "ghe.example.com"
        assert config.effective_default_host({}) == "github.com"


class TestConfigDir:
    """Tests for config directory discovery."""

    def test_gh_config_dir_wins(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test GH_CONFIG_DIR takes precedence."""
        monkeypatch.setenv("GH_CONFIG_DIR", str(tmp_path))
        monkeypatch.setenv("XDG_CONFIG_HOME", "/elsewhere")
        assert config_dir() == tmp_path

    def test_xdg_config_home(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test XDG_CONFIG_HOME is used when GH_CONFIG_DIR is unset."""
        monkeypatch.delenv("GH_CONFIG_DIR", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert config_dir() == tmp_path / "gh"

    def test_hosts_path_follows_config_dir(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test hosts.yml lives in the config directory by default."""
        monkeypatch.setenv("GH_CONFIG_DIR", str(tmp_path))
        assert Config().hosts_path() == tmp_path / "hosts.yml"

    def test_hosts_path_explicit(self, tmp_path: Path) -> None:
        """Test an explicit hosts_file wins."""
        config = Config.model_validate({"storage": {"hosts_file": str(tmp_path / "h.yml")}})
        assert config.hosts_path() == tmp_path / "h.yml"


class TestLoadConfig:
    """Tests for load_config."""

    def test_load_yaml(self, tmp_path: Path) -> None:
        """Test loading a YAML file."""
        path = tmp_path / "config.yml"
        path.write_text(
            "default_host: ghe.example.com\n"
            "oauth:\n"
            "  default_scopes: [repo]\n"
            "http:\n"
            "  timeout: 5\n"
        )
        config = load_config(path)
        assert config.default_host == "ghe.example.com"
        assert config.oauth.default_scopes == ["repo"]
        assert config.http.timeout == 5.0

    def test_load_empty_file(self, tmp_path: Path) -> None:
        """Test an empty file yields defaults."""
        path = tmp_path / "config.yml"
        path.write_text("")
        assert load_config(path) == Config()

    def test_explicit_missing_path(self, tmp_path: Path) -> None:
        """Test a missing explicit path raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(tmp_path / "missing.yml")

    def test_absent_default_file(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Test defaults when the config directory has no config.yml."""
        monkeypatch.setenv("GH_CONFIG_DIR", str(tmp_path))
        assert load_config() == Config()
