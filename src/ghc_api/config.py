"""Configuration loading and validation."""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from ghc_api.instance import GITHUB_COM, normalize_hostname


class EnvConfig(BaseModel):
    """Names of the environment variables consulted for credentials."""

    token_vars: list[str] = Field(default_factory=lambda: ["GH_TOKEN", "GITHUB_TOKEN"])
    enterprise_token_vars: list[str] = Field(
        default_factory=lambda: ["GH_ENTERPRISE_TOKEN", "GITHUB_ENTERPRISE_TOKEN"]
    )
    host_var: str = "GH_HOST"


class OAuthConfig(BaseModel):
    """Device authorization grant settings."""

    client_id: str = "178c6fc778ccc68e1d6a"
    default_scopes: list[str] = Field(default_factory=lambda: ["repo", "read:org", "gist"])
    min_poll_interval: float = Field(default=5.0, ge=0)
    slow_down_increment: float = Field(default=5.0, ge=0)


class HttpConfig(BaseModel):
    """Transport settings."""

    timeout: float = Field(default=30.0, gt=0)
    graphql_features: list[str] = Field(default_factory=lambda: ["merge_queue"])
    user_agent: str | None = None


class StorageConfig(BaseModel):
    """Credential storage settings."""

    keyring_service_prefix: str = "gh"
    hosts_file: Path | None = Field(
        default=None, description="Defaults to hosts.yml inside the config directory"
    )
    prefer_secure: bool = True


class Config(BaseModel):
    """Root configuration model."""

    default_host: str = GITHUB_COM
    env: EnvConfig = Field(default_factory=EnvConfig)
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("default_host")
    @classmethod
    def validate_default_host(cls, v: str) -> str:
        """Store the default host in normalized form."""
        return normalize_hostname(v)

    def hosts_path(self) -> Path:
        """Location of the plaintext hosts file."""
        return self.storage.hosts_file or config_dir() / "hosts.yml"

    def effective_default_host(self, environ: Mapping[str, str] | None = None) -> str:
        """Default host after applying the host override variable."""
        env = os.environ if environ is None else environ
        override = env.get(self.env.host_var)
        if override:
            return normalize_hostname(override)
        return self.default_host


def config_dir() -> Path:
    """Directory holding config.yml and hosts.yml.

    ``GH_CONFIG_DIR`` wins, then ``$XDG_CONFIG_HOME/gh``, then ``~/.config/gh``.
    """
    if override := os.environ.get("GH_CONFIG_DIR"):
        return Path(override)
    if xdg := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg) / "gh"
    if os.name == "nt" and (appdata := os.environ.get("AppData")):
        return Path(appdata) / "GitHub CLI"
    return Path.home() / ".config" / "gh"


def load_config(path: Path | None = None) -> Config:
    """Load and validate configuration from YAML.

    Args:
        path: Explicit configuration file. When omitted, ``config.yml`` in
            :func:`config_dir` is used if present, defaults otherwise.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If an explicit path doesn't exist.
        ValidationError: If the config is invalid.
    """
    if path is None:
        path = config_dir() / "config.yml"
        if not path.exists():
            return Config()
    elif not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open() as f:
        raw_config: dict[str, Any] | None = yaml.safe_load(f)

    return Config.model_validate(raw_config or {})
