"""
Configuration loader — reads hostforge.yml into ``HostforgeConfig``.

Resolution order for the config file:
    explicit path  >  HOSTFORGE_CONFIG env var  >  hostforge.yml found
    by walking up from the working directory  >  built-in defaults

A missing file is not an error (defaults apply). A file that exists but
does not parse or validate raises ``ConfigError``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILE = "hostforge.yml"
ENV_CONFIG = "HOSTFORGE_CONFIG"
ENV_STATE_DIR = "HOSTFORGE_STATE_DIR"


class ConfigError(Exception):
    """Raised when hostforge configuration is invalid or unreadable."""

    code = "config_error"


class HostforgeConfig(BaseModel):
    """Runtime settings for the orchestrator."""

    host_root: Path = Path("/")
    state_dir: Path = Field(default_factory=lambda: Path.home() / ".hostforge")
    templates_dir: Path | None = None
    status_ttl_seconds: float = Field(default=5.0, ge=0)
    command_timeout: int = Field(default=1800, gt=0)
    probe_timeout: int = Field(default=30, gt=0)

    model_config = {"extra": "forbid"}

    @property
    def log_dir(self) -> Path:
        return self.state_dir / "logs"

    @property
    def credentials_dir(self) -> Path:
        return self.state_dir / "credentials"

    @property
    def stacks_dir(self) -> Path:
        return self.state_dir / "stacks"

    def host_path(self, path: str | Path) -> Path:
        """Resolve an absolute OS path (``/etc/...``) under ``host_root``."""
        return host_path(self.host_root, path)


def host_path(host_root: Path | str, path: str | Path) -> Path:
    """Join an absolute host path onto a (possibly sandboxed) root."""
    rel = str(path).lstrip("/")
    return Path(host_root) / rel


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for hostforge.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to hostforge.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> HostforgeConfig:
    """Load and validate hostforge configuration.

    Args:
        path: Explicit path to the config file. If None, the env var and
            an upward search are tried in turn.

    Returns:
        Validated HostforgeConfig (defaults when no file is found).

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    if path is None and os.environ.get(ENV_CONFIG):
        path = Path(os.environ[ENV_CONFIG])
        if not path.is_file():
            raise ConfigError(f"{ENV_CONFIG} points to a missing file: {path}")
    if path is None:
        path = find_config_file()

    data: dict = {}
    if path is not None:
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        logger.debug("Loading hostforge config from %s", path)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}") from e
        try:
            loaded = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Expected a YAML mapping in {path}, got {type(loaded).__name__}")
        # Accept both flat and "hostforge:"-wrapped layouts
        data = dict(loaded.get("hostforge", loaded))

    if os.environ.get(ENV_STATE_DIR):
        data["state_dir"] = os.environ[ENV_STATE_DIR]

    try:
        config = HostforgeConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid hostforge configuration: {e}") from e

    config.state_dir = config.state_dir.expanduser()
    logger.info("Config: host_root=%s state_dir=%s", config.host_root, config.state_dir)
    return config
