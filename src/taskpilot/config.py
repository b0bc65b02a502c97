"""Configuration management for TaskPilot."""

import tomllib
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, ValidationError

from .constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    MAX_TAKEOVER_ATTEMPTS,
    PEER_TIMEOUT,
    PORT_WAIT_TIMEOUT,
)
from .core.lock_store import default_lock_path
from .errors import ConfigError


class ServerConfig(BaseModel):
    """Where the main instance listens and where its lock lives."""

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    lock_path: Path | None = None  # Defaults to <tempdir>/taskpilot-<port>.lock

    def get_lock_path(self) -> Path:
        """Get the effective lock file path."""
        return self.lock_path or default_lock_path(self.port)


class ArbitrationConfig(BaseModel):
    """Takeover workflow settings."""

    max_attempts: int = Field(default=MAX_TAKEOVER_ATTEMPTS, ge=1)
    port_wait_timeout: float = Field(default=PORT_WAIT_TIMEOUT, gt=0)
    reclaim_stale: bool = True


class PeerConfig(BaseModel):
    """Settings for requests sent to a running main instance."""

    timeout: float = Field(default=PEER_TIMEOUT, gt=0)


class TaskPilotConfig(BaseModel):
    """Root configuration for TaskPilot."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    arbitration: ArbitrationConfig = Field(default_factory=ArbitrationConfig)
    peer: PeerConfig = Field(default_factory=PeerConfig)


def get_config_path() -> Path:
    """Get the default config file path (~/.config/taskpilot/config.toml)."""
    return Path.home() / ".config" / "taskpilot" / "config.toml"


def load_config(config_path: Path | None = None) -> TaskPilotConfig:
    """Load config from a TOML file.

    Args:
        config_path: Path to config.toml; defaults to ``get_config_path()``

    Returns:
        Loaded configuration, or defaults if the file doesn't exist

    Raises:
        ConfigError: If the file is not valid TOML or fails validation
    """
    path = config_path or get_config_path()
    if not path.exists():
        return TaskPilotConfig()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return TaskPilotConfig.model_validate(data)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e


def write_config_template(config_path: Path | None = None) -> Path:
    """Write default config.toml template.

    Args:
        config_path: Destination; defaults to ``get_config_path()``

    Returns:
        Path to the written config file
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    template = {
        "server": {"host": DEFAULT_HOST, "port": DEFAULT_PORT},
        # lock_path is optional; omit it to use <tempdir>/taskpilot-<port>.lock
        "arbitration": {
            "max_attempts": MAX_TAKEOVER_ATTEMPTS,
            "port_wait_timeout": PORT_WAIT_TIMEOUT,
            "reclaim_stale": True,
        },
        "peer": {"timeout": PEER_TIMEOUT},
    }
    with open(path, "wb") as f:
        tomli_w.dump(template, f)
    return path
