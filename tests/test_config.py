"""Tests for configuration management."""

import tempfile
from pathlib import Path

import pytest

from taskpilot.config import (
    ArbitrationConfig,
    ServerConfig,
    TaskPilotConfig,
    get_config_path,
    load_config,
    write_config_template,
)
from taskpilot.errors import ConfigError


@pytest.mark.unit
class TestDefaults:
    """Tests for default configuration values."""

    def test_default_config(self) -> None:
        config = TaskPilotConfig()
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 8989
        assert config.server.lock_path is None
        assert config.arbitration.max_attempts == 3
        assert config.arbitration.port_wait_timeout == 10.0
        assert config.arbitration.reclaim_stale is True
        assert config.peer.timeout == 2.0

    def test_lock_path_defaults_to_tempdir(self) -> None:
        path = ServerConfig(port=9100).get_lock_path()
        assert path == Path(tempfile.gettempdir()) / "taskpilot-9100.lock"

    def test_explicit_lock_path_wins(self, tmp_path: Path) -> None:
        custom = tmp_path / "custom.lock"
        assert ServerConfig(lock_path=custom).get_lock_path() == custom

    def test_config_path_under_home(self) -> None:
        path = get_config_path()
        assert path.name == "config.toml"
        assert path.parent.name == "taskpilot"

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_port_out_of_range(self, port: int) -> None:
        with pytest.raises(ValueError):
            ServerConfig(port=port)

    def test_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            ArbitrationConfig(max_attempts=0)


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config function."""

    def test_missing_file_returns_defaults(self, tmp_path: Path) -> None:
        assert load_config(tmp_path / "missing.toml") == TaskPilotConfig()

    def test_loads_partial_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text(
            """
[server]
port = 9200
lock_path = "/var/run/taskpilot.lock"

[arbitration]
reclaim_stale = false
"""
        )
        config = load_config(path)
        assert config.server.port == 9200
        assert config.server.get_lock_path() == Path("/var/run/taskpilot.lock")
        assert config.arbitration.reclaim_stale is False
        assert config.arbitration.max_attempts == 3
        assert config.peer.timeout == 2.0

    def test_invalid_toml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("[server\nport = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    def test_invalid_values_raise(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text('[server]\nport = "not-a-port"\n')
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path)


@pytest.mark.unit
class TestWriteConfigTemplate:
    """Tests for write_config_template function."""

    def test_template_loads_as_defaults(self, tmp_path: Path) -> None:
        path = write_config_template(tmp_path / "nested" / "config.toml")
        assert path.exists()
        assert load_config(path) == TaskPilotConfig()

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("garbage = [")
        write_config_template(path)
        assert load_config(path) == TaskPilotConfig()
