"""Tests for output formatting and logging setup."""

import io
import json
import logging

import pytest
from rich.console import Console

from taskpilot.logging import LogLevel, configure_logging, resolve_level
from taskpilot.models import InstanceRole
from taskpilot.output import OutputContext


def text_context() -> tuple[OutputContext, io.StringIO]:
    output = io.StringIO()
    console = Console(file=output, force_terminal=False, width=200)
    return OutputContext(console=console, json_mode=False), output


@pytest.mark.unit
class TestOutputContext:
    """Tests for OutputContext methods."""

    def test_field_in_text_mode(self) -> None:
        ctx, output = text_context()
        ctx.field("Port", 8989)
        assert output.getvalue().strip() == "Port: 8989"

    def test_field_suppressed_in_json_mode(self, capsys) -> None:
        output = io.StringIO()
        ctx = OutputContext(console=Console(file=output), json_mode=True)
        ctx.field("Port", 8989)
        assert output.getvalue() == ""
        assert capsys.readouterr().out == ""

    def test_role_text(self) -> None:
        ctx, output = text_context()
        ctx.role(InstanceRole.PROXY, 8989, proxy_port=50123)
        assert "Stopped proxy instance for port 8989 via proxy port 50123" in output.getvalue()

    def test_role_json(self, capsys) -> None:
        ctx = OutputContext(console=Console(), json_mode=True)
        ctx.role(InstanceRole.MAIN, 8989)
        data = json.loads(capsys.readouterr().out)
        assert data == {"role": "main", "port": 8989, "stopped": True}

    def test_error_text_keeps_brackets(self) -> None:
        """Error text is not interpreted as console markup."""
        ctx, output = text_context()
        ctx.error("[Errno 13] Permission denied: '/run/[lock]'")
        assert "Error: [Errno 13] Permission denied: '/run/[lock]'" in output.getvalue()

    def test_error_json_merges_data(self, capsys) -> None:
        ctx = OutputContext(console=Console(), json_mode=True)
        ctx.error("failed", {"port": 8989})
        assert json.loads(capsys.readouterr().out) == {"error": "failed", "port": 8989}

    def test_success_json_without_data(self, capsys) -> None:
        ctx = OutputContext(console=Console(), json_mode=True)
        ctx.success("done")
        assert json.loads(capsys.readouterr().out) == {"success": "done"}


@pytest.mark.unit
class TestLogging:
    """Tests for logging configuration."""

    @pytest.mark.parametrize(
        ("verbosity", "quiet", "debug", "expected"),
        [
            (0, False, False, LogLevel.NORMAL),
            (1, False, False, LogLevel.VERBOSE),
            (0, False, True, LogLevel.VERBOSE),
            (2, True, True, LogLevel.QUIET),
        ],
    )
    def test_resolve_level(
        self, verbosity: int, quiet: bool, debug: bool, expected: LogLevel
    ) -> None:
        assert resolve_level(verbosity, quiet, debug) == expected

    def test_access_log_hidden_by_default(self) -> None:
        configure_logging(no_color=True)
        assert logging.getLogger().level == logging.INFO
        assert logging.getLogger("aiohttp.access").level == logging.WARNING

    def test_trace_enables_library_loggers(self) -> None:
        configure_logging(verbosity=2, no_color=True)
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("aiohttp.access").level == logging.NOTSET

    def test_quiet_raises_library_floor(self) -> None:
        configure_logging(quiet=True, no_color=True)
        assert logging.getLogger("aiohttp.client").level == logging.WARNING
