"""Shared test fixtures for TaskPilot tests."""

import socket
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import web
from typer.testing import CliRunner

LOCALHOST = "127.0.0.1"

ServeApp = Callable[[web.Application, int], Awaitable[web.AppRunner]]


def find_free_port() -> int:
    """Ask the OS for a port that is currently unused on loopback."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((LOCALHOST, 0))
        return sock.getsockname()[1]


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner with a plain, wide terminal."""
    return CliRunner(
        env={
            "NO_COLOR": "1",
            "TERM": "dumb",
            "COLUMNS": "200",
        },
    )


@pytest.fixture
def lock_path(tmp_path: Path) -> Path:
    """Lock file path unique to the test."""
    return tmp_path / "taskpilot-test.lock"


@pytest.fixture
def free_port() -> int:
    """A loopback port nothing is listening on."""
    return find_free_port()


@pytest_asyncio.fixture
async def serve_app() -> AsyncIterator[ServeApp]:
    """Serve aiohttp applications on loopback; all are stopped after the test."""
    runners: list[web.AppRunner] = []

    async def _serve(app: web.Application, port: int) -> web.AppRunner:
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, LOCALHOST, port)
        await site.start()
        runners.append(runner)
        return runner

    yield _serve

    for runner in runners:
        await runner.cleanup()


@pytest.fixture
def version_app() -> Callable[..., web.Application]:
    """Factory for apps whose /__version endpoint answers with a fixed body."""

    def _make(body: bytes | str, status: int = 200) -> web.Application:
        async def handle_version(request: web.Request) -> web.Response:
            payload = body.encode() if isinstance(body, str) else body
            return web.Response(body=payload, status=status, content_type="application/json")

        app = web.Application()
        app.router.add_get("/__version", handle_version)
        return app

    return _make
