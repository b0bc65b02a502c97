"""Tests for port availability polling."""

import asyncio
import socket
import time

import pytest

from taskpilot.core.ports import is_port_free, wait_for_free

LOCALHOST = "127.0.0.1"


def listen_on(port: int) -> socket.socket:
    """Occupy a port with a listening socket."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind((LOCALHOST, port))
    sock.listen()
    return sock


@pytest.mark.integration
class TestIsPortFree:
    """Tests for is_port_free function."""

    def test_unused_port_is_free(self, free_port: int) -> None:
        assert is_port_free(free_port) is True

    def test_listening_port_is_busy(self, free_port: int) -> None:
        with listen_on(free_port):
            assert is_port_free(free_port) is False

    def test_check_releases_port(self, free_port: int) -> None:
        """Checking does not keep the port bound."""
        assert is_port_free(free_port) is True
        with listen_on(free_port):
            pass


@pytest.mark.asyncio
@pytest.mark.integration
class TestWaitForFree:
    """Tests for wait_for_free function."""

    async def test_free_port_returns_immediately(self, free_port: int) -> None:
        start = time.monotonic()
        assert await wait_for_free(free_port, 2.0) is True
        assert time.monotonic() - start < 0.5

    async def test_busy_port_times_out(self, free_port: int) -> None:
        """Expiry is reported as False no earlier than the timeout."""
        with listen_on(free_port):
            start = time.monotonic()
            assert await wait_for_free(free_port, 0.5) is False
            elapsed = time.monotonic() - start
        assert elapsed >= 0.5
        assert elapsed < 1.5

    async def test_returns_true_once_port_frees(self, free_port: int) -> None:
        sock = listen_on(free_port)

        async def release_later() -> None:
            await asyncio.sleep(0.4)
            sock.close()

        releaser = asyncio.create_task(release_later())
        start = time.monotonic()
        assert await wait_for_free(free_port, 5.0, interval=0.1) is True
        elapsed = time.monotonic() - start
        await releaser
        assert 0.3 <= elapsed < 2.0

    async def test_zero_timeout_still_checks_once(self, free_port: int) -> None:
        assert await wait_for_free(free_port, 0) is True
