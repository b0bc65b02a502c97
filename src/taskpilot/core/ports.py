"""Port availability polling."""

import asyncio
import logging
import socket
import sys
import time

from ..constants import DEFAULT_HOST, PORT_POLL_INTERVAL

logger = logging.getLogger(__name__)


def is_port_free(port: int, host: str = DEFAULT_HOST) -> bool:
    """Check whether a TCP listener could bind host:port right now.

    The check binds the way the HTTP server does (SO_REUSEADDR on POSIX), so
    TIME_WAIT leftovers from a closed main do not count as busy while a
    live listener does.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            if sys.platform != "win32":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
    except OSError:
        return False
    return True


async def wait_for_free(
    port: int,
    timeout: float,
    host: str = DEFAULT_HOST,
    interval: float = PORT_POLL_INTERVAL,
) -> bool:
    """Poll until host:port can be bound or the timeout elapses.

    Args:
        port: Port to watch
        timeout: Maximum wait in seconds
        host: Interface to test
        interval: Delay between bind attempts in seconds

    Returns:
        True as soon as a bind succeeds, False once the timeout has elapsed
    """
    deadline = time.monotonic() + timeout
    while True:
        if is_port_free(port, host):
            return True
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.debug(f"Port {host}:{port} still busy after {timeout:.1f}s")
            return False
        await asyncio.sleep(min(interval, remaining))
