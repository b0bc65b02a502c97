"""HTTP client for talking to a running main instance.

Both calls are bounded by their own timeout and normalize every network
failure to ``None``/``False``: an unreachable peer and a peer that declines
to answer look the same to the arbitration workflow.
"""

import asyncio
import json
import logging

import aiohttp

from ..constants import PEER_TIMEOUT, SHUTDOWN_PATH, VERSION_PATH

logger = logging.getLogger(__name__)


def _peer_url(host: str, port: int, path: str) -> str:
    return f"http://{host}:{port}{path}"


async def fetch_version(host: str, port: int, timeout: float = PEER_TIMEOUT) -> str | None:
    """Fetch the version reported by the instance listening on host:port.

    Args:
        host: Peer host
        port: Peer port
        timeout: Total timeout for the request in seconds

    Returns:
        Version string, or None if the peer is unreachable, times out,
        answers with a non-200 status, or sends an unusable body
    """
    url = _peer_url(host, port, VERSION_PATH)
    try:
        async with (
            aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session,
            session.get(url) as resp,
        ):
            if resp.status != 200:
                logger.debug(f"Version request {url} returned HTTP {resp.status}")
                return None
            body = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.debug(f"Version request {url} failed: {e!r}")
        return None

    try:
        data = json.loads(body)
    except ValueError:
        logger.warning(f"Peer at {host}:{port} sent malformed version response")
        return None

    version = data.get("version") if isinstance(data, dict) else None
    if not isinstance(version, str) or not version:
        return None
    return version


async def request_shutdown(host: str, port: int, timeout: float = PEER_TIMEOUT) -> bool:
    """Ask the instance on host:port to vacate the port.

    This is only a request. The caller must confirm the port was released
    (see ``taskpilot.core.ports.wait_for_free``) before taking over.

    Returns:
        True if the peer acknowledged with HTTP 200, False otherwise
    """
    url = _peer_url(host, port, SHUTDOWN_PATH)
    try:
        async with (
            aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session,
            session.post(url) as resp,
        ):
            status = resp.status
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.debug(f"Shutdown request {url} failed: {e!r}")
        return False

    if status != 200:
        logger.warning(f"Peer at {host}:{port} declined shutdown (HTTP {status})")
        return False
    return True
