"""Service bootstrap: resolve the instance role and serve until stopped.

The arbitration core registers no signal handlers. This module owns that
lifecycle: SIGINT/SIGTERM release the lock (main) or close the proxy, and a
main instance that is asked to vacate by a newer build exits cleanly.
"""

import asyncio
import contextlib
import logging
import signal

from .config import TaskPilotConfig
from .core import Arbitrator
from .models import InstanceRole
from .server import MainServer, RequestHandler

logger = logging.getLogger(__name__)

_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def create_arbitrator(config: TaskPilotConfig) -> Arbitrator:
    """Build an Arbitrator from configuration."""
    return Arbitrator(
        lock_path=config.server.get_lock_path(),
        port=config.server.port,
        host=config.server.host,
        peer_timeout=config.peer.timeout,
    )


def _install_signal_handlers(stop: asyncio.Event) -> list[signal.Signals]:
    loop = asyncio.get_running_loop()
    installed = []
    for sig in _STOP_SIGNALS:
        # add_signal_handler is unavailable on Windows event loops
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
    return installed


def _remove_signal_handlers(installed: list[signal.Signals]) -> None:
    loop = asyncio.get_running_loop()
    for sig in installed:
        loop.remove_signal_handler(sig)


async def _wait_any(*aws) -> None:
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


async def run_service(
    config: TaskPilotConfig,
    handler: RequestHandler | None = None,
    stop: asyncio.Event | None = None,
    arbitrator: Arbitrator | None = None,
) -> InstanceRole:
    """Resolve this process's role and serve until told to stop.

    Args:
        config: Loaded configuration
        handler: Request handler for non-protocol paths on the main instance
        stop: Event that ends the service when set; SIGINT/SIGTERM also set it
        arbitrator: Pre-built arbitrator (defaults to one built from config)

    Returns:
        The role this process served in

    Raises:
        ArbitrationError: If no role could be reached
        OSError: If the lock file cannot be created or the port cannot be bound
    """
    arbitrator = arbitrator or create_arbitrator(config)
    stop = stop or asyncio.Event()

    role = await arbitrator.resolve(
        max_attempts=config.arbitration.max_attempts,
        port_wait_timeout=config.arbitration.port_wait_timeout,
        reclaim_stale=config.arbitration.reclaim_stale,
    )

    installed = _install_signal_handlers(stop)
    try:
        if role == InstanceRole.MAIN:
            await _serve_main(arbitrator, handler, stop)
        else:
            await _serve_proxy(arbitrator, stop)
    finally:
        _remove_signal_handlers(installed)
    return role


async def _serve_main(
    arbitrator: Arbitrator, handler: RequestHandler | None, stop: asyncio.Event
) -> None:
    server = MainServer(arbitrator, handler)
    try:
        await server.start()
    except OSError:
        arbitrator.release()
        raise

    try:
        await _wait_any(stop.wait(), server.wait_closed())
    finally:
        await server.stop()
    logger.info("Main instance shut down")


async def _serve_proxy(arbitrator: Arbitrator, stop: asyncio.Event) -> None:
    logger.info(
        f"Attached to main instance on port {arbitrator.port} "
        f"via proxy port {arbitrator.proxy_port}"
    )
    try:
        await stop.wait()
    finally:
        await arbitrator.stop_proxy()
    logger.info("Proxy instance shut down")
