"""Main/proxy arbitration between TaskPilot instances.

Every launch of the service constructs an Arbitrator for the same lock path
and well-known port. Exactly one of them wins the lock and becomes main;
the others either proxy to a compatible main or ask an incompatible one to
vacate and try again.

The building blocks are deliberately separate calls. ``try_become_main``
never reclaims a lock on its own, even when the recorded PID is dead:
reclaiming is an explicit read, check, remove sequence driven by the caller
(``reclaim_stale_lock``). ``resolve`` composes the blocks into the standard
takeover workflow for the service bootstrap.
"""

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

from taskpilot import __version__

from ..constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    MAX_TAKEOVER_ATTEMPTS,
    PEER_TIMEOUT,
    PORT_POLL_INTERVAL,
    PORT_WAIT_TIMEOUT,
)
from ..errors import ArbitrationError, RoleError
from ..models import ArbitrationOutcome, InstanceLock, InstanceRole
from . import peer, ports
from .liveness import is_pid_alive
from .lock_store import default_lock_path, read_lock, remove_lock, try_create

if TYPE_CHECKING:
    from .proxy import ProxyServer

logger = logging.getLogger(__name__)


class Arbitrator:
    """Resolve and track this process's role for a well-known port.

    Attributes:
        lock_path: Lock file shared by all instances for this port.
        port: Well-known port of the main instance.
        host: Host the main instance listens on.
        version: Version this build reports and compares against.
        role: Resolved role; UNKNOWN until main or proxy is reached.
        proxy_port: Ephemeral port of the local proxy, once started.
        lock: Last lock record written or read by this arbitrator.
    """

    def __init__(
        self,
        lock_path: Path | None = None,
        port: int = DEFAULT_PORT,
        host: str = DEFAULT_HOST,
        version: str = __version__,
        peer_timeout: float = PEER_TIMEOUT,
    ):
        self.lock_path = Path(lock_path) if lock_path is not None else default_lock_path(port)
        self.port = port
        self.host = host
        self.version = version
        self.peer_timeout = peer_timeout

        self.role = InstanceRole.UNKNOWN
        self.proxy_port: int | None = None
        self.proxy: "ProxyServer | None" = None
        self.lock: InstanceLock | None = None

    # ------------------------------------------------------------------
    # Lock handling
    # ------------------------------------------------------------------

    def try_become_main(self) -> bool:
        """Try to claim the lock and become the main instance.

        Returns:
            True if this process now owns the lock, False if a lock file
            already exists (whatever its content or owner liveness)

        Raises:
            RoleError: If this process already resolved to proxy
            OSError: Unexpected filesystem failure (permissions, disk full)
        """
        if self.role == InstanceRole.PROXY:
            raise RoleError("Proxy instance cannot become main")

        lock = InstanceLock.for_current_process(self.version)
        if not try_create(self.lock_path, lock):
            return False

        self.lock = lock
        self.role = InstanceRole.MAIN
        logger.info(f"Became main instance (PID {lock.pid}, lock {self.lock_path})")
        return True

    def claim(self) -> ArbitrationOutcome:
        """Like ``try_become_main`` but reports I/O failures as an outcome."""
        try:
            won = self.try_become_main()
        except OSError as e:
            logger.error(f"Cannot create lock {self.lock_path}: {e}")
            return ArbitrationOutcome.failed(e)
        return ArbitrationOutcome.won() if won else ArbitrationOutcome.lost()

    def read_lock(self) -> InstanceLock | None:
        """Read the current lock record, or None if missing or malformed."""
        lock = read_lock(self.lock_path)
        if lock is not None:
            self.lock = lock
        return lock

    def remove_lock(self) -> None:
        """Delete the lock file unconditionally."""
        remove_lock(self.lock_path)

    def release(self) -> bool:
        """Remove the lock if this process owns it.

        Returns:
            True if the lock file was removed
        """
        existing = read_lock(self.lock_path)
        if existing is None or existing.pid != os.getpid():
            return False
        remove_lock(self.lock_path)
        logger.info(f"Released lock {self.lock_path}")
        return True

    def is_lock_stale(self) -> bool:
        """Check whether an existing lock file has no live owner.

        A lock that exists but cannot be parsed has no identifiable owner
        and counts as stale. A missing lock is not stale.
        """
        if not self.lock_path.exists():
            return False
        existing = read_lock(self.lock_path)
        if existing is None:
            return True
        return not is_pid_alive(existing.pid)

    def reclaim_stale_lock(self) -> bool:
        """Remove the lock file if its owning process is gone.

        Returns:
            True if a stale lock was removed
        """
        if not self.is_lock_stale():
            return False
        existing = read_lock(self.lock_path)
        owner = f"PID {existing.pid}" if existing else "unreadable owner"
        remove_lock(self.lock_path)
        logger.info(f"Reclaimed stale lock {self.lock_path} ({owner})")
        return True

    # ------------------------------------------------------------------
    # Peer negotiation
    # ------------------------------------------------------------------

    async def fetch_main_version(self) -> str | None:
        """Ask the instance on the well-known port for its version."""
        return await peer.fetch_version(self.host, self.port, timeout=self.peer_timeout)

    async def request_main_shutdown(self) -> bool:
        """Ask the instance on the well-known port to vacate it."""
        return await peer.request_shutdown(self.host, self.port, timeout=self.peer_timeout)

    async def wait_for_port(self, timeout: float = PORT_WAIT_TIMEOUT) -> bool:
        """Wait for the well-known port to become bindable."""
        return await ports.wait_for_free(self.port, timeout, host=self.host)

    async def wait_for_main(self, timeout: float = PORT_WAIT_TIMEOUT) -> str | None:
        """Poll until the lock owner answers on the well-known port.

        A main claims the lock before it binds the port, so a live owner may
        be silent for a moment. Gives up early once the lock is removed or
        its owner has died.

        Returns:
            The main's version, or None if it never answered in time
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(PORT_POLL_INTERVAL, remaining))
            if not self.lock_path.exists() or self.is_lock_stale():
                return None
            main_version = await self.fetch_main_version()
            if main_version is not None:
                return main_version

    # ------------------------------------------------------------------
    # Proxy role
    # ------------------------------------------------------------------

    async def start_proxy(self) -> "ProxyServer":
        """Start a local reverse proxy to the main instance.

        Raises:
            RoleError: If this process is already the main instance
        """
        if self.role == InstanceRole.MAIN:
            raise RoleError("Main instance cannot start a proxy")
        if self.proxy is not None and not self.proxy.closed:
            return self.proxy

        # Imported on first use by proxy instances
        from .proxy import start_proxy

        proxy = await start_proxy(self.host, self.port)
        self.proxy = proxy
        self.proxy_port = proxy.port
        self.role = InstanceRole.PROXY
        return proxy

    async def stop_proxy(self) -> None:
        """Stop the local proxy if one is running."""
        if self.proxy is not None:
            await self.proxy.close()

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    async def resolve(
        self,
        max_attempts: int = MAX_TAKEOVER_ATTEMPTS,
        port_wait_timeout: float = PORT_WAIT_TIMEOUT,
        reclaim_stale: bool = True,
    ) -> InstanceRole:
        """Become main, attach as proxy, or take over an incompatible main.

        Each attempt: claim the lock; otherwise ask the main for its version.
        A matching version means coexistence (start a proxy). A different or
        unknown version means request shutdown, wait for the port, retry.

        Args:
            max_attempts: Takeover rounds before giving up
            port_wait_timeout: Seconds to wait for the port after a shutdown request,
                and for a live lock owner that has not bound the port yet
            reclaim_stale: Remove a lock whose owner is dead when no peer answers

        Returns:
            The resolved role (MAIN or PROXY)

        Raises:
            ArbitrationError: If no role could be reached
            OSError: If the lock file cannot be created for reasons other than contention
        """
        if self.role != InstanceRole.UNKNOWN:
            return self.role

        for attempt in range(1, max_attempts + 1):
            if self.try_become_main():
                return self.role

            main_version = await self.fetch_main_version()
            if main_version is None and self.lock_path.exists() and not self.is_lock_stale():
                logger.info(f"Lock owner is alive; waiting for it to answer on port {self.port}")
                main_version = await self.wait_for_main(port_wait_timeout)

            if main_version == self.version:
                logger.info(f"Compatible main (v{main_version}) on port {self.port}; proxying")
                await self.start_proxy()
                return self.role

            if main_version is None:
                logger.warning(f"Lock exists but no instance answered on port {self.port}")
                if reclaim_stale and self.reclaim_stale_lock():
                    continue
            else:
                logger.info(
                    f"Main runs v{main_version}, this build is v{self.version}; requesting takeover"
                )

            if await self.request_main_shutdown():
                logger.debug("Shutdown acknowledged, waiting for port")
            if not await self.wait_for_port(port_wait_timeout):
                logger.warning(f"Port {self.port} still busy (attempt {attempt}/{max_attempts})")

        raise ArbitrationError(
            f"Unable to start or attach to an existing instance on port {self.port} "
            f"(lock {self.lock_path})"
        )
