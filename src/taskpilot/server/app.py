"""HTTP surface of the main instance.

The main instance answers the peer protocol (``/__version``,
``/__shutdown``) and a health check itself; every other request goes to the
pluggable request handler that implements the actual service.
"""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from aiohttp import web

from taskpilot import __version__

from ..constants import HEALTH_PATH, SHUTDOWN_GRACE, SHUTDOWN_PATH, VERSION_PATH
from ..core import Arbitrator
from ..errors import RoleError
from ..models import InstanceRole

logger = logging.getLogger(__name__)

RequestHandler = Callable[[web.Request], Awaitable[web.StreamResponse]]


async def default_handler(request: web.Request) -> web.StreamResponse:
    """Answer the root discovery document; everything else is 404."""
    if request.path != "/":
        raise web.HTTPNotFound()
    return web.json_response(
        {
            "message": "TaskPilot Backend API",
            "version": __version__,
            "endpoints": {
                "version": VERSION_PATH,
                "shutdown": SHUTDOWN_PATH,
                "health": HEALTH_PATH,
            },
        }
    )


class MainServer:
    """Serve the well-known port on behalf of the main instance."""

    def __init__(self, arbitrator: Arbitrator, handler: RequestHandler | None = None):
        self.arbitrator = arbitrator
        self.handler = handler or default_handler
        self._runner: web.AppRunner | None = None
        self._stopped = asyncio.Event()
        self._stop_task: asyncio.Task[None] | None = None

    def create_app(self) -> web.Application:
        """Build the aiohttp application for the main instance."""
        app = web.Application()
        app.router.add_get(VERSION_PATH, self._handle_version)
        app.router.add_post(SHUTDOWN_PATH, self._handle_shutdown)
        app.router.add_get(HEALTH_PATH, self._handle_health)
        app.router.add_route("*", "/{tail:.*}", self._dispatch)
        return app

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Bind the well-known port.

        Raises:
            RoleError: If the arbitrator did not resolve to main
            OSError: If the port cannot be bound
        """
        if self.arbitrator.role != InstanceRole.MAIN:
            raise RoleError("Only the main instance can serve the well-known port")

        runner = web.AppRunner(self.create_app())
        await runner.setup()
        try:
            site = web.TCPSite(runner, self.arbitrator.host, self.arbitrator.port)
            await site.start()
        except BaseException:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info(
            f"Main instance v{self.arbitrator.version} listening on "
            f"{self.arbitrator.host}:{self.arbitrator.port}"
        )

    async def stop(self) -> None:
        """Release the lock and stop listening. Safe to call more than once."""
        self.arbitrator.release()
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()
            logger.info(f"Main instance stopped listening on port {self.arbitrator.port}")
        self._stopped.set()

    async def _deferred_stop(self) -> None:
        # Let the shutdown acknowledgement reach the client first
        await asyncio.sleep(SHUTDOWN_GRACE)
        await self.stop()

    async def wait_closed(self) -> None:
        """Block until the server has stopped."""
        await self._stopped.wait()

    async def _handle_version(self, request: web.Request) -> web.Response:
        return web.json_response({"version": self.arbitrator.version})

    async def _handle_shutdown(self, request: web.Request) -> web.Response:
        logger.info(f"Shutdown requested by {request.remote}; vacating port {self.arbitrator.port}")
        if self._stop_task is None:
            self._stop_task = asyncio.get_running_loop().create_task(self._deferred_stop())
        return web.Response(text="OK")

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "healthy",
                "version": self.arbitrator.version,
                "pid": os.getpid(),
                "role": self.arbitrator.role.value,
                "port": self.arbitrator.port,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    async def _dispatch(self, request: web.Request) -> web.StreamResponse:
        return await self.handler(request)
