"""Reverse proxy used by instances that lost arbitration.

A proxy instance listens on an ephemeral loopback port and relays every
HTTP request and WebSocket upgrade to the main instance unchanged. A failed
upstream connection produces a 502 for that request only.
"""

import asyncio
import contextlib
import logging

import aiohttp
from aiohttp import web
from yarl import URL

from ..constants import DEFAULT_HOST, PEER_TIMEOUT, PROXY_MAX_BODY

logger = logging.getLogger(__name__)

# Connection-scoped headers that must not be relayed (RFC 9110 section 7.6.1)
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# Headers aiohttp would otherwise add on the upstream request
_SKIP_AUTO_HEADERS = ("Accept", "Accept-Encoding", "Content-Type", "User-Agent")


def _is_websocket_upgrade(request: web.Request) -> bool:
    connection = request.headers.get("Connection", "").lower()
    upgrade = request.headers.get("Upgrade", "").lower()
    return upgrade == "websocket" and "upgrade" in connection


def _forwardable_headers(headers, drop: frozenset[str] = frozenset()) -> list[tuple[str, str]]:
    """Copy headers, dropping hop-by-hop ones and any names in ``drop``."""
    return [
        (name, value)
        for name, value in headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() not in drop
    ]


async def _pipe_messages(
    source: web.WebSocketResponse | aiohttp.ClientWebSocketResponse,
    sink: web.WebSocketResponse | aiohttp.ClientWebSocketResponse,
) -> None:
    """Relay data frames from source to sink until source closes."""
    async for msg in source:
        if msg.type == aiohttp.WSMsgType.TEXT:
            await sink.send_str(msg.data)
        elif msg.type == aiohttp.WSMsgType.BINARY:
            await sink.send_bytes(msg.data)
        elif msg.type == aiohttp.WSMsgType.ERROR:
            logger.debug(f"WebSocket error: {source.exception()!r}")
            break
    if not sink.closed:
        await sink.close(code=source.close_code or aiohttp.WSCloseCode.OK)


class HttpForwarder:
    """Forward requests to a fixed upstream host:port."""

    def __init__(self, target_host: str, target_port: int, session: aiohttp.ClientSession):
        self.target_host = target_host
        self.target_port = target_port
        self._session = session

    def _upstream_url(self, request: web.Request, scheme: str) -> URL:
        base = f"{scheme}://{self.target_host}:{self.target_port}"
        return URL(base + request.raw_path, encoded=True)

    async def forward(self, request: web.Request) -> web.StreamResponse:
        """Relay one request (or WebSocket session) to the upstream instance."""
        if _is_websocket_upgrade(request):
            return await self._forward_websocket(request)
        return await self._forward_http(request)

    async def _forward_http(self, request: web.Request) -> web.StreamResponse:
        body = await request.read() if request.body_exists else None
        try:
            upstream = await self._session.request(
                request.method,
                self._upstream_url(request, "http"),
                headers=_forwardable_headers(request.headers, drop=frozenset({"host"})),
                data=body,
                allow_redirects=False,
                skip_auto_headers=_SKIP_AUTO_HEADERS,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Upstream request {request.method} {request.raw_path} failed: {e!r}")
            return web.Response(status=502, text=f"Proxy error: {e}")

        try:
            response = web.StreamResponse(status=upstream.status, reason=upstream.reason)
            for name, value in _forwardable_headers(upstream.headers):
                response.headers.add(name, value)
            await response.prepare(request)
            async for chunk in upstream.content.iter_any():
                await response.write(chunk)
            await response.write_eof()
        finally:
            upstream.release()
        return response

    async def _forward_websocket(self, request: web.Request) -> web.StreamResponse:
        offered = request.headers.get("Sec-WebSocket-Protocol", "")
        protocols = tuple(p.strip() for p in offered.split(",") if p.strip())
        headers = [
            (name, value)
            for name, value in _forwardable_headers(request.headers, drop=frozenset({"host"}))
            if not name.lower().startswith("sec-websocket-")
        ]
        try:
            upstream_ws = await self._session.ws_connect(
                self._upstream_url(request, "ws"),
                headers=headers,
                protocols=protocols,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Upstream WebSocket {request.raw_path} failed: {e!r}")
            return web.Response(status=502, text=f"Proxy error: {e}")

        # Agree downstream on whatever the main selected, which may be nothing
        selected = (upstream_ws.protocol,) if upstream_ws.protocol else ()
        downstream = web.WebSocketResponse(protocols=selected)
        await downstream.prepare(request)

        tasks = [
            asyncio.create_task(_pipe_messages(downstream, upstream_ws)),
            asyncio.create_task(_pipe_messages(upstream_ws, downstream)),
        ]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            for task in done:
                task.result()
        finally:
            await upstream_ws.close()
            await downstream.close()
        return downstream


class ProxyServer:
    """A running reverse proxy bound to an ephemeral local port."""

    def __init__(
        self,
        runner: web.AppRunner,
        session: aiohttp.ClientSession,
        host: str,
        port: int,
        target: tuple[str, int],
    ):
        self._runner = runner
        self._session = session
        self.host = host
        self.port = port
        self.target = target
        self.closed = False

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    async def close(self) -> None:
        """Stop listening and release the upstream connection pool."""
        if self.closed:
            return
        self.closed = True
        try:
            await self._runner.cleanup()
        finally:
            await self._session.close()
        logger.info(f"Proxy on port {self.port} stopped")


async def start_proxy(
    target_host: str,
    target_port: int,
    host: str = DEFAULT_HOST,
) -> ProxyServer:
    """Start a reverse proxy to target_host:target_port.

    Args:
        target_host: Host of the main instance
        target_port: Port of the main instance
        host: Local interface to listen on (loopback by default)

    Returns:
        Running proxy whose ``port`` is the OS-assigned listening port
    """
    session = aiohttp.ClientSession(
        auto_decompress=False,
        cookie_jar=aiohttp.DummyCookieJar(),
        timeout=aiohttp.ClientTimeout(total=None, sock_connect=PEER_TIMEOUT),
    )
    forwarder = HttpForwarder(target_host, target_port, session)

    app = web.Application(client_max_size=PROXY_MAX_BODY)
    app.router.add_route("*", "/{tail:.*}", forwarder.forward)

    runner = web.AppRunner(app, access_log=None)
    try:
        await runner.setup()
        site = web.TCPSite(runner, host, 0)
        await site.start()
    except BaseException:
        await runner.cleanup()
        await session.close()
        raise

    port = runner.addresses[0][1]
    logger.info(f"Proxy listening on {host}:{port} -> {target_host}:{target_port}")
    return ProxyServer(runner, session, host, port, (target_host, target_port))
