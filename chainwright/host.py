"""Tunnel host: lets a remote run drive a browser launched on this machine.

    chainwright host --port 9020 --secret s3cret

Routes (any method):
    /dalek/launch/<browser>  launch a registered local browser (secret-token checked)
    /dalek/kill              stop the launched browser
    anything else            proxied to the browser's WebDriver endpoint, but
                             only for the address that completed the launch
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any

import httpx
import psutil
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from chainwright.browser import Browser
from chainwright.events import EventEmitter
from chainwright.registry import BROWSERS, Registry

log = logging.getLogger(__name__)

DEFAULT_PORT = 9020
LAUNCH_PREFIX = "/dalek/launch/"
KILL_PATH = "/dalek/kill"
PROXY_TIMEOUT = 60.0

# Not relayed from the browser's /session response
HOP_HEADERS = frozenset({"transfer-encoding", "content-length", "connection", "content-encoding"})

ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


def local_ip() -> str:
    """First non-loopback IPv4 address of this machine."""
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                return addr.address
    return "127.0.0.1"


def _closed(content: Any = None) -> Response:
    if content is None:
        return Response(content=b"", headers={"Connection": "close"})
    return JSONResponse(content, headers={"Connection": "close"})


class Host:
    """Reverse proxy bound to the caller that launched the browser.

    One browser session per host instance; the session is owned by the
    address that completed the launch handshake (``remote_id``).
    """

    def __init__(
        self,
        reporter: EventEmitter,
        config: Any = None,
        *,
        browsers: Registry = BROWSERS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.reporter = reporter
        self.config = config
        self.browsers = browsers
        self.bro: Browser | None = None
        self.secret: str | None = None
        self.port = DEFAULT_PORT
        self.bind = "0.0.0.0"
        self.remote_id: str | None = None
        self.remote_host: str | None = None
        self.remote_port: int | None = None
        self.remote_path = ""
        self.server: uvicorn.Server | None = None
        self._transport = transport
        self.configure()
        self.app = self._create_app()

    def configure(self, port: int | None = None, secret: str | None = None) -> Host:
        configuration = dict(self.config.get("host") or {}) if self.config is not None else {}
        self.secret = secret or configuration.get("secret") or None
        self.port = int(port or configuration.get("port") or DEFAULT_PORT)
        self.bind = configuration.get("host") or self.bind
        return self

    # ── Server ──────────────────────────────────────────────────

    async def run(self, port: int | None = None, secret: str | None = None) -> None:
        """Serve until ``kill()`` is called."""
        self.configure(port, secret)
        self.server = uvicorn.Server(
            uvicorn.Config(self.app, host=self.bind, port=self.port, log_level="warning")
        )
        ready = asyncio.create_task(self._announce_ready())
        try:
            await self.server.serve()
        finally:
            ready.cancel()

    async def _announce_ready(self) -> None:
        while self.server is not None and not self.server.started:
            await asyncio.sleep(0.05)
        self.reporter.emit("report:remote:ready", {"ip": local_ip(), "port": self.port})

    def kill(self) -> None:
        if self.server is not None:
            self.server.should_exit = True

    # ── Routing ─────────────────────────────────────────────────

    def _create_app(self) -> FastAPI:
        app = FastAPI(title="chainwright host", docs_url=None, redoc_url=None, openapi_url=None)

        @app.api_route("/{path:path}", methods=ALL_METHODS)
        async def dispatch(request: Request, path: str) -> Response:
            url_path = "/" + path
            if LAUNCH_PREFIX in url_path:
                return await self._launcher(request, url_path)
            if KILL_PATH in url_path:
                return await self._killer()
            return await self._proxy(request, url_path)

        return app

    @staticmethod
    def _client_ip(request: Request) -> str | None:
        return request.client.host if request.client else None

    async def _launcher(self, request: Request, url_path: str) -> Response:
        browser = url_path.split(LAUNCH_PREFIX, 1)[1].strip("/")
        if self.secret and request.headers.get("secret-token") != self.secret:
            log.warning("Rejected launch of %r from %s: bad secret", browser, self._client_ip(request))
            return _closed({"error": "Secrets do not match"})

        try:
            bro = self.browsers.create(browser)
            await bro.launch({}, self.reporter, self.config)
        except Exception as exc:
            log.error("Launching %r failed: %s", browser, exc)
            return _closed({"error": f'The requested browser "{browser}" could not be loaded'})

        self.bro = bro
        self.remote_id = self._client_ip(request)
        self.remote_host = bro.get_host()
        self.remote_port = bro.get_port()
        self.remote_path = bro.path.lstrip("/")
        self.reporter.emit("report:remote:established", {"id": self.remote_id, "browser": bro.long_name})
        return _closed(
            {
                "browser": browser,
                "caps": bro.desired_capabilities,
                "defaults": bro.driver_defaults,
                "name": bro.long_name,
            }
        )

    async def _killer(self) -> Response:
        name = None
        if self.bro is not None:
            name = self.bro.long_name
            await self.bro.kill()
        self.reporter.emit("report:remote:closed", {"id": self.remote_id, "browser": name})
        return _closed()

    def _upstream_url(self, request: Request, url_path: str) -> str:
        prefix = f"/{self.remote_path}" if self.remote_path else ""
        url = f"http://{self.remote_host}:{self.remote_port}{prefix}{url_path}"
        if request.url.query:
            url += "?" + request.url.query
        return url

    async def _proxy(self, request: Request, url_path: str) -> Response:
        caller = self._client_ip(request)
        if self.remote_id is None or caller != self.remote_id:
            log.warning("Dropped %s %s from unauthorized address %s", request.method, url_path, caller)
            return _closed()

        body = await request.body()
        headers = {}
        if request.headers.get("content-type"):
            headers["content-type"] = request.headers["content-type"]
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=PROXY_TIMEOUT) as client:
                upstream = await client.request(
                    request.method, self._upstream_url(request, url_path), content=body, headers=headers
                )
        except httpx.HTTPError as exc:
            log.error("Proxying %s %s failed: %s", request.method, url_path, exc)
            return JSONResponse({"error": str(exc)}, status_code=502)

        forwarded: dict[str, str] = {}
        if url_path.rstrip("/").endswith("/session"):
            forwarded = {k: v for k, v in upstream.headers.items() if k.lower() not in HOP_HEADERS}
        return Response(content=upstream.content, status_code=upstream.status_code, headers=forwarded)
