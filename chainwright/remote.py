"""Caller side of the tunnel: a browser that lives on another machine's host."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from chainwright.browser import Browser
from chainwright.errors import TunnelError
from chainwright.events import EventEmitter

log = logging.getLogger(__name__)

DEFAULT_PORT = 9020
LAUNCH_URL = "http://{host}:{port}/dalek/launch/{browser}"
KILL_URL = "http://{host}:{port}/dalek/kill"


class RemoteBrowser(Browser):
    """Asks a remote ``chainwright host`` to launch one of its local browsers.

    WebDriver calls then go to the tunnel, which proxies them to that
    browser. The alias and secret come from ``browsers.<name>`` in the
    config (``actAs`` / ``name`` / ``secret``).
    """

    port = DEFAULT_PORT

    def __init__(self, browser: str = "", transport: httpx.AsyncBaseTransport | None = None):
        super().__init__()
        self.host = ""
        self.browser = browser
        self.browser_alias = browser
        self.secret: str | None = None
        self.launch_url = ""
        self.kill_url = ""
        self.reporter: EventEmitter | None = None
        self._transport = transport

    def set_browser(self, browser: str) -> RemoteBrowser:
        self.browser = browser
        self.browser_alias = browser
        self._build_urls()
        return self

    def _build_urls(self) -> None:
        params = {"host": self.host, "port": self.port, "browser": self.browser_alias}
        self.launch_url = LAUNCH_URL.format(**params)
        self.kill_url = KILL_URL.format(**params)

    def load_configs(self, configuration: dict[str, Any], config: Any) -> RemoteBrowser:
        self.host = configuration.get("host") or self.host
        self.port = configuration.get("port") or self.port
        settings = config.browser_config(self.browser) if config is not None else {}
        self.browser_alias = settings.get("actAs") or self.browser_alias
        self.browser_alias = settings.get("name") or self.browser_alias
        self.secret = settings.get("secret") or self.secret
        self._build_urls()
        return self

    def _client(self) -> httpx.AsyncClient:
        headers = {"secret-token": self.secret} if self.secret else None
        return httpx.AsyncClient(headers=headers, transport=self._transport, timeout=30.0)

    async def launch(self, configuration: dict[str, Any], reporter: EventEmitter, config: Any) -> None:
        self.reporter = reporter
        self.load_configs(configuration or {}, config)
        log.info("Launching remote browser %s via %s", self.browser_alias, self.launch_url)
        async with self._client() as client:
            response = await client.get(self.launch_url)
        self._handshake_finished(response.json())

    def _handshake_finished(self, data: dict[str, Any]) -> None:
        if data.get("error"):
            if self.reporter is not None:
                self.reporter.emit("error", data["error"])
            raise TunnelError(data["error"])

        self.long_name = data.get("name") or ""
        self.desired_capabilities = data.get("caps") or {}
        self.driver_defaults = data.get("defaults") or {}
        if self.reporter is not None:
            self.reporter.emit(
                f"browser:notify:data:{self.browser}",
                {"desiredCapabilities": self.desired_capabilities, "defaults": self.driver_defaults},
            )

    async def kill(self) -> None:
        if not self.kill_url:
            return
        async with self._client() as client:
            await client.get(self.kill_url)
        log.info("Remote browser %s released", self.browser_alias)
