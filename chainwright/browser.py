"""Browser launchers: what a driver talks to, and what the tunnel host serves."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from chainwright.events import EventEmitter
from chainwright.registry import BROWSERS

log = logging.getLogger(__name__)


class Browser(ABC):
    """A browser session endpoint.

    After ``launch()`` the session answers WebDriver-style calls at
    ``http://{get_host()}:{get_port()}/{path}``.
    """

    long_name = ""
    path = ""
    host = "localhost"
    port = 0

    def __init__(self):
        self.desired_capabilities: dict[str, Any] = {}
        self.driver_defaults: dict[str, Any] = {}

    @abstractmethod
    async def launch(self, configuration: dict[str, Any], reporter: EventEmitter, config: Any) -> None:
        ...

    @abstractmethod
    async def kill(self) -> None:
        ...

    def get_host(self) -> str:
        return self.host

    def get_port(self) -> int:
        return self.port


@BROWSERS.register("attached")
class AttachedBrowser(Browser):
    """A browser endpoint that is already running, e.g. a local chromedriver.

    Host, port, path and capabilities come from ``browsers.<name>`` in the
    config; nothing is started or stopped.
    """

    long_name = "Attached browser"

    def __init__(self, name: str = "attached"):
        super().__init__()
        self.name = name

    async def launch(self, configuration: dict[str, Any], reporter: EventEmitter, config: Any) -> None:
        settings = config.browser_config(self.name) if config is not None else {}
        settings.update(configuration or {})
        self.host = settings.get("host", self.host)
        self.port = int(settings.get("port", 4444))
        self.path = settings.get("path", self.path)
        self.long_name = settings.get("longName", self.long_name)
        self.desired_capabilities = dict(settings.get("caps") or {})
        self.driver_defaults = dict(settings.get("defaults") or {})
        log.info("Using browser endpoint %s:%s/%s", self.host, self.port, self.path)
        reporter.emit("report:log:system", f"Attached to {self.long_name} at {self.host}:{self.port}")

    async def kill(self) -> None:
        log.info("Detached from %s:%s", self.host, self.port)
