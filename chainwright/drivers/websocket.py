"""Driver that forwards queued commands to a browser agent over a WebSocket.

Each command goes out as ``{"id", "method", "params": {"args": [...]}}``;
the agent answers ``{"id", "result"}`` or ``{"id", "error": {"message"}}``.
Replies are republished on ``events`` as ``driver:message`` results keyed by
the command name.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, Callable

import websockets

from chainwright.correlation import DRIVER_MESSAGE, RUN_COMPLETE
from chainwright.events import EventEmitter
from chainwright.registry import DRIVERS

log = logging.getLogger(__name__)

DEFAULT_WS_URL = "ws://localhost:9876"
RECV_TIMEOUT = 120
MAX_RECV_ATTEMPTS = 20
MAX_MESSAGE_SIZE = 10 * 1024 * 1024  # screenshots can exceed 1MB

COMMANDS = frozenset(
    {
        # actions
        "open", "click", "submit", "type", "send_keys", "set_value", "prompt_text",
        "execute", "wait_for", "wait", "wait_for_element", "wait_until_visible",
        "wait_while_visible", "wait_for_text", "wait_for_resource", "refresh",
        "forward", "back", "accept_alert", "dismiss_alert", "resize", "maximize",
        "set_cookie", "to_frame", "to_window", "screenshot", "imagecut",
        "mouse_event", "set_http_auth", "button_click", "moveto", "close",
        "source", "noop",
        # assertions
        "exists", "visible", "text", "alert_text", "title", "url", "attribute",
        "val", "css", "width", "height", "number_of_elements",
        "number_of_visible_elements", "selected", "enabled", "cookie",
        "http_status", "resource_exists", "evaluate", "imagecompare",
    }
)


@DRIVERS.register("websocket")
class WebSocketDriver:
    """Commands are buffered until ``run()``, then sent one at a time."""

    name = "websocket"

    def __init__(
        self,
        events: EventEmitter | None = None,
        reporter: EventEmitter | None = None,
        config: Any = None,
        browser_name: str = "",
        browser: Any = None,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self.events = events if events is not None else EventEmitter()
        self.reporter = reporter
        self.browser_name = browser_name
        self.browser = browser
        self.ws_url = (
            (config.get("ws_url") if config is not None else None)
            or os.environ.get("CHAINWRIGHT_WS_URL")
            or DEFAULT_WS_URL
        )
        self.commands: list[dict[str, Any]] = []
        self._connect = connect
        self._ws: Any = None

    def __getattr__(self, method: str) -> Callable[..., None]:
        if method not in COMMANDS:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {method!r}")

        def command(*args: Any) -> None:
            *params, correlation_id = args
            self.commands.append({"id": correlation_id, "method": method, "params": {"args": params}})

        return command

    async def start(self) -> None:
        log.info("Connecting to browser agent at %s", self.ws_url)
        self._ws = await self._connect(self.ws_url, max_size=MAX_MESSAGE_SIZE)
        self.events.emit(f"driver:ready:{self.name}:{self.browser_name}")

    async def run(self) -> None:
        """Send the buffered commands, then signal ``run.complete``."""
        commands, self.commands = self.commands, []
        for command in commands:
            if command["method"] == "noop":
                args = command["params"]["args"]
                value = args[0] if args else None
            else:
                value = await self._call(command)
            self.events.emit(
                DRIVER_MESSAGE, {"key": command["method"], "hash": command["id"], "value": value}
            )
        self.events.emit(DRIVER_MESSAGE, {"key": RUN_COMPLETE, "value": None})

    async def _call(self, command: dict[str, Any]) -> Any:
        if self._ws is None:
            raise RuntimeError("WebSocket driver used before start()")
        await self._ws.send(json.dumps(command))
        for _ in range(MAX_RECV_ATTEMPTS):
            raw = await asyncio.wait_for(self._ws.recv(), timeout=RECV_TIMEOUT)
            resp = json.loads(raw)
            if resp.get("id") != command["id"]:
                log.debug("Skipping reply %s while waiting for %s", resp.get("id"), command["id"])
                continue
            self.events.emit("driver:webdriver:response", {"method": command["method"], "response": resp})
            if "error" in resp:
                message = (resp["error"] or {}).get("message", "Unknown browser error")
                log.warning("%s failed: %s", command["method"], message)
                if self.reporter is not None:
                    self.reporter.emit("warning", f"{command['method']}: {message}")
                return None
            return resp.get("result")
        raise RuntimeError(f"No reply to {command['method']} after {MAX_RECV_ATTEMPTS} messages")

    async def kill(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
