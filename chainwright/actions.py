"""Browser actions: chainable commands without pass/fail semantics of their own."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from bs4 import BeautifulSoup

from chainwright.correlation import ResultCallback, ResultMessage

if TYPE_CHECKING:
    from chainwright.unit import Unit

log = logging.getLogger(__name__)

DEFAULT_WAIT_MS = 5000

MOUSE_BUTTONS = {"LEFT": 0, "MIDDLE": 1, "RIGHT": 2}

# Public chain methods the test unit forwards to its Actions instance
ACTION_METHODS = (
    "query",
    "S",
    "mouse_event",
    "set_http_auth",
    "to_frame",
    "to_parent",
    "to_window",
    "to_parent_window",
    "wait_for_resource",
    "wait_for_text",
    "wait_until_visible",
    "wait_while_visible",
    "screenshot",
    "wait",
    "reload",
    "forward",
    "back",
    "click",
    "submit",
    "open",
    "type",
    "send_keys",
    "answer",
    "execute",
    "wait_for",
    "accept",
    "dismiss",
    "resize",
    "maximize",
    "set_cookie",
    "wait_for_element",
    "set_value",
    "button_click",
    "move_to",
    "close",
)


def _timeout(value: Any, default: int = DEFAULT_WAIT_MS) -> int:
    return int(value) if value else default


class Actions:
    """Queues driver commands on behalf of a test unit.

    Every method returns the unit so calls can be chained::

        test.open("http://example.com").click("#nav").done()

    While a ``query(selector)`` scope is open, selector arguments are taken
    from the scope and the remaining arguments shift one position left.
    """

    def __init__(self, unit: Unit):
        self.unit = unit

    # ── Scoping ─────────────────────────────────────────────────

    def query(self, selector: str) -> Unit:
        unit = self.unit
        unit.last_chain.append("querying")
        unit.selector = selector
        unit.querying = True
        return unit

    S = query

    def _scoped(self, selector: str | None) -> str | None:
        return self.unit.selector if self.unit.querying else selector

    # ── Queueing ────────────────────────────────────────────────

    def _enqueue(
        self,
        method: str,
        args: list[Any],
        type_: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Unit:
        if method not in ("screenshot", "imagecut"):
            self.unit.screenshot_params = None
        self.unit.queue.enqueue(method, args, callback or self._generate_callback(type_ or method))
        return self.unit

    def _generate_callback(self, type_: str) -> ResultCallback:
        def callback(message: ResultMessage) -> None:
            value = "" if message.value is None else message.value
            if message.key == "execute":
                value = self._apply_execute_result(value)
            self.unit.reporter.emit(
                "report:action",
                {"value": value, "type": type_, "uuid": message.hash},
            )

        return callback

    def _apply_execute_result(self, value: Any) -> str:
        """Merge browser-side context vars and report in-browser checks."""
        if not isinstance(value, dict):
            return ""
        self.unit.context_vars.update(value.get("context") or {})
        for check in value.get("tests") or []:
            ok = bool(check.get("ok"))
            self.unit.reporter.emit(
                "report:assertion",
                {
                    "success": ok,
                    "expected": True,
                    "value": ok,
                    "message": check.get("message"),
                    "type": "OK",
                },
            )
            self.unit.increment_expectations()
            if not ok:
                self.unit.increment_failed_assertions()
        return ""

    # ── Contexts ────────────────────────────────────────────────

    def mouse_event(self, type_: str, selector: str | None = None) -> Unit:
        return self._enqueue("mouse_event", [type_, self._scoped(selector)])

    def set_http_auth(self, username: str, password: str) -> Unit:
        return self._enqueue("set_http_auth", [username, password])

    def to_frame(self, selector: str | None = None) -> Unit:
        return self._enqueue("to_frame", [self._scoped(selector)])

    def to_parent(self) -> Unit:
        return self._enqueue("to_frame", [None])

    def to_window(self, name: str) -> Unit:
        return self._enqueue("to_window", [name])

    def to_parent_window(self) -> Unit:
        return self._enqueue("to_window", [None])

    # ── Waiting ─────────────────────────────────────────────────

    def wait_for_resource(self, resource: str, timeout: int | None = None) -> Unit:
        return self._enqueue("wait_for_resource", [resource, _timeout(timeout)])

    def wait_for_text(self, text: str, timeout: int | None = None) -> Unit:
        return self._enqueue("wait_for_text", [text, _timeout(timeout)])

    def wait_until_visible(self, selector: Any = None, timeout: int | None = None) -> Unit:
        if self.unit.querying:
            selector, timeout = self.unit.selector, selector
        return self._enqueue("wait_until_visible", [selector, _timeout(timeout)])

    def wait_while_visible(self, selector: Any = None, timeout: int | None = None) -> Unit:
        if self.unit.querying:
            selector, timeout = self.unit.selector, selector
        return self._enqueue("wait_while_visible", [selector, _timeout(timeout)])

    def wait(self, timeout: int | None = None) -> Unit:
        return self._enqueue("wait", [_timeout(timeout)])

    def wait_for_element(self, selector: Any = None, timeout: int | None = None) -> Unit:
        if self.unit.querying:
            selector, timeout = self.unit.selector, selector
        timeout = _timeout(timeout, self.unit.wait_timeout)
        return self._enqueue("wait_for_element", [selector, timeout])

    def wait_for(self, script: str, *args: Any, timeout: int | None = None) -> Unit:
        return self._enqueue(
            "wait_for",
            [script, [self.unit.context_vars, *args], _timeout(timeout)],
        )

    # ── Screenshots ─────────────────────────────────────────────

    def screenshot(self, pathname: str, selector: str | None = None) -> Unit:
        selector = self._scoped(selector)
        params: dict[str, Any] = {"realpath": None, "selector": selector}
        self.unit.screenshot_params = params

        def on_screenshot(message: ResultMessage) -> None:
            params["realpath"] = message.value
            self.unit.reporter.emit(
                "report:action",
                {"value": message.value, "type": "screenshot", "uuid": message.hash},
            )

        command = self.unit.queue.enqueue("screenshot", ["", pathname], on_screenshot)
        if selector:
            self._enqueue("imagecut", [params], type_="screenshot element")
        self.unit.reporter.emit(
            "report:screenshot",
            {"pathname": pathname, "uuid": command.correlation_id},
        )
        return self.unit

    # ── Navigation ──────────────────────────────────────────────

    def reload(self) -> Unit:
        return self._enqueue("refresh", [])

    def forward(self) -> Unit:
        return self._enqueue("forward", [])

    def back(self) -> Unit:
        return self._enqueue("back", [])

    def open(self, location: str) -> Unit:
        base_url = self.unit.config.get("baseUrl") if self.unit.config else None
        if location.startswith("/") and base_url:
            location = base_url.rstrip("/") + location
        return self._enqueue("open", [location])

    # ── Interaction ─────────────────────────────────────────────

    def click(self, selector: str | None = None) -> Unit:
        return self._enqueue("click", [self._scoped(selector)])

    def submit(self, selector: str | None = None) -> Unit:
        return self._enqueue("submit", [self._scoped(selector)])

    def type(self, selector: Any, keystrokes: Any = None) -> Unit:
        if self.unit.querying:
            selector, keystrokes = self.unit.selector, selector
        return self._enqueue("type", [selector, keystrokes])

    def send_keys(self, selector: Any, keystrokes: Any = None) -> Unit:
        if self.unit.querying:
            selector, keystrokes = self.unit.selector, selector
        return self._enqueue("send_keys", [selector, keystrokes])

    def set_value(self, selector: Any, value: Any = None) -> Unit:
        if self.unit.querying:
            selector, value = self.unit.selector, selector
        return self._enqueue("set_value", [selector, value])

    def answer(self, keystrokes: str) -> Unit:
        return self._enqueue("prompt_text", [keystrokes])

    def execute(self, script: str, *args: Any) -> Unit:
        return self._enqueue("execute", [script, [self.unit.context_vars, *args]])

    def accept(self) -> Unit:
        return self._enqueue("accept_alert", [])

    def dismiss(self) -> Unit:
        return self._enqueue("dismiss_alert", [])

    def resize(self, dimensions: dict[str, int]) -> Unit:
        return self._enqueue("resize", [dimensions])

    def maximize(self) -> Unit:
        return self._enqueue("maximize", [])

    def set_cookie(self, name: str, contents: str) -> Unit:
        return self._enqueue("set_cookie", [name, contents])

    def button_click(self, button: int | str | None = None) -> Unit:
        if button is None:
            button = 0
        elif not isinstance(button, int):
            button = MOUSE_BUTTONS.get(str(button).upper(), 0)
        return self._enqueue("button_click", [button])

    def move_to(self, selector: str | None = None, x: int | None = None, y: int | None = None) -> Unit:
        return self._enqueue("moveto", [self._scoped(selector), x, y])

    def close(self) -> Unit:
        """Close the active window and switch back to its parent."""
        self._enqueue("close", [])
        return self.to_parent_window()


class ActionLogger:
    """``test.log.dom(...)`` / ``test.log.message(...)``."""

    def __init__(self, unit: Unit):
        self.unit = unit

    def dom(self, selector: str | None = None) -> Unit:
        def callback(message: ResultMessage) -> None:
            soup = BeautifulSoup(message.value or "", "html.parser")
            if selector:
                element = soup.select_one(selector)
                result = element.decode_contents() if element is not None else ""
            else:
                result = str(soup)
            self.unit.reporter.emit(
                "report:log:user",
                f"DOM: {selector or ' '} {result or ' Not found'}",
            )

        self.unit.queue.enqueue("source", [], callback)
        return self.unit

    def message(self, message: Any | Callable[..., Any]) -> Unit:
        def callback(result: ResultMessage) -> None:
            value = result.value
            if callable(value):
                value = value(self.unit)
            self.unit.reporter.emit("report:log:user", f"MESSAGE: {value}")

        self.unit.queue.enqueue("noop", [message], callback)
        return self.unit
