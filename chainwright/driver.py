"""Run-loop: every test file against every driver x browser pair, in series."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from chainwright.browser import Browser
from chainwright.config import Config
from chainwright.errors import RegistryError
from chainwright.events import EventEmitter
from chainwright.registry import BROWSERS, DRIVERS, Registry
from chainwright.remote import RemoteBrowser
from chainwright.suite import Suite
from chainwright.unit import DONE_TIMEOUT, SessionGate

log = logging.getLogger(__name__)


@dataclass
class BrowserConfiguration:
    name: str
    configuration: dict[str, Any] = field(default_factory=dict)
    module: Browser | None = None


def _schedule(fn: Callable[[], Any]) -> Callable[..., None]:
    """Adapt a possibly-async callable to a sync event listener."""

    def listener(*_: Any) -> None:
        result = fn()
        if inspect.isawaitable(result):
            asyncio.ensure_future(result)

    return listener


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class Driver:
    """Resolves drivers and browsers from the registries and runs the suites.

    All suites of one driver x browser pair share one driver instance and
    one SessionGate, so their tests never interleave on the session.
    """

    def __init__(
        self,
        config: Config,
        driver_events: EventEmitter,
        reporter: EventEmitter,
        *,
        drivers: Registry = DRIVERS,
        browsers: Registry = BROWSERS,
    ):
        self.config = config
        self.driver_events = driver_events
        self.reporter = reporter
        self.drivers = drivers
        self.browsers = browsers
        self.browser_names = [b.strip() for b in config.get("browser") or []]
        self.files = list(config.get("tests") or [])
        self.driver_names = config.verify_drivers(
            [d.strip() for d in config.get("driver") or []], drivers
        )

    # ── Browser resolution ──────────────────────────────────────

    def load_browser_configuration(self, browser: str) -> BrowserConfiguration:
        configuration = self.config.browser_config(browser)
        if configuration.get("type") == "remote":
            return BrowserConfiguration(browser, configuration, RemoteBrowser(browser))
        if browser in self.browsers:
            return BrowserConfiguration(browser, configuration, self.browsers.create(browser))
        act_as = configuration.get("actAs")
        if act_as and act_as in self.browsers:
            return BrowserConfiguration(browser, configuration, self.browsers.create(act_as))
        if ":" in browser:
            name, browser_type = (part.strip() for part in browser.split(":", 1))
            configuration = {**configuration, "type": browser_type.lower()}
            return BrowserConfiguration(browser, configuration, self.browsers.create(name))
        raise RegistryError(f'The requested browser "{browser}" is not registered')

    def couple_reporter_events(self, driver_name: str, browser: str) -> list[tuple[str, Callable[..., Any]]]:
        """Status listeners forwarding a pair's driver events to the reporter."""
        suffix = f"{driver_name}:{browser}"
        return [
            (
                f"driver:sessionStatus:{suffix}",
                lambda *args: self.reporter.emit("report:driver:session", *args),
            ),
            (
                f"driver:status:{suffix}",
                lambda *args: self.reporter.emit("report:driver:status", *args),
            ),
        ]

    def _on_webdriver_response(self, response: Any) -> None:
        if isinstance(response, dict):
            self.reporter.emit(
                "report:log:system:webdriver", f"webdriver: {response.get('method')}"
            )
            self.reporter.emit(
                "report:log:system:webdriver", f"webdriver: {response.get('response')}"
            )
        else:
            self.reporter.emit("report:log:system:webdriver", f"webdriver: {response}")

    # ── Running ─────────────────────────────────────────────────

    async def run(self) -> None:
        for driver_name in self.driver_names:
            for browser in self.browser_names:
                await self.run_browser(driver_name, browser)

    async def run_browser(self, driver_name: str, browser: str) -> None:
        browser_configuration = self.load_browser_configuration(browser)
        module = browser_configuration.module
        set_browser = getattr(module, "set_browser", None)
        if callable(set_browser):
            set_browser(browser)

        self.reporter.emit("report:log:system", f'chainwright: Loading driver "{driver_name}"')
        # Listeners of this pair, removed again once it is finished
        listeners: list[tuple[str, Callable[..., Any]]] = []

        def listen(event: str, listener: Callable[..., Any]) -> None:
            self.driver_events.on(event, listener)
            listeners.append((event, listener))

        kill: Callable[[], Any] | None = None
        if module is not None:
            await module.launch(browser_configuration.configuration, self.reporter, self.config)
            listen("killAll", _schedule(module.kill))
        try:
            instance = self.drivers.create(
                driver_name,
                events=self.driver_events,
                reporter=self.reporter,
                config=self.config,
                browser_name=browser,
                browser=module,
            )
            for event, listener in self.couple_reporter_events(driver_name, browser):
                listen(event, listener)
            kill = getattr(instance, "kill", None)
            if callable(kill):
                listen("killAll", _schedule(kill))
            listen("driver:webdriver:response", self._on_webdriver_response)

            start = getattr(instance, "start", None)
            if callable(start):
                ready = asyncio.get_running_loop().create_future()
                self.driver_events.once(
                    f"driver:ready:{driver_name}:{browser}",
                    lambda *_: ready.done() or ready.set_result(None),
                )
                await _maybe_await(start())
                await ready

            self.reporter.emit("report:run:browser", (module.long_name if module else "") or browser)
            await self.run_suites(instance)
        finally:
            if callable(kill):
                await _maybe_await(kill())
            if module is not None:
                await module.kill()
            for event, listener in listeners:
                self.driver_events.off(event, listener)
        self.driver_events.emit(f"tests:complete:{driver_name}:{browser}")

    async def run_suites(self, instance: Any) -> None:
        gate = SessionGate()
        for file in self.files:
            suite = Suite(
                file,
                instance,
                self.reporter,
                self.config,
                gate=gate,
                done_timeout=float(self.config.get("doneTimeout") or DONE_TIMEOUT),
                wait_timeout=self.config.get("waitTimeout"),
            )
            await suite.run()
