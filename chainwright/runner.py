"""Top-level run: reporters, assertion tally, drivers, exit code."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from websockets.exceptions import WebSocketException

from chainwright.config import DEFAULTS, Config
from chainwright.driver import Driver
from chainwright.errors import ChainwrightError
from chainwright.events import EventEmitter
from chainwright.host import Host
from chainwright.registry import BROWSERS, DRIVERS, REPORTERS, Registry
from chainwright.timer import Timer

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NO_TESTS = 127


class Runner:
    """One ``chainwright run`` (or ``chainwright host``) invocation.

    ``run()`` returns the process exit code: 0 when every assertion passed,
    1 otherwise, 127 when there were no test files to run.
    """

    def __init__(
        self,
        options: dict[str, Any] | None = None,
        advanced: dict[str, Any] | None = None,
        *,
        defaults: dict[str, Any] | None = None,
        reporters: Registry = REPORTERS,
        drivers: Registry = DRIVERS,
        browsers: Registry = BROWSERS,
    ):
        self.options = self.normalize_options(dict(options or {}))
        self.config = Config(DEFAULTS if defaults is None else defaults, self.options, advanced)
        if self.options.get("tests"):
            self.config.set("tests", list(self.options["tests"]))
        self.drivers = drivers
        self.browsers = browsers

        self.runner_status = True
        self.assertions_passed = 0
        self.assertions_failed = 0
        self.timer = Timer()

        self.reporter = EventEmitter()
        self.driver_events = EventEmitter()
        self.reporters = [
            reporters.create(name, self.reporter, self.config)
            for name in self.config.verify_reporters(self.config.get("reporter") or [], reporters)
        ]
        self.reporter.on("report:assertion", self._on_report_assertion)

    @staticmethod
    def normalize_options(options: dict[str, Any]) -> dict[str, Any]:
        for key in ("reporter", "driver", "browser"):
            if options.get(key):
                options[key] = [item.strip() for item in options[key]]
        return options

    def _on_report_assertion(self, assertion: dict[str, Any]) -> None:
        if assertion.get("success"):
            self.assertions_passed += 1
        else:
            self.runner_status = False
            self.assertions_failed += 1

    async def run(self) -> int:
        if self.options.get("remote"):
            await self.run_host()
            return EXIT_OK

        tests = self.config.get("tests")
        if not isinstance(tests, list) or not tests:
            self.reporter.emit("error", "No test files given!")
            self.driver_events.emit("killAll")
            return EXIT_NO_TESTS

        self.timer.start()
        self.reporter.emit("report:runner:started")
        driver = Driver(
            self.config, self.driver_events, self.reporter, drivers=self.drivers, browsers=self.browsers
        )
        try:
            await driver.run()
        except (ChainwrightError, OSError, httpx.HTTPError, WebSocketException) as exc:
            self.shutdown(exc)
            return EXIT_FAILED
        self.driver_events.emit("tests:complete")
        self.report_run_finished()
        return EXIT_OK if self.runner_status else EXIT_FAILED

    async def run_host(self) -> None:
        remote = self.options.get("remote")
        port = remote if isinstance(remote, int) and not isinstance(remote, bool) else None
        host = Host(self.reporter, self.config, browsers=self.browsers)
        self.driver_events.on("killAll", lambda *_: host.kill())
        await host.run(port=port, secret=self.options.get("secret"))

    def report_run_finished(self) -> None:
        self.reporter.emit(
            "report:runner:finished",
            {
                "elapsedTime": self.timer.stop().get_elapsed_time_formatted(),
                "assertions": self.assertions_failed + self.assertions_passed,
                "assertionsFailed": self.assertions_failed,
                "assertionsPassed": self.assertions_passed,
                "status": self.runner_status,
            },
        )

    def shutdown(self, exception: BaseException) -> None:
        """Fatal path: stop every driver and browser, report the error."""
        log.error("Run aborted: %s", exception)
        self.runner_status = False
        self.driver_events.emit("killAll")
        self.reporter.emit("error", str(exception))
