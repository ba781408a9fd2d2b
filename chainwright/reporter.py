"""Reporters: consumers of the ``report:*`` events a run emits."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from chainwright.events import EventEmitter
from chainwright.registry import REPORTERS

log = logging.getLogger(__name__)


@REPORTERS.register("console")
class ConsoleReporter:
    """Prints one line per event."""

    def __init__(self, events: EventEmitter, config: Any = None):
        self.events = events
        self.config = config
        events.on("report:runner:started", self.runner_started)
        events.on("report:run:browser", lambda name: print(f"Running tests in {name}"))
        events.on("report:testsuite:started", self.testsuite_started)
        events.on("report:test:started", lambda data: print(f"  RUNNING TEST - {data['name']}"))
        events.on("report:action", self.action)
        events.on("report:assertion", self.assertion)
        events.on("report:test:finished", self.test_finished)
        events.on("report:log:user", lambda message: print(f"    {message}"))
        events.on("report:remote:ready", self.remote_ready)
        events.on("report:remote:established", lambda data: print(f"Remote session established: {data}"))
        events.on("report:remote:closed", lambda data: print(f"Remote session closed: {data}"))
        events.on("report:runner:finished", self.runner_finished)
        events.on("warning", lambda message: print(f"  WARNING: {message}"))
        events.on("error", lambda message: print(f"  ERROR: {message}"))

    def runner_started(self, *_: Any) -> None:
        print("Running tests")

    def testsuite_started(self, name: str | None) -> None:
        if name:
            print(f"\n--- {name} ---")

    def action(self, data: dict[str, Any]) -> None:
        value = f" {data['value']}" if data.get("value") not in (None, "") else ""
        print(f"    > {data['type'].upper()}{value}")

    def assertion(self, data: dict[str, Any]) -> None:
        mark = "✔" if data["success"] else "✘"
        message = data.get("message") or data["type"].upper()
        line = f"    {mark} {message}"
        if not data["success"]:
            line += f" (expected {data['expected']!r}, got {data['value']!r})"
        print(line)

    def test_finished(self, data: dict[str, Any]) -> None:
        status = "PASSED" if data["status"] else "FAILED"
        print(
            f"  {status} - {data['name']} "
            f"({data['passedAssertions']}/{data['runnedExpectations']} assertions)"
        )

    def remote_ready(self, data: dict[str, Any]) -> None:
        print(f"Remote host ready at {data['ip']}:{data['port']}")

    def runner_finished(self, data: dict[str, Any]) -> None:
        elapsed = data["elapsedTime"]
        print(f"\n{'=' * 50}")
        print(
            f"{'PASSED' if data['status'] else 'FAILED'}: "
            f"{data['assertionsPassed']}/{data['assertions']} assertions passed"
        )
        print(f"Elapsed: {elapsed['hours']}h {elapsed['minutes']}m {elapsed['seconds']}s")


@dataclass
class UnitReport:
    name: str | None
    status: bool | None = None
    actions: list[dict[str, Any]] = field(default_factory=list)
    assertions: list[dict[str, Any]] = field(default_factory=list)
    passed: int = 0
    failed: int = 0


@dataclass
class SuiteReport:
    name: str | None
    tests: list[UnitReport] = field(default_factory=list)


@dataclass
class RunReport:
    browsers: list[str] = field(default_factory=list)
    suites: list[SuiteReport] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)


@REPORTERS.register("json")
class JsonReporter:
    """Collects the run into one document.

    Written to ``json-reporter.dest`` from the config when the run finishes,
    if that option is set.
    """

    def __init__(self, events: EventEmitter, config: Any = None):
        self.config = config
        self.report = RunReport()
        self._suite: SuiteReport | None = None
        self._test: UnitReport | None = None
        events.on("report:run:browser", self.report.browsers.append)
        events.on("report:testsuite:started", self.testsuite_started)
        events.on("report:test:started", self.test_started)
        events.on("report:action", self.action)
        events.on("report:assertion", self.assertion)
        events.on("report:test:finished", self.test_finished)
        events.on("warning", lambda message: self.report.warnings.append(str(message)))
        events.on("error", lambda message: self.report.errors.append(str(message)))
        events.on("report:runner:finished", self.runner_finished)

    def testsuite_started(self, name: str | None) -> None:
        self._suite = SuiteReport(name=name)
        self.report.suites.append(self._suite)

    def test_started(self, data: dict[str, Any]) -> None:
        if self._suite is None:
            self.testsuite_started(None)
        self._test = UnitReport(name=data.get("name"))
        self._suite.tests.append(self._test)

    def action(self, data: dict[str, Any]) -> None:
        if self._test is not None:
            self._test.actions.append(dict(data))

    def assertion(self, data: dict[str, Any]) -> None:
        if self._test is not None:
            self._test.assertions.append(
                {k: data.get(k) for k in ("success", "expected", "value", "message", "type")}
            )

    def test_finished(self, data: dict[str, Any]) -> None:
        if self._test is None:
            return
        self._test.status = data["status"]
        self._test.passed = data["passedAssertions"]
        self._test.failed = data["failedAssertions"]
        self._test = None

    def runner_finished(self, data: dict[str, Any]) -> None:
        self.report.summary = dict(data)
        dest = None
        if self.config is not None:
            dest = (self.config.get("json-reporter") or {}).get("dest")
        if dest:
            Path(dest).write_text(self.to_json(), encoding="utf-8")
            log.info("JSON report written to %s", dest)

    def to_json(self) -> str:
        return json.dumps(asdict(self.report), indent=2, default=str)
