"""Test unit: one test function's queue, counters and completion lifecycle."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from uuid import uuid4

from chainwright.action_queue import ActionQueue
from chainwright.actions import ACTION_METHODS, DEFAULT_WAIT_MS, ActionLogger, Actions
from chainwright.assertions import AssertionRecord, Assertions
from chainwright.correlation import DRIVER_MESSAGE, RUN_COMPLETE, Correlator, ResultMessage
from chainwright.events import EventEmitter

log = logging.getLogger(__name__)

# Seconds a named test may run before done() is forced
DONE_TIMEOUT = 10.0


@dataclass
class SessionGate:
    """Orders tests that share one driver session.

    ``previous`` is the completion task of the test that most recently
    called ``done()``; the next test waits on it before touching the driver.
    """

    previous: asyncio.Task | None = None


class Unit:
    """The ``test`` object handed to every test function.

    Chained actions and assertions only queue commands. ``done()`` hands the
    queue to the driver once the previous test on the same session has
    finished, and its task resolves when the driver reports ``run.complete``.
    """

    def __init__(
        self,
        name: str | None,
        events: EventEmitter,
        driver: Any,
        reporter: EventEmitter,
        config: Any = None,
        *,
        gate: SessionGate | None = None,
        wait_timeout: int = DEFAULT_WAIT_MS,
        done_timeout: float = DONE_TIMEOUT,
    ):
        self.name = name
        self.uid = str(uuid4())
        self.events = events
        self.driver = driver
        self.reporter = reporter
        self.config = config
        self.gate = gate if gate is not None else SessionGate()
        self.wait_timeout = wait_timeout
        self.done_timeout = done_timeout

        self.expectation: int | None = None
        self.runned_expectations = 0
        self.failed_assertions = 0
        self.context_vars: dict[str, Any] = {}

        # Chain state shared with Actions and Assertions
        self.querying = False
        self.selector: str | None = None
        self.last_chain: list[str] = []
        self.screenshot_params: dict[str, Any] | None = None
        self.last_assertion: AssertionRecord | None = None

        self.correlator = Correlator(driver.events)
        self.queue = ActionQueue(driver, self.correlator, reporter)
        self.actions = Actions(self)
        self.assertions = Assertions(self)
        self.log = ActionLogger(self)

        self.task: asyncio.Task | None = None
        self._completion: asyncio.Future | None = None
        self._driver_task: asyncio.Future | None = None
        self._timer: asyncio.TimerHandle | None = None
        if name:
            self._timer = asyncio.get_running_loop().call_later(done_timeout, self._on_done_timeout)

    def __getattr__(self, name: str) -> Any:
        if name in ACTION_METHODS:
            actions = self.__dict__.get("actions")
            if actions is not None:
                return getattr(actions, name)
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    def __repr__(self) -> str:
        return f"<Unit {self.name!r} {self.uid}>"

    @property
    def assert_(self) -> Assertions:
        return self.assertions

    # ── Counters ────────────────────────────────────────────────

    def expect(self, count: int) -> Unit:
        """Declare how many assertions this test must run."""
        self.expectation = int(count)
        return self

    def increment_expectations(self) -> Unit:
        self.runned_expectations += 1
        return self

    def increment_failed_assertions(self) -> Unit:
        self.failed_assertions += 1
        return self

    def check_expectations(self) -> bool:
        return self.expectation is None or self.expectation == self.runned_expectations

    def check_assertions(self) -> bool:
        return self.failed_assertions == 0

    @property
    def status(self) -> bool:
        return self.check_expectations() and self.check_assertions()

    # ── Chain helpers ───────────────────────────────────────────

    def data(self, key: str, value: Any = None) -> Any:
        """Read a context var, or set it and continue the chain."""
        if value is None:
            return self.context_vars.get(key)
        self.context_vars[key] = value
        return self

    def chain(self) -> Assertions:
        return self.assertions.chain()

    def end(self) -> Unit:
        return self.assertions.end()

    def and_then(self, fn: Callable[[Unit], Any]) -> Unit:
        """Queue ``fn(test)``; an awaitable result is awaited in turn."""

        async def entry() -> None:
            result = fn(self)
            if inspect.isawaitable(result):
                await result

        self.queue.push(entry)
        return self

    start = and_then

    def node(self, fn: Callable[[Unit, Callable[..., None]], Any]) -> Unit:
        """Queue callback-style work: ``fn(test, callback)``."""

        async def entry() -> None:
            future = asyncio.get_running_loop().create_future()

            def callback(error: Any = None) -> None:
                if future.done():
                    return
                if error:
                    self.reporter.emit("error", str(error))
                    self.increment_failed_assertions()
                future.set_result(None)

            fn(self, callback)
            await future

        self.queue.push(entry)
        return self

    def promise(self, awaitable: Awaitable[Any] | Callable[[], Awaitable[Any]]) -> Unit:
        """Let the queue wait for an external awaitable."""

        async def entry() -> None:
            await (awaitable() if callable(awaitable) else awaitable)

        self.queue.push(entry)
        return self

    # ── Lifecycle ───────────────────────────────────────────────

    def done(self) -> asyncio.Task:
        """Hand the queued commands to the driver.

        Calling it again returns the same task.
        """
        if self.task is not None:
            return self.task
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.task = asyncio.get_running_loop().create_task(self._run(self.gate.previous))
        self.gate.previous = self.task
        return self.task

    def _on_done_timeout(self) -> None:
        self._timer = None
        log.warning("Test %r did not call done() within %ss", self.name, self.done_timeout)
        self.done()
        self.reporter.emit("warning", "done() not called before timeout!")

    async def _run(self, previous: asyncio.Task | None) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait([previous])
        # Results meant for an earlier test must not reach this one
        self.driver.events.remove_all_listeners(DRIVER_MESSAGE)
        self.correlator.attach()
        self.queue.push(self._test_fin)
        try:
            await self.queue.drain()
        finally:
            self.correlator.detach()
            self.driver.events.off(DRIVER_MESSAGE, self._on_driver_message)
        for error in self.queue.dispatch_errors:
            log.error("Test %r: %s", self.name, error)

    async def _test_fin(self) -> None:
        self._completion = asyncio.get_running_loop().create_future()
        end = getattr(self.driver, "end", None)
        if callable(end):
            end()
        self.reporter.emit("report:test:started", {"name": self.name})
        self.driver.events.on(DRIVER_MESSAGE, self._on_driver_message)
        try:
            result = self.driver.run()
        except Exception as exc:
            log.error("Driver run failed for %r: %s", self.name, exc)
            self.reporter.emit("error", str(exc))
            self._finish()
            return
        if inspect.isawaitable(result):
            self._driver_task = asyncio.ensure_future(result)
            self._driver_task.add_done_callback(self._on_driver_run_done)
        await self._completion

    def _on_driver_run_done(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error("Driver run failed for %r: %s", self.name, error)
            self.reporter.emit("error", str(error))
            self._finish()

    def _on_driver_message(self, data: Any) -> None:
        message = ResultMessage.coerce(data)
        if message is not None and message.key == RUN_COMPLETE:
            self._finish()

    def _finish(self) -> None:
        if self._completion is None or self._completion.done():
            return
        self.events.emit(f"test:{self.uid}:finished", "test:finished", self)
        status = self.status
        self.reporter.emit(
            "report:assertion:status",
            {"expected": self.expectation, "run": self.runned_expectations, "status": status},
        )
        self.reporter.emit(
            "report:test:finished",
            {
                "name": self.name,
                "id": self.uid,
                "passedAssertions": self.runned_expectations - self.failed_assertions,
                "failedAssertions": self.failed_assertions,
                "runnedExpectations": self.runned_expectations,
                "status": status,
            },
        )
        self._completion.set_result(status)
