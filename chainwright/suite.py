"""Suite: one loaded test file whose tests run one after another."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import itertools
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Mapping

from chainwright.errors import SuiteLoadError
from chainwright.events import EventEmitter
from chainwright.unit import DONE_TIMEOUT, SessionGate, Unit

log = logging.getLogger(__name__)

TestFunction = Callable[[Unit], Any]

# Hook names as written in Python and as accepted from camelCase suites
HOOK_ALIASES = {
    "before_each": "beforeEach",
    "after_each": "afterEach",
    "setup": "setup",
    "teardown": "teardown",
}

_module_ids = itertools.count(1)


def import_suite_file(path: Path) -> ModuleType:
    """Import a test file under a private module name."""
    module_name = f"chainwright_suite_{path.stem}_{next(_module_ids)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise SuiteLoadError(f'Failure loading suite "{path}": not a Python file. Skipping!')
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise SuiteLoadError(
            f'{type(exc).__name__}: {exc}\nFailure loading suite "{path}". Skipping!'
        ) from exc
    return module


def _arity(fn: Callable[..., Any]) -> int:
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return 0
    return sum(1 for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD))


class Suite:
    """Runs the tests of one file in declaration order.

    The next test starts when the current one reports finished on the
    suite-local emitter. ``run()`` returns after teardown, or raises the
    first command dispatch error a test hit.
    """

    def __init__(
        self,
        source: str | Path | Mapping[str, Any],
        driver: Any,
        reporter: EventEmitter,
        config: Any = None,
        *,
        name: str | None = None,
        gate: SessionGate | None = None,
        done_timeout: float = DONE_TIMEOUT,
        wait_timeout: int | None = None,
    ):
        self.events = EventEmitter()
        self.driver = driver
        self.reporter = reporter
        self.config = config
        self.gate = gate if gate is not None else SessionGate()
        self.done_timeout = done_timeout
        self.wait_timeout = wait_timeout
        self.error: str | None = None
        self.name: str | None = name or (str(source) if not isinstance(source, Mapping) else None)
        self.options: dict[str, Any] = {}
        self.tests: dict[str, TestFunction] = {}
        self.tests_to_be_executed = 0
        self.current: Unit | None = None
        self._pending: list[str] = []
        self._future: asyncio.Future | None = None
        self._load(source)

    # ── Loading ─────────────────────────────────────────────────

    def _load(self, source: str | Path | Mapping[str, Any]) -> None:
        if isinstance(source, Mapping):
            self._collect(dict(source))
            return
        path = Path(source)
        if not path.is_absolute():
            path = Path.cwd() / path
        if not path.exists():
            self.error = f'Suite "{source}" does not exist. Skipping!'
            return
        try:
            module = import_suite_file(path)
        except SuiteLoadError as exc:
            log.warning("%s", exc)
            self.error = str(exc)
            return
        namespace = vars(module)
        tests = namespace.get("tests")
        if isinstance(tests, Mapping):
            found = dict(tests)
        else:
            found = {
                key: value
                for key, value in namespace.items()
                if key.startswith("test")
                and inspect.isfunction(value)
                and value.__module__ == module.__name__
            }
        if isinstance(namespace.get("name"), str):
            found["name"] = namespace["name"]
        if isinstance(namespace.get("options"), Mapping):
            found["options"] = namespace["options"]
        self._collect(found)

    def _collect(self, entries: dict[str, Any]) -> None:
        suite_name = entries.pop("name", None)
        if isinstance(suite_name, str):
            self.name = suite_name
        options = entries.pop("options", None)
        if isinstance(options, Mapping):
            self.options = dict(options)
        self.tests = entries

    # ── Execution ───────────────────────────────────────────────

    async def run(self) -> None:
        if self.error:
            self.reporter.emit("report:testsuite:started", None)
            self.reporter.emit("warning", self.error)
            self.reporter.emit("report:testsuite:finished", None)
            return

        self._pending = list(self.tests)
        self.tests_to_be_executed = len(self._pending)
        self._future = asyncio.get_running_loop().create_future()

        await self._hook("setup")
        self.reporter.emit("report:testsuite:started", self.name)
        if not self._pending:
            await self._hook("teardown")
            self.reporter.emit("report:testsuite:finished", self.name)
            return

        self.events.on_any(self._on_any)
        try:
            await self._execute_next()
            await self._future
        finally:
            self.events.off_any(self._on_any)

    def _hook_fn(self, name: str) -> Callable[..., Any] | None:
        hook = self.options.get(name) or self.options.get(HOOK_ALIASES[name])
        return hook if callable(hook) else None

    async def _hook(self, name: str) -> None:
        """Run a hook that is sync, async, or takes a completion callback."""
        hook = self._hook_fn(name)
        if hook is None:
            return
        if inspect.iscoroutinefunction(hook):
            await hook()
            return
        if _arity(hook) >= 1:
            future = asyncio.get_running_loop().create_future()

            def callback(*_: Any) -> None:
                if not future.done():
                    future.set_result(None)

            hook(callback)
            await future
            return
        result = hook()
        if inspect.isawaitable(result):
            await result

    def _new_unit(self, name: str) -> Unit:
        kwargs: dict[str, Any] = {"gate": self.gate, "done_timeout": self.done_timeout}
        if self.wait_timeout is not None:
            kwargs["wait_timeout"] = self.wait_timeout
        return Unit(name, self.events, self.driver, self.reporter, self.config, **kwargs)

    async def _execute_next(self) -> None:
        name = self._pending.pop(0)
        test = self._new_unit(name)
        self.current = test
        await self._hook("before_each")

        fn = self.tests.get(name)
        if not callable(fn):
            self.reporter.emit("warning", f'Test "{name}" does not exist! Skipping.')
            test.done()
            return
        try:
            result = fn(test)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            log.exception("Test %r raised", name)
            self.reporter.emit("error", f'Test "{name}" raised {type(exc).__name__}: {exc}')
            test.increment_failed_assertions()
            test.done()

    def _on_any(self, event: str, *args: Any) -> None:
        if self.current is not None and event == f"test:{self.current.uid}:finished":
            asyncio.get_running_loop().create_task(self._guarded(self._test_finished()))

    async def _guarded(self, step: Any) -> None:
        try:
            await step
        except Exception as exc:
            if self._future is not None and not self._future.done():
                self._future.set_exception(exc)

    async def _test_finished(self) -> None:
        test = self.current
        if test is not None and test.queue.dispatch_errors:
            raise test.queue.dispatch_errors[0]

        await self._hook("after_each")
        self.tests_to_be_executed -= 1
        if self.tests_to_be_executed > 0:
            await self._execute_next()
            return

        await self._hook("teardown")
        self.reporter.emit("report:testsuite:finished", self.name)
        if self._future is not None and not self._future.done():
            self._future.set_result(None)
