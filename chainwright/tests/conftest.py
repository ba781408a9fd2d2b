"""Shared fakes for the chainwright tests."""

from typing import Any

import pytest

from chainwright.events import EventEmitter

# Optional driver hooks the fake does not implement
NOT_COMMANDS = frozenset({"end", "start", "set_browser", "kill"})


class FakeDriver:
    """Records issued commands and answers them when ``run()`` is called.

    Every command result defaults to ``"true"``; ``values`` maps a method
    name to a fixed value or to a callable of the command's arguments.
    """

    def __init__(self, values=None, missing=(), reverse=False, complete=True):
        self.events = EventEmitter()
        self.calls: list[tuple[str, tuple]] = []
        self.values: dict[str, Any] = dict(values or {})
        self.missing = set(missing)
        self.reverse = reverse
        self.complete = complete
        self.pending: list[tuple[str, str, Any]] = []
        self.runs = 0

    def __getattr__(self, method):
        if method.startswith("_") or method in NOT_COMMANDS or method in self.__dict__.get("missing", ()):
            raise AttributeError(method)

        def command(*args):
            *params, correlation_id = args
            self.calls.append((method, tuple(params)))
            if method == "noop":
                value = params[0] if params else None
            else:
                value = self.values.get(method, "true")
                if callable(value):
                    value = value(*params)
            self.pending.append((method, correlation_id, value))

        return command

    @property
    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def run(self):
        self.runs += 1
        results, self.pending = self.pending, []
        if self.reverse:
            results.reverse()
        for method, correlation_id, value in results:
            self.events.emit("driver:message", {"key": method, "hash": correlation_id, "value": value})
        if self.complete:
            self.events.emit("driver:message", {"key": "run.complete", "value": None})


class Recorder:
    """Collects every event emitted on an emitter as ``(event, args)``."""

    def __init__(self, emitter: EventEmitter):
        self.events: list[tuple[str, tuple]] = []
        emitter.on_any(self._record)

    def _record(self, event, *args):
        self.events.append((event, args))

    def named(self, event: str) -> list[Any]:
        return [args[0] if args else None for name, args in self.events if name == event]

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def reporter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def recorder(reporter: EventEmitter) -> Recorder:
    return Recorder(reporter)


@pytest.fixture
def make_driver():
    return FakeDriver
