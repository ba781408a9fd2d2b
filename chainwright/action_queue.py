"""Ordered queue of deferred driver commands for a single test."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable
from uuid import uuid4

from chainwright.correlation import Correlator, ResultCallback
from chainwright.errors import CommandDispatchError
from chainwright.events import EventEmitter

log = logging.getLogger(__name__)

QueueEntry = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class Command:
    """One driver call; the correlation id is appended to ``args`` on issue."""

    method: str
    args: tuple[Any, ...]
    correlation_id: str = field(default_factory=lambda: str(uuid4()))


class ActionQueue:
    """Runs queue entries strictly one after another.

    Entry n+1 is not invoked before entry n has settled. A rejected entry
    is reported and recorded in ``errors``; the queue keeps going.
    """

    def __init__(self, driver: Any, correlator: Correlator, reporter: EventEmitter):
        self.driver = driver
        self.correlator = correlator
        self.reporter = reporter
        self.entries: list[QueueEntry] = []
        self.commands: list[Command] = []
        self.errors: list[Exception] = []

    def __len__(self) -> int:
        return len(self.entries)

    def push(self, entry: QueueEntry) -> None:
        self.entries.append(entry)

    def enqueue(self, method: str, args: list[Any] | tuple[Any, ...], callback: ResultCallback) -> Command:
        """Queue ``driver.<method>(*args, correlation_id)``.

        ``callback`` runs once, when a result with ``key == method`` and the
        command's correlation id arrives.
        """
        command = Command(method=method, args=tuple(args))
        self.commands.append(command)
        self.push(lambda: self._issue(command, callback))
        return command

    async def _issue(self, command: Command, callback: ResultCallback) -> None:
        fn = getattr(self.driver, command.method, None)
        if not callable(fn):
            raise CommandDispatchError(command.method)
        self.correlator.expect(command.correlation_id, command.method, callback)
        result = fn(*command.args, command.correlation_id)
        if inspect.isawaitable(result):
            await result

    async def drain(self) -> list[Exception]:
        """Run every entry, including ones pushed while draining."""
        while self.entries:
            entry = self.entries.pop(0)
            try:
                await entry()
            except Exception as exc:
                log.error("Queue entry failed: %s", exc)
                self.errors.append(exc)
                self.reporter.emit("error", str(exc))
        return self.errors

    @property
    def dispatch_errors(self) -> list[CommandDispatchError]:
        return [e for e in self.errors if isinstance(e, CommandDispatchError)]
