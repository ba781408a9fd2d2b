"""Matching of out-of-band driver results to the commands that issued them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from chainwright.events import EventEmitter

log = logging.getLogger(__name__)

DRIVER_MESSAGE = "driver:message"
RUN_COMPLETE = "run.complete"


@dataclass(frozen=True)
class ResultMessage:
    """A result posted by a driver on the shared channel."""

    key: str
    hash: str | None
    value: Any = None

    @classmethod
    def coerce(cls, data: Any) -> ResultMessage | None:
        """Accept either a ResultMessage or a ``{key, hash, value}`` dict."""
        if isinstance(data, cls):
            return data
        if isinstance(data, dict) and "key" in data:
            return cls(
                key=data["key"],
                hash=data.get("hash", data.get("uuid")),
                value=data.get("value"),
            )
        return None


ResultCallback = Callable[[ResultMessage], Any]


@dataclass
class Waiter:
    """A pending continuation for one correlation id."""

    key: str
    callback: ResultCallback
    message: ResultMessage | None = None


@dataclass
class Correlator:
    """Demultiplexes ``driver:message`` events by correlation id.

    Waiters are registered when a command is issued and removed when the
    first matching message arrives. Ids that were already consumed are
    remembered, so a re-delivered or late message is ignored.
    """

    events: EventEmitter
    _waiters: dict[str, Waiter] = field(default_factory=dict)
    _seen: set[str] = field(default_factory=set)
    _attached: bool = False

    def attach(self) -> None:
        if not self._attached:
            self.events.on(DRIVER_MESSAGE, self.dispatch)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self.events.off(DRIVER_MESSAGE, self.dispatch)
            self._attached = False

    def expect(self, correlation_id: str, key: str, callback: ResultCallback) -> Waiter:
        waiter = Waiter(key=key, callback=callback)
        self._waiters[correlation_id] = waiter
        return waiter

    @property
    def pending(self) -> list[str]:
        return list(self._waiters)

    def seen(self, correlation_id: str) -> bool:
        return correlation_id in self._seen

    def dispatch(self, data: Any) -> bool:
        """Route one message; return whether it completed a waiter."""
        message = ResultMessage.coerce(data)
        if message is None or message.hash is None:
            return False
        if message.hash in self._seen:
            log.debug("Ignoring duplicate result %s for %s", message.hash, message.key)
            return False
        waiter = self._waiters.get(message.hash)
        if waiter is None or waiter.key != message.key:
            return False
        self._seen.add(message.hash)
        del self._waiters[message.hash]
        waiter.message = message
        waiter.callback(message)
        return True
