"""Synchronous publish/subscribe channel shared by drivers, tests and reporters."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

log = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Minimal event emitter.

    Listeners run synchronously, in registration order, inside ``emit``.
    Wildcard listeners registered with ``on_any`` receive the event name
    as their first argument.
    """

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._any: list[Listener] = []

    def on(self, event: str, listener: Listener) -> Listener:
        self._listeners[event].append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return listener(*args)

        return self.on(event, wrapper)

    def on_any(self, listener: Listener) -> Listener:
        self._any.append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def off_any(self, listener: Listener) -> None:
        if listener in self._any:
            self._any.remove(listener)

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
            self._any.clear()
        else:
            self._listeners.pop(event, None)

    def listeners(self, event: str) -> list[Listener]:
        return list(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of ``event``; return whether anyone listened."""
        # Copy so listeners may unsubscribe while being called
        listeners = list(self._listeners.get(event, []))
        wildcard = list(self._any)
        for listener in listeners:
            listener(*args)
        for listener in wildcard:
            listener(event, *args)
        return bool(listeners or wildcard)
