"""Name -> factory registries for drivers, browsers and reporters."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator

from chainwright.errors import RegistryError

log = logging.getLogger(__name__)

Factory = Callable[..., Any]


class Registry:
    """Plugins register a factory under a short name at import time.

    Usable directly or as a decorator::

        @DRIVERS.register("websocket")
        class WebSocketDriver: ...
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._factories: dict[str, Factory] = {}

    def register(self, name: str, factory: Factory | None = None) -> Any:
        if factory is None:

            def decorator(fn: Factory) -> Factory:
                self._factories[name] = fn
                return fn

            return decorator
        self._factories[name] = factory
        return factory

    def unregister(self, name: str) -> None:
        self._factories.pop(name, None)

    def get(self, name: str) -> Factory:
        try:
            return self._factories[name]
        except KeyError:
            raise RegistryError(f'The requested {self.kind} "{name}" is not registered') from None

    def create(self, name: str, *args: Any, **kwargs: Any) -> Any:
        return self.get(name)(*args, **kwargs)

    def names(self) -> list[str]:
        return list(self._factories)

    def __contains__(self, name: object) -> bool:
        return name in self._factories

    def __iter__(self) -> Iterator[str]:
        return iter(self._factories)


DRIVERS = Registry("driver")
BROWSERS = Registry("browser")
REPORTERS = Registry("reporter")
