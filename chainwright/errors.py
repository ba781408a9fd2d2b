"""Exception types raised by chainwright."""

from __future__ import annotations


class ChainwrightError(Exception):
    """Base class for all chainwright errors."""


class SuiteLoadError(ChainwrightError):
    """A test file could not be found or imported."""


class CommandDispatchError(ChainwrightError):
    """The driver does not implement a queued command."""

    def __init__(self, method: str, message: str | None = None):
        self.method = method
        super().__init__(message or f"Driver has no method '{method}'")


class RegistryError(ChainwrightError):
    """A driver, browser or reporter name is not registered."""


class TunnelError(ChainwrightError):
    """The remote host refused or failed a browser launch."""
