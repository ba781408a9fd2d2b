"""chainwright: fluent browser tests run against one long-lived session."""

from chainwright import browser, drivers, reporter  # noqa: F401  registers built-ins
from chainwright.runner import Runner
from chainwright.suite import Suite
from chainwright.unit import SessionGate, Unit

__all__ = ["Runner", "SessionGate", "Suite", "Unit"]
__version__ = "0.1.0"
