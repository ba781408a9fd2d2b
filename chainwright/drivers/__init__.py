"""Built-in drivers. Importing this package registers them in ``DRIVERS``."""

from chainwright.drivers.websocket import WebSocketDriver

__all__ = ["WebSocketDriver"]
