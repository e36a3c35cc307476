"""Transport interface and event plumbing shared by the concrete transports."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

EVENT_CONNECT = "connect"
EVENT_DISCONNECT = "disconnect"
EVENT_CONNECT_ERROR = "connect_error"
EVENT_SENSOR_DATA = "sensorData"
EVENT_RECONNECT_ATTEMPT = "reconnect_attempt"
EVENT_RECONNECT_FAILED = "reconnect_failed"

CLIENT_DISCONNECT_REASON = "io client disconnect"
TRANSPORT_CLOSE_REASON = "transport close"

Handler = Callable[..., None]


class Transport(Protocol):
    """Minimal interface of a persistent, event-emitting connection."""

    def on(self, event: str, handler: Handler) -> None:
        ...

    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        ...

    def connect(self) -> None:
        ...

    def disconnect(self) -> None:
        ...


class EventEmitter:
    """Keeps per-event handler lists and dispatches to them synchronously."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}

    def on(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        if handler is None:
            self._handlers.pop(event, None)
            return
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: Optional[str] = None) -> int:
        if event is not None:
            return len(self._handlers.get(event, ()))
        return sum(len(handlers) for handlers in self._handlers.values())

    def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:  # noqa: BLE001
                logger.exception("Handler for '%s' failed", event)
