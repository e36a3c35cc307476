"""Connection lifecycle tracking for the live meter stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Callable, List, Optional, Tuple

from power_meter.errors import MalformedPayloadError
from power_meter.telemetry import StreamBuffer, TelemetryRecord
from power_meter.transport import (
    CLIENT_DISCONNECT_REASON,
    EVENT_CONNECT,
    EVENT_CONNECT_ERROR,
    EVENT_DISCONNECT,
    EVENT_RECONNECT_ATTEMPT,
    EVENT_RECONNECT_FAILED,
    EVENT_SENSOR_DATA,
    Transport,
)

logger = logging.getLogger(__name__)

RECONNECT_EXHAUSTED_REASON = "reconnection attempts exhausted"


class ConnectionPhase(Enum):
    """Lifecycle phase of the live connection."""

    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTED = auto()
    FAILED = auto()


@dataclass(frozen=True, slots=True)
class ConnectionState:
    """Current phase plus the transport-supplied reason, if any."""

    phase: ConnectionPhase
    reason: Optional[str] = None

    @classmethod
    def connecting(cls) -> "ConnectionState":
        return cls(ConnectionPhase.CONNECTING)

    @classmethod
    def connected(cls) -> "ConnectionState":
        return cls(ConnectionPhase.CONNECTED)

    @classmethod
    def disconnected(cls, reason: str) -> "ConnectionState":
        return cls(ConnectionPhase.DISCONNECTED, reason)

    @classmethod
    def failed(cls, reason: str) -> "ConnectionState":
        return cls(ConnectionPhase.FAILED, reason)


StateObserver = Callable[[ConnectionState], None]
RecordSink = Callable[[TelemetryRecord], None]


def _error_message(error: Any) -> str:
    if error is None:
        return "unknown error"
    if isinstance(error, dict):
        return str(error.get("message") or "unknown error")
    message = getattr(error, "message", None)
    return str(message or error or type(error).__name__)


class ConnectionMonitor:
    """Mirrors transport lifecycle events as :class:`ConnectionState` and feeds the buffer.

    The monitor never raises out of its handlers; faults become ``FAILED`` or
    ``DISCONNECTED`` states. Every listener added to the transport is tracked so
    that :meth:`stop` can release all of them.
    """

    def __init__(
        self,
        transport: Transport,
        buffer: StreamBuffer,
        *,
        record_sink: Optional[RecordSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.transport = transport
        self.buffer = buffer
        self.record_sink = record_sink
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._state = ConnectionState.connecting()
        self._observers: List[StateObserver] = []
        self._listeners: List[Tuple[str, Callable[..., None]]] = []
        self.rejected_payloads = 0

    # ------------------------------------------------------------------
    # Public API
    def current_state(self) -> ConnectionState:
        return self._state

    def on_state_change(self, observer: StateObserver, replay: bool = True) -> Callable[[], None]:
        """Subscribe to state changes; returns a callable that unsubscribes."""
        self._observers.append(observer)
        if replay:
            self._notify(observer, self._state)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def start(self) -> None:
        if self._listeners:
            return
        if self._state.phase is not ConnectionPhase.CONNECTING:
            self._set_state(ConnectionState.connecting())
        try:
            self._listen(EVENT_CONNECT, self._handle_connect)
            self._listen(EVENT_DISCONNECT, self._handle_disconnect)
            self._listen(EVENT_CONNECT_ERROR, self._handle_connect_error)
            self._listen(EVENT_RECONNECT_ATTEMPT, self._handle_reconnect_attempt)
            self._listen(EVENT_RECONNECT_FAILED, self._handle_reconnect_failed)
            self.transport.connect()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to start transport")
            self._set_state(ConnectionState.failed(_error_message(exc)))

    def stop(self) -> None:
        listeners, self._listeners = self._listeners, []
        for event, handler in listeners:
            try:
                self.transport.off(event, handler)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to remove '%s' listener", event)
        try:
            self.transport.disconnect()
        except Exception:  # noqa: BLE001
            logger.exception("Failed to disconnect transport")
        if self._state.phase is ConnectionPhase.CONNECTED:
            self._set_state(ConnectionState.disconnected(CLIENT_DISCONNECT_REASON))

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    # ------------------------------------------------------------------
    # Transport handlers
    def _handle_connect(self, *_: Any) -> None:
        self._set_state(ConnectionState.connected())
        self._unlisten(EVENT_SENSOR_DATA, self._handle_sensor_data)
        self._listen(EVENT_SENSOR_DATA, self._handle_sensor_data)

    def _handle_disconnect(self, reason: Any = None) -> None:
        self._unlisten(EVENT_SENSOR_DATA, self._handle_sensor_data)
        self._set_state(ConnectionState.disconnected(str(reason or "unknown")))

    def _handle_connect_error(self, error: Any = None) -> None:
        self._set_state(ConnectionState.failed(_error_message(error)))

    def _handle_reconnect_attempt(self, attempt: Any = None) -> None:
        if self._state.phase is ConnectionPhase.CONNECTED:
            return
        logger.debug("Transport reconnect attempt %s", attempt)
        self._set_state(ConnectionState.connecting())

    def _handle_reconnect_failed(self, *_: Any) -> None:
        self._set_state(ConnectionState.failed(RECONNECT_EXHAUSTED_REASON))

    def _handle_sensor_data(self, payload: Any = None) -> None:
        try:
            record = TelemetryRecord.from_payload(payload, received_at=self._clock())
        except MalformedPayloadError as exc:
            self.rejected_payloads += 1
            logger.warning("Rejected sensor payload %r: %s", payload, exc)
            return
        self.buffer.append(record)
        if self.record_sink is not None:
            try:
                self.record_sink(record)
            except Exception:  # noqa: BLE001
                logger.exception("Record sink failed")

    # ------------------------------------------------------------------
    def _listen(self, event: str, handler: Callable[..., None]) -> None:
        self.transport.on(event, handler)
        self._listeners.append((event, handler))

    def _unlisten(self, event: str, handler: Callable[..., None]) -> None:
        if (event, handler) not in self._listeners:
            return
        self._listeners.remove((event, handler))
        try:
            self.transport.off(event, handler)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to remove '%s' listener", event)

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.info("Connection state: %s%s", state.phase.name, f" ({state.reason})" if state.reason else "")
        self._state = state
        for observer in list(self._observers):
            self._notify(observer, state)

    @staticmethod
    def _notify(observer: StateObserver, state: ConnectionState) -> None:
        try:
            observer(state)
        except Exception:  # noqa: BLE001
            logger.exception("Connection state observer failed")
