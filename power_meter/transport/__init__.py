"""Transports delivering live meter events."""

from .base import (
    CLIENT_DISCONNECT_REASON,
    EVENT_CONNECT,
    EVENT_CONNECT_ERROR,
    EVENT_DISCONNECT,
    EVENT_RECONNECT_ATTEMPT,
    EVENT_RECONNECT_FAILED,
    EVENT_SENSOR_DATA,
    TRANSPORT_CLOSE_REASON,
    EventEmitter,
    Transport,
)
from .simulated import SimulatedTransport, simulated_payload
from .websocket import WebSocketTransport

__all__ = [
    "CLIENT_DISCONNECT_REASON",
    "EVENT_CONNECT",
    "EVENT_CONNECT_ERROR",
    "EVENT_DISCONNECT",
    "EVENT_RECONNECT_ATTEMPT",
    "EVENT_RECONNECT_FAILED",
    "EVENT_SENSOR_DATA",
    "TRANSPORT_CLOSE_REASON",
    "EventEmitter",
    "SimulatedTransport",
    "Transport",
    "WebSocketTransport",
    "simulated_payload",
]
