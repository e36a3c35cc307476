"""Connection health tracking."""

from .connection import (
    RECONNECT_EXHAUSTED_REASON,
    ConnectionMonitor,
    ConnectionPhase,
    ConnectionState,
)

__all__ = [
    "RECONNECT_EXHAUSTED_REASON",
    "ConnectionMonitor",
    "ConnectionPhase",
    "ConnectionState",
]
