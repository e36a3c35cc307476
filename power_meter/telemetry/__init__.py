"""Live telemetry records, windows and recording."""

from .logger import HISTORY_COLUMNS, TelemetryLogger
from .series import (
    CHANNELS,
    DEFAULT_MAX_POINTS,
    PAYLOAD_KEYS,
    BufferSnapshot,
    StreamBuffer,
    TelemetryRecord,
    format_label,
    parse_timestamp,
)

__all__ = [
    "CHANNELS",
    "DEFAULT_MAX_POINTS",
    "HISTORY_COLUMNS",
    "PAYLOAD_KEYS",
    "BufferSnapshot",
    "StreamBuffer",
    "TelemetryLogger",
    "TelemetryRecord",
    "format_label",
    "parse_timestamp",
]
