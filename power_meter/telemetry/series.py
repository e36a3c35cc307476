"""In-memory telemetry windows for live plotting."""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Tuple

from power_meter.errors import MalformedPayloadError

DEFAULT_MAX_POINTS = 20
LABEL_FORMAT = "%H:%M:%S"

# Record attribute -> key used by the meter firmware and the historical store.
PAYLOAD_KEYS: Dict[str, str] = {
    "energy": "kwh",
    "current": "arus",
    "voltage": "tegangan",
    "power": "daya",
}
CHANNELS: Tuple[str, ...] = tuple(PAYLOAD_KEYS)
NON_NEGATIVE = frozenset({"energy", "current", "power"})

# Epoch values above this are taken to be milliseconds.
_MILLISECOND_THRESHOLD = 1e11


def parse_timestamp(value: Any, default: Optional[datetime] = None) -> datetime:
    """Convert an epoch number, numeric string or ISO-8601 string to an aware datetime."""
    if value is None or value == "":
        return default or datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.astimezone()
    if isinstance(value, bool):
        raise MalformedPayloadError(f"invalid timestamp {value!r}")
    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text)
        except ValueError:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError as exc:
                raise MalformedPayloadError(f"invalid timestamp {value!r}") from exc
            return parsed if parsed.tzinfo else parsed.astimezone()
    if isinstance(value, (int, float)):
        seconds = float(value)
        if not math.isfinite(seconds):
            raise MalformedPayloadError(f"invalid timestamp {value!r}")
        if abs(seconds) > _MILLISECOND_THRESHOLD:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise MalformedPayloadError(f"timestamp out of range: {value!r}") from exc
    raise MalformedPayloadError(f"invalid timestamp {value!r}")


def _read_number(payload: Mapping[str, Any], attr: str) -> float:
    key = PAYLOAD_KEYS[attr]
    if key not in payload or payload[key] is None:
        raise MalformedPayloadError(f"missing field '{key}'")
    raw = payload[key]
    if isinstance(raw, bool):
        raise MalformedPayloadError(f"field '{key}' must be numeric, got {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedPayloadError(f"field '{key}' must be numeric, got {raw!r}") from exc
    if not math.isfinite(value):
        raise MalformedPayloadError(f"field '{key}' must be finite, got {raw!r}")
    if attr in NON_NEGATIVE and value < 0:
        raise MalformedPayloadError(f"field '{key}' must not be negative, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class TelemetryRecord:
    """Single power-meter sample."""

    timestamp: datetime
    energy: float
    current: float
    voltage: float
    power: float

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        received_at: Optional[datetime] = None,
    ) -> "TelemetryRecord":
        """Build a record from a ``sensorData`` payload or a stored entry.

        Payloads without a timestamp are stamped with ``received_at`` (or now).
        Raises :class:`MalformedPayloadError` on missing or non-numeric fields.
        """
        if not isinstance(payload, Mapping):
            raise MalformedPayloadError(f"payload must be an object, got {type(payload).__name__}")
        values = {attr: _read_number(payload, attr) for attr in CHANNELS}
        timestamp = parse_timestamp(payload.get("timestamp"), default=received_at)
        return cls(timestamp=timestamp, **values)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"timestamp": self.timestamp.timestamp()}
        for attr, key in PAYLOAD_KEYS.items():
            payload[key] = getattr(self, attr)
        return payload


def format_label(timestamp: Optional[datetime]) -> str:
    if timestamp is None:
        return ""
    return timestamp.astimezone().strftime(LABEL_FORMAT)


@dataclass(frozen=True)
class BufferSnapshot:
    """Immutable view of the stream windows at one point in time."""

    labels: Tuple[str, ...] = ()
    energy: Tuple[float, ...] = ()
    current: Tuple[float, ...] = ()
    voltage: Tuple[float, ...] = ()
    power: Tuple[float, ...] = ()

    def __len__(self) -> int:
        return len(self.labels)

    def channel(self, name: str) -> Tuple[float, ...]:
        if name not in CHANNELS:
            raise KeyError(name)
        return getattr(self, name)

    def to_dict_of_lists(self) -> Dict[str, List[Any]]:
        data: Dict[str, List[Any]] = {"labels": list(self.labels)}
        for name in CHANNELS:
            data[name] = [v if v is not None else float("nan") for v in getattr(self, name)]
        return data


@dataclass
class StreamBuffer:
    """Keeps the last ``max_points`` samples of every channel, aligned by index."""

    max_points: int = DEFAULT_MAX_POINTS
    _windows: Dict[str, Deque[Any]] = field(
        default_factory=lambda: {name: deque() for name in CHANNELS}, repr=False
    )
    _labels: Deque[str] = field(default_factory=deque, repr=False)
    _latest: Optional[TelemetryRecord] = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.max_points < 1:
            raise ValueError("max_points must be at least 1")

    @property
    def capacity(self) -> int:
        return self.max_points

    def append(self, record: TelemetryRecord) -> None:
        label = format_label(getattr(record, "timestamp", None))
        with self._lock:
            for name, window in self._windows.items():
                window.append(getattr(record, name, None))
            self._labels.append(label)
            self._latest = record
            # All windows are trimmed together so index i stays the same sample.
            while len(self._labels) > self.max_points:
                self._labels.popleft()
                for window in self._windows.values():
                    window.popleft()

    def extend(self, records: Iterable[TelemetryRecord]) -> None:
        for record in records:
            self.append(record)

    def snapshot(self) -> BufferSnapshot:
        with self._lock:
            return BufferSnapshot(
                labels=tuple(self._labels),
                **{name: tuple(window) for name, window in self._windows.items()},
            )

    def latest(self) -> Optional[TelemetryRecord]:
        return self._latest

    def clear(self) -> None:
        with self._lock:
            self._labels.clear()
            for window in self._windows.values():
                window.clear()
            self._latest = None

    def __len__(self) -> int:
        return len(self._labels)
