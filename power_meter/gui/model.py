"""Presentation data shared between the monitor core and the Qt widgets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterable, Optional, Tuple

from power_meter.monitor import ConnectionMonitor, ConnectionPhase, ConnectionState
from power_meter.telemetry import BufferSnapshot, StreamBuffer

DASHBOARD_TITLE = "Data Sensor Real-Time"


class StatusTier(Enum):
    """Qualitative health of the live connection."""

    HEALTHY = auto()
    WARNING = auto()
    ERROR = auto()


STATUS_COLORS: Dict[StatusTier, str] = {
    StatusTier.HEALTHY: "green",
    StatusTier.WARNING: "orange",
    StatusTier.ERROR: "red",
}


def status_text(state: ConnectionState) -> str:
    if state.phase is ConnectionPhase.CONNECTED:
        return "Connected ✓"
    if state.phase is ConnectionPhase.DISCONNECTED:
        return f"Disconnected ({state.reason})"
    if state.phase is ConnectionPhase.FAILED:
        return f"Connection Error: {state.reason}"
    return "Connecting..."


def status_tier(state: ConnectionState) -> StatusTier:
    if state.phase is ConnectionPhase.CONNECTED:
        return StatusTier.HEALTHY
    if state.phase is ConnectionPhase.FAILED:
        return StatusTier.ERROR
    return StatusTier.WARNING


@dataclass(frozen=True, slots=True)
class ChannelStyle:
    """How one metric is drawn on its chart."""

    channel: str
    title: str
    label: str
    unit: str
    color: str
    decimals: int
    y_min: Optional[float] = 0.0
    y_max: Optional[float] = None
    suggested_max: Optional[float] = None

    def format_value(self, value: float) -> str:
        return f"{value:.{self.decimals}f} {self.unit}"

    def y_limits(self, values: Iterable[Optional[float]]) -> Tuple[float, float]:
        """Axis range: fixed bounds win, otherwise data stretched to at least ``suggested_max``."""
        finite = [v for v in values if v is not None and v == v]
        low = self.y_min if self.y_min is not None else min(finite, default=0.0)
        if self.y_max is not None:
            return low, self.y_max
        high = max(finite, default=low)
        if self.suggested_max is not None and high <= self.suggested_max:
            high = self.suggested_max
        else:
            high *= 1.05
        if high <= low:
            high = low + 1.0
        return low, high


CHANNEL_STYLES: Tuple[ChannelStyle, ...] = (
    ChannelStyle("energy", "Energi Listrik", "KWH", "kWh", "#ff6384", 2, suggested_max=10.0),
    ChannelStyle("current", "Arus Listrik", "Arus", "A", "#36a2eb", 2, suggested_max=30.0),
    ChannelStyle("voltage", "Tegangan Listrik", "Tegangan", "V", "#4bc0c0", 1, y_min=100.0, y_max=250.0),
    ChannelStyle("power", "Daya Listrik", "Daya", "W", "#ffce56", 0, suggested_max=6600.0),
)


@dataclass(frozen=True, slots=True)
class DashboardSnapshot:
    """Aggregated state for presentation."""

    buffer: BufferSnapshot = field(default_factory=BufferSnapshot)
    connection: ConnectionState = field(default_factory=ConnectionState.connecting)

    @property
    def status_text(self) -> str:
        return status_text(self.connection)

    @property
    def status_tier(self) -> StatusTier:
        return status_tier(self.connection)

    @property
    def status_color(self) -> str:
        return STATUS_COLORS[self.status_tier]


def take_snapshot(buffer: StreamBuffer, monitor: ConnectionMonitor) -> DashboardSnapshot:
    return DashboardSnapshot(buffer=buffer.snapshot(), connection=monitor.current_state())
