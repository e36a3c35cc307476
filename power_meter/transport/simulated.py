"""Synthetic meter transport for demos and offline development."""

from __future__ import annotations

import asyncio
import itertools
import math
import random
import time
from typing import Any, Dict, Optional

from power_meter.errors import TransportError
from power_meter.transport.base import (
    CLIENT_DISCONNECT_REASON,
    EVENT_CONNECT,
    EVENT_DISCONNECT,
    EVENT_SENSOR_DATA,
    EventEmitter,
)


def simulated_payload(counter: int, energy_start: float = 0.0) -> Dict[str, Any]:
    """Return one plausible household reading for sample number ``counter``."""
    voltage = 220.0 + 6.0 * math.sin(counter / 9.0) + random.uniform(-1.0, 1.0)
    current = max(0.0, 6.5 + 3.0 * math.sin(counter / 5.0 + 0.7) + random.uniform(-0.3, 0.3))
    power = voltage * current * 0.95
    energy = energy_start + counter * power / 3_600_000.0
    return {
        "timestamp": int(time.time() * 1000),
        "kwh": round(energy, 4),
        "arus": round(current, 3),
        "tegangan": round(voltage, 2),
        "daya": round(power, 1),
    }


class SimulatedTransport(EventEmitter):
    """Emits ``sensorData`` at a fixed interval on the running event loop."""

    def __init__(
        self,
        interval: float = 1.0,
        *,
        energy_start: float = 0.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        super().__init__()
        self.interval = interval
        self.energy_start = energy_start
        self._loop = loop
        self._task: Optional[asyncio.Future] = None
        self._generation = 0

    def connect(self) -> None:
        if self._task is not None and not self._task.done():
            return
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError as exc:
                raise TransportError("SimulatedTransport.connect needs an event loop") from exc
            self._loop = loop
        self._generation += 1
        self._task = asyncio.run_coroutine_threadsafe(self._produce(self._generation), loop)

    def disconnect(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _produce(self, generation: int) -> None:
        self.emit(EVENT_CONNECT)
        try:
            for counter in itertools.count():
                self.emit(EVENT_SENSOR_DATA, simulated_payload(counter, self.energy_start))
                await asyncio.sleep(self.interval)
        finally:
            # A superseded producer must not report its shutdown to the new listeners.
            if generation == self._generation:
                self.emit(EVENT_DISCONNECT, CLIENT_DISCONNECT_REASON)
