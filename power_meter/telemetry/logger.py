"""Append-only CSV recorder for the live telemetry stream."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from power_meter.telemetry.series import TelemetryRecord

HISTORY_COLUMNS = ("timestamp", "kwh", "arus", "tegangan", "daya")


class TelemetryLogger:
    """Writes accepted records to a CSV file that later backs report exports."""

    def __init__(self, path: Path, write_header: bool = True) -> None:
        self.path = Path(path)
        self._file = None
        self._writer = None
        self._write_header = write_header

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __call__(self, record: TelemetryRecord) -> None:
        self.log(record)

    def open(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        exists = self.path.exists() and self.path.stat().st_size > 0
        self._file = self.path.open("a", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file)
        if self._write_header and not exists:
            self._writer.writerow(HISTORY_COLUMNS)

    def close(self) -> None:
        if self._file:
            self._file.close()
        self._file = None
        self._writer = None

    def log(self, record: TelemetryRecord) -> None:
        if not self._writer:
            self.open()
        self._writer.writerow([
            f"{record.timestamp.timestamp():.3f}",
            # Full precision so exports round only once.
            repr(float(record.energy)),
            repr(float(record.current)),
            repr(float(record.voltage)),
            repr(float(record.power)),
        ])
        self._file.flush()

    def log_many(self, records: Iterable[TelemetryRecord]) -> None:
        for record in records:
            self.log(record)
