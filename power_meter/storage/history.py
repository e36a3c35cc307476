"""Historical telemetry stores queried by report exports."""

from __future__ import annotations

import csv
import heapq
import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, Protocol

import requests

from power_meter.errors import MalformedPayloadError, StoreQueryError
from power_meter.telemetry import TelemetryRecord

logger = logging.getLogger(__name__)


class HistoryStore(Protocol):
    """Source of past records; ordering of the result is only a hint."""

    def fetch_latest(self, limit: int) -> List[TelemetryRecord]:
        """Return up to ``limit`` most recent records, or an empty list."""
        ...


def _parse_entries(entries: Iterable[Any], source: str) -> Iterator[TelemetryRecord]:
    for entry in entries:
        try:
            yield TelemetryRecord.from_payload(entry)
        except MalformedPayloadError as exc:
            logger.warning("Skipping malformed entry in %s: %s", source, exc)


def _most_recent(records: Iterable[TelemetryRecord], limit: int) -> List[TelemetryRecord]:
    return heapq.nlargest(limit, records, key=lambda record: record.timestamp)


class CsvHistoryStore:
    """Reads the CSV files written by :class:`~power_meter.telemetry.TelemetryLogger`."""

    def __init__(self, directory: Path, pattern: str = "*.csv") -> None:
        self.directory = Path(directory)
        self.pattern = pattern

    def files(self) -> List[Path]:
        if not self.directory.exists():
            return []
        return sorted(self.directory.glob(self.pattern))

    def _iter_records(self) -> Iterator[TelemetryRecord]:
        for path in self.files():
            with open(path, "r", newline="", encoding="utf-8") as handle:
                yield from _parse_entries(csv.DictReader(handle), str(path))

    def fetch_latest(self, limit: int) -> List[TelemetryRecord]:
        if limit <= 0:
            return []
        return _most_recent(self._iter_records(), limit)


class FirebaseHistoryStore:
    """Queries a Firebase Realtime Database node over its REST API."""

    def __init__(
        self,
        database_url: str,
        path: str = "sensor_data",
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not database_url:
            raise ValueError("database_url must not be empty")
        self.database_url = database_url.rstrip("/")
        self.path = path.strip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.database_url}/{self.path}.json"

    def fetch_latest(self, limit: int) -> List[TelemetryRecord]:
        if limit <= 0:
            return []
        params = {"orderBy": '"timestamp"', "limitToLast": limit}
        response = self._session.get(self.endpoint, params=params, timeout=self.timeout)
        if not response.ok:
            raise StoreQueryError(self._error_message(response))
        data = response.json()
        if not data:
            return []
        if isinstance(data, dict):
            entries: Iterable[Any] = data.values()
        elif isinstance(data, list):
            entries = [entry for entry in data if entry is not None]
        else:
            raise StoreQueryError(f"Unexpected response from {self.endpoint}")
        return _most_recent(_parse_entries(entries, self.endpoint), limit)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            detail = response.json().get("error")
        except (ValueError, AttributeError):
            detail = None
        return f"History query failed ({response.status_code}): {detail or response.reason}"
