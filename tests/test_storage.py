from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from power_meter.errors import StoreQueryError
from power_meter.export import render_csv
from power_meter.storage import CsvHistoryStore, FirebaseHistoryStore
from power_meter.telemetry import TelemetryLogger, TelemetryRecord

T0 = datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc)


def make_record(index: int) -> TelemetryRecord:
    return TelemetryRecord(
        timestamp=T0 + timedelta(seconds=index),
        energy=float(index),
        current=2.0,
        voltage=220.0,
        power=440.0,
    )


class DummyResponse:
    def __init__(self, data, status_code: int = 200, reason: str = "OK"):
        self._data = data
        self.status_code = status_code
        self.reason = reason

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return self._data


class DummySession:
    def __init__(self, response: DummyResponse):
        self.response = response
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params, timeout))
        return self.response


def test_csv_store_reads_logger_output(tmp_path: Path):
    with TelemetryLogger(tmp_path / "a.csv") as logger:
        logger.log_many(make_record(i) for i in (1, 2, 3))
    with TelemetryLogger(tmp_path / "b.csv") as logger:
        logger.log_many(make_record(i) for i in (4, 5))

    store = CsvHistoryStore(tmp_path)
    records = store.fetch_latest(3)

    assert sorted(record.energy for record in records) == [3.0, 4.0, 5.0]
    assert max(record.timestamp for record in records) == T0 + timedelta(seconds=5)


def test_csv_history_keeps_full_precision_for_export(tmp_path: Path):
    reading = TelemetryRecord(timestamp=T0, energy=1.0049999996, current=2.0, voltage=219.94999, power=440.0)
    with TelemetryLogger(tmp_path / "log.csv") as logger:
        logger.log(reading)

    (stored,) = CsvHistoryStore(tmp_path).fetch_latest(10)

    assert stored.energy == reading.energy
    assert render_csv([stored]).decode("utf-8").splitlines()[1] == "2024-05-01T08:00:00.000Z,1.00,2.00,219.9,440"


def test_csv_store_skips_malformed_rows(tmp_path: Path):
    path = tmp_path / "log.csv"
    path.write_text(
        "timestamp,kwh,arus,tegangan,daya\n"
        "1714550401.000,1.0,2.0,220.0,440.0\n"
        "1714550402.000,oops,2.0,220.0,440.0\n"
    )
    records = CsvHistoryStore(tmp_path).fetch_latest(10)
    assert len(records) == 1
    assert records[0].timestamp == T0 + timedelta(seconds=1)


def test_csv_store_missing_directory_is_empty(tmp_path: Path):
    assert CsvHistoryStore(tmp_path / "missing").fetch_latest(10) == []


def test_firebase_store_queries_latest_by_timestamp():
    data = {
        "-Nb": {"timestamp": 1714550402000, "kwh": 2, "arus": 1, "tegangan": 220, "daya": 220},
        "-Na": {"timestamp": 1714550401000, "kwh": 1, "arus": 1, "tegangan": 220, "daya": 220},
        "-Nc": {"kwh": "bad"},
    }
    session = DummySession(DummyResponse(data))
    store = FirebaseHistoryStore("https://meter.firebaseio.com/", session=session, timeout=3.0)

    records = store.fetch_latest(1000)

    url, params, timeout = session.requests[0]
    assert url == "https://meter.firebaseio.com/sensor_data.json"
    assert params == {"orderBy": '"timestamp"', "limitToLast": 1000}
    assert timeout == 3.0
    assert sorted(record.energy for record in records) == [1.0, 2.0]


@pytest.mark.parametrize("data", [None, {}, []])
def test_firebase_store_empty_node(data):
    store = FirebaseHistoryStore("https://meter.firebaseio.com", session=DummySession(DummyResponse(data)))
    assert store.fetch_latest(10) == []


def test_firebase_store_list_response_skips_holes():
    data = [None, {"timestamp": 1714550401000, "kwh": 1, "arus": 1, "tegangan": 220, "daya": 220}]
    store = FirebaseHistoryStore("https://meter.firebaseio.com", session=DummySession(DummyResponse(data)))
    assert len(store.fetch_latest(10)) == 1


def test_firebase_store_error_status():
    response = DummyResponse({"error": "Permission denied"}, status_code=401, reason="Unauthorized")
    store = FirebaseHistoryStore("https://meter.firebaseio.com", session=DummySession(response))
    with pytest.raises(StoreQueryError) as excinfo:
        store.fetch_latest(10)
    assert "Permission denied" in excinfo.value.user_message
    assert "401" in excinfo.value.user_message


def test_firebase_store_requires_url():
    with pytest.raises(ValueError):
        FirebaseHistoryStore("")
