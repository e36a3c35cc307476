import asyncio
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from matplotlib.colors import to_hex

from power_meter.errors import (
    DeliveryError,
    EmptyResultError,
    GENERIC_EXPORT_MESSAGE,
    RenderError,
    StoreQueryError,
)
from power_meter.export import (
    ExportFormat,
    ExportPipeline,
    disk_filename,
    export_filename,
    format_decimal,
    iso_timestamp,
    render_csv,
    render_pdf,
)
from power_meter.export.render import HEADER_COLOR, REPORT_HEADER, REPORT_TITLE, _render_page
from power_meter.telemetry import TelemetryRecord

NOW = datetime(2024, 5, 2, 12, 30, 45, 678000, tzinfo=timezone.utc)
T1 = datetime(2024, 5, 1, 8, 0, 1, tzinfo=timezone.utc)
T2 = T1 + timedelta(seconds=1)
T3 = T1 + timedelta(seconds=2)


def record(ts: datetime, energy: float = 1.0) -> TelemetryRecord:
    return TelemetryRecord(timestamp=ts, energy=energy, current=2.0, voltage=220.0, power=440.0)


class DummyStore:
    def __init__(self, records=None, error=None):
        self.records = list(records or [])
        self.error = error
        self.calls = []

    def fetch_latest(self, limit):
        self.calls.append(limit)
        if self.error:
            raise self.error
        return list(self.records)


class BlockingStore(DummyStore):
    def __init__(self, records):
        super().__init__(records)
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_latest(self, limit):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().fetch_latest(limit)


def make_pipeline(store, tmp_path: Path, **kwargs) -> ExportPipeline:
    return ExportPipeline(store, tmp_path / "exports", clock=lambda: NOW, **kwargs)


# ---------------------------------------------------------------------------
# Formatting
def test_format_decimal_rounds_half_up():
    assert format_decimal(1.005, 2) == "1.01"
    assert format_decimal(2.1, 2) == "2.10"
    assert format_decimal(219.95, 1) == "220.0"
    assert format_decimal(1500, 0) == "1500"
    assert format_decimal(1499.5, 0) == "1500"
    assert format_decimal(0.004, 2) == "0.00"


def test_render_csv_header_and_row():
    row = TelemetryRecord(timestamp=T1, energy=1.005, current=2.1, voltage=219.95, power=1500)
    lines = render_csv([row]).decode("utf-8").splitlines()
    assert lines[0] == "Timestamp,KWH,Arus (A),Tegangan (V),Daya (W)"
    assert lines[1] == "2024-05-01T08:00:01.000Z,1.01,2.10,220.0,1500"


def test_iso_timestamp_converts_to_utc():
    local = T1.astimezone(timezone(timedelta(hours=7)))
    assert iso_timestamp(local) == "2024-05-01T08:00:01.000Z"


def test_render_pdf_paginates():
    records = [record(T1 + timedelta(seconds=i)) for i in range(25)]
    payload = render_pdf(records, rows_per_page=10, generated_at=NOW)
    assert payload.startswith(b"%PDF")
    assert b"/Count 3" in payload


def page_rows(count: int):
    return [["01/05/2024 08:00:00", "1.00", "2.00", "220.0", "440"] for _ in range(count)]


def test_render_page_title_and_header_band():
    figure = _render_page(page_rows(10), rows_per_page=10, page=1, pages=2, generated="02/05/2024 12:30:45")

    texts = [text.get_text() for text in figure.texts]
    assert REPORT_TITLE in texts
    assert "Page 1 of 2" in texts
    assert any(text.startswith("Generated") for text in texts)

    cells = figure.axes[0].tables[0].get_celld()
    header = tuple(cells[0, col].get_text().get_text() for col in range(len(REPORT_HEADER)))
    assert header == REPORT_HEADER
    assert all(to_hex(cells[0, col].get_facecolor()) == HEADER_COLOR for col in range(len(REPORT_HEADER)))
    assert to_hex(cells[1, 0].get_facecolor()) != HEADER_COLOR


def test_render_page_short_last_page_keeps_row_height():
    full = _render_page(page_rows(10), rows_per_page=10, page=1, pages=2, generated="now")
    short = _render_page(page_rows(3), rows_per_page=10, page=2, pages=2, generated="now")

    full_box = full.axes[0].get_position()
    short_box = short.axes[0].get_position()
    assert full_box.height / 11 == pytest.approx(short_box.height / 4)
    assert full_box.y1 == pytest.approx(short_box.y1)
    assert REPORT_TITLE in [text.get_text() for text in short.texts]


def test_render_pdf_rejects_bad_page_size():
    with pytest.raises(RenderError):
        render_pdf([record(T1)], rows_per_page=0)


def test_export_filename_drops_milliseconds():
    assert export_filename(ExportFormat.CSV, NOW) == "sensor_data_2024-05-02T12:30:45.csv"
    assert export_filename(ExportFormat.PDF, NOW).endswith(".pdf")


def test_disk_filename_replaces_colons_on_windows():
    name = export_filename(ExportFormat.PDF, NOW)
    assert disk_filename(name, windows=True) == "sensor_data_2024-05-02T12-30-45.pdf"
    assert disk_filename(name, windows=False) == name


def test_export_format_parse():
    assert ExportFormat.parse("PDF") is ExportFormat.PDF
    assert ExportFormat.parse(ExportFormat.CSV) is ExportFormat.CSV
    assert ExportFormat.CSV.media_type == "text/csv"
    with pytest.raises(ValueError):
        ExportFormat.parse("xlsx")


# ---------------------------------------------------------------------------
# Pipeline
def test_export_sorts_unsorted_store_response(tmp_path: Path):
    store = DummyStore([record(T3, 3.0), record(T1, 1.0), record(T2, 2.0)])
    pipeline = make_pipeline(store, tmp_path)

    result = asyncio.run(pipeline.export_report("csv"))

    assert result.row_count == 3
    assert result.path == tmp_path / "exports" / disk_filename("sensor_data_2024-05-02T12:30:45.csv")
    rows = result.path.read_text().splitlines()[1:]
    assert [row.split(",")[0] for row in rows] == [iso_timestamp(T1), iso_timestamp(T2), iso_timestamp(T3)]
    assert store.calls == [1000]
    assert not pipeline.in_flight


def test_export_pdf_writes_file(tmp_path: Path):
    store = DummyStore([record(T2), record(T1)])
    result = asyncio.run(make_pipeline(store, tmp_path).export_report(ExportFormat.PDF))
    assert result.path.suffix == ".pdf"
    assert result.path.read_bytes().startswith(b"%PDF")


def test_export_empty_store_raises_and_releases_guard(tmp_path: Path):
    pipeline = make_pipeline(DummyStore([]), tmp_path)
    with pytest.raises(EmptyResultError):
        asyncio.run(pipeline.export_report("csv"))
    assert not pipeline.in_flight
    assert not (tmp_path / "exports").exists()


def test_export_wraps_store_failures(tmp_path: Path):
    pipeline = make_pipeline(DummyStore(error=ConnectionError("network unreachable")), tmp_path)
    with pytest.raises(StoreQueryError) as excinfo:
        asyncio.run(pipeline.export_report("csv"))
    assert excinfo.value.user_message == "network unreachable"
    assert not pipeline.in_flight


def test_export_store_failure_without_message_uses_fallback(tmp_path: Path):
    pipeline = make_pipeline(DummyStore(error=RuntimeError()), tmp_path)
    with pytest.raises(StoreQueryError) as excinfo:
        asyncio.run(pipeline.export_report("csv"))
    assert excinfo.value.user_message == GENERIC_EXPORT_MESSAGE


def test_export_render_failure_leaves_no_file(tmp_path: Path, monkeypatch):
    def broken_render(*args, **kwargs):
        raise ValueError("font missing")

    monkeypatch.setattr("power_meter.export.pipeline.render_report", broken_render)
    pipeline = make_pipeline(DummyStore([record(T1)]), tmp_path)
    with pytest.raises(RenderError):
        asyncio.run(pipeline.export_report("pdf"))
    assert not pipeline.in_flight
    assert not (tmp_path / "exports").exists()


def test_export_delivery_failure(tmp_path: Path):
    blocker = tmp_path / "exports"
    blocker.write_text("not a directory")
    pipeline = ExportPipeline(DummyStore([record(T1)]), blocker, clock=lambda: NOW)
    with pytest.raises(DeliveryError):
        asyncio.run(pipeline.export_report("csv"))
    assert not pipeline.in_flight


def test_export_caps_batch_to_download_limit(tmp_path: Path):
    records = [record(T1 + timedelta(seconds=i), float(i)) for i in range(10)]
    pipeline = make_pipeline(DummyStore(records), tmp_path, download_limit=4)
    result = asyncio.run(pipeline.export_report("csv"))
    rows = result.path.read_text().splitlines()[1:]
    assert result.row_count == 4
    assert [row.split(",")[1] for row in rows] == ["6.00", "7.00", "8.00", "9.00"]


def test_second_export_while_in_flight_is_noop(tmp_path: Path):
    store = BlockingStore([record(T1)])
    pipeline = make_pipeline(store, tmp_path)

    async def scenario():
        first = asyncio.ensure_future(pipeline.export_report("csv"))
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, store.entered.wait, 5)
        assert pipeline.in_flight
        second = await pipeline.export_report("pdf")
        store.release.set()
        return await first, second

    first, second = asyncio.run(scenario())

    assert second is None
    assert first.row_count == 1
    assert store.calls == [1000]
    assert [path.suffix for path in (tmp_path / "exports").iterdir()] == [".csv"]
    assert not pipeline.in_flight
