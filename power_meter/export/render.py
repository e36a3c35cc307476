"""Row formatting and CSV/PDF serialization for sensor reports."""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Callable, List, Optional, Sequence

from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.figure import Figure

from power_meter.errors import RenderError
from power_meter.telemetry import TelemetryRecord

REPORT_TITLE = "Data Sensor"
REPORT_HEADER = ("Timestamp", "KWH", "Arus (A)", "Tegangan (V)", "Daya (W)")
# Fixed decimals per column, in header order after the timestamp.
COLUMN_DECIMALS = (("energy", 2), ("current", 2), ("voltage", 1), ("power", 0))
DEFAULT_TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M:%S"
DEFAULT_ROWS_PER_PAGE = 30

# Layout constants (inches / figure fractions)
A4_PORTRAIT = (8.27, 11.69)
TABLE_LEFT = 0.06
TABLE_WIDTH = 0.88
TABLE_TOP = 0.89
TABLE_BOTTOM = 0.07
COLUMN_WIDTHS = (0.32, 0.17, 0.17, 0.17, 0.17)
HEADER_COLOR = "#2980b9"
HEADER_TEXT_COLOR = "white"
STRIPE_COLOR = "#f2f2f2"
TABLE_FONT_SIZE = 8


class ExportFormat(Enum):
    """Supported report formats."""

    CSV = "csv"
    PDF = "pdf"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def media_type(self) -> str:
        return "text/csv" if self is ExportFormat.CSV else "application/pdf"

    @classmethod
    def parse(cls, value: "ExportFormat | str") -> "ExportFormat":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported export format {value!r}; expected one of csv, pdf") from exc


def format_decimal(value: float, places: int) -> str:
    """Fixed-point text rounded half-up on the shortest decimal form (1.005 -> 1.01)."""
    try:
        quantum = Decimal(1).scaleb(-places)
        return f"{Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP):f}"
    except InvalidOperation as exc:
        raise RenderError(f"Cannot format value {value!r}") from exc


def iso_timestamp(timestamp: datetime) -> str:
    utc = timestamp.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def locale_timestamp(timestamp: datetime, fmt: str = DEFAULT_TIMESTAMP_FORMAT) -> str:
    return timestamp.astimezone().strftime(fmt)


def format_rows(
    records: Sequence[TelemetryRecord],
    timestamp_formatter: Callable[[datetime], str],
) -> List[List[str]]:
    rows = []
    for record in records:
        row = [timestamp_formatter(record.timestamp)]
        row.extend(format_decimal(getattr(record, attr), places) for attr, places in COLUMN_DECIMALS)
        rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# Serializers
def render_csv(records: Sequence[TelemetryRecord]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(REPORT_HEADER)
    writer.writerows(format_rows(records, iso_timestamp))
    return output.getvalue().encode("utf-8")


def _render_page(
    rows: List[List[str]],
    rows_per_page: int,
    page: int,
    pages: int,
    generated: str,
) -> Figure:
    figure = Figure(figsize=A4_PORTRAIT)
    figure.text(0.5, 0.955, REPORT_TITLE, ha="center", va="top", fontsize=16, fontweight="bold")
    figure.text(0.5, 0.925, f"Generated {generated}", ha="center", va="top", fontsize=8, color="#555555")
    figure.text(0.5, 0.035, f"Page {page} of {pages}", ha="center", va="bottom", fontsize=8, color="#555555")

    # Row height is fixed by rows_per_page so a short last page keeps the same band size.
    row_height = (TABLE_TOP - TABLE_BOTTOM) / (rows_per_page + 1)
    cell_text = rows or [["-"] * len(REPORT_HEADER)]
    height = row_height * (len(cell_text) + 1)
    ax = figure.add_axes((TABLE_LEFT, TABLE_TOP - height, TABLE_WIDTH, height))
    ax.axis("off")

    table = ax.table(
        cellText=cell_text,
        colLabels=REPORT_HEADER,
        colWidths=COLUMN_WIDTHS,
        cellLoc="center",
        bbox=(0.0, 0.0, 1.0, 1.0),
    )
    table.auto_set_font_size(False)
    table.set_fontsize(TABLE_FONT_SIZE)
    for (row, _col), cell in table.get_celld().items():
        cell.set_edgecolor("#cccccc")
        if row == 0:
            cell.set_facecolor(HEADER_COLOR)
            cell.get_text().set_color(HEADER_TEXT_COLOR)
            cell.get_text().set_fontweight("bold")
        elif row % 2 == 0:
            cell.set_facecolor(STRIPE_COLOR)
    return figure


def render_pdf(
    records: Sequence[TelemetryRecord],
    *,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    rows_per_page: int = DEFAULT_ROWS_PER_PAGE,
    generated_at: Optional[datetime] = None,
) -> bytes:
    if rows_per_page < 1:
        raise RenderError("rows_per_page must be at least 1")
    rows = format_rows(records, lambda ts: locale_timestamp(ts, timestamp_format))
    chunks = [rows[i:i + rows_per_page] for i in range(0, len(rows), rows_per_page)] or [[]]
    generated = locale_timestamp(generated_at or datetime.now(timezone.utc), timestamp_format)

    buffer = io.BytesIO()
    with PdfPages(buffer, metadata={"Title": REPORT_TITLE}) as pdf:
        for page, chunk in enumerate(chunks, start=1):
            pdf.savefig(_render_page(chunk, rows_per_page, page, len(chunks), generated))
    return buffer.getvalue()


def render_report(
    records: Sequence[TelemetryRecord],
    fmt: ExportFormat,
    *,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    rows_per_page: int = DEFAULT_ROWS_PER_PAGE,
    generated_at: Optional[datetime] = None,
) -> bytes:
    """Serialize ``records`` (already ordered) into ``fmt``; failures raise :class:`RenderError`."""
    try:
        if fmt is ExportFormat.CSV:
            return render_csv(records)
        return render_pdf(
            records,
            timestamp_format=timestamp_format,
            rows_per_page=rows_per_page,
            generated_at=generated_at,
        )
    except RenderError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise RenderError(f"Failed to render {fmt.value.upper()} report: {exc}") from exc
