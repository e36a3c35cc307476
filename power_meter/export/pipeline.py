"""On-demand export of historical telemetry into a downloadable report."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

from power_meter.errors import (
    DeliveryError,
    EmptyResultError,
    ExportError,
    RenderError,
    StoreQueryError,
)
from power_meter.export.render import (
    DEFAULT_ROWS_PER_PAGE,
    DEFAULT_TIMESTAMP_FORMAT,
    ExportFormat,
    render_report,
)
from power_meter.storage import HistoryStore
from power_meter.telemetry import TelemetryRecord

logger = logging.getLogger(__name__)

DOWNLOAD_LIMIT = 1000


@dataclass(frozen=True)
class ExportResult:
    """Outcome of one successful export."""

    path: Path
    format: ExportFormat
    row_count: int


def export_filename(fmt: ExportFormat, moment: Optional[datetime] = None) -> str:
    """``sensor_data_<UTC ISO timestamp without milliseconds>.<ext>``."""
    utc = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return f"sensor_data_{utc.strftime('%Y-%m-%dT%H:%M:%S')}.{fmt.extension}"


def disk_filename(name: str, windows: Optional[bool] = None) -> str:
    """Name used on disk; Windows does not allow ':' in file names."""
    if windows is None:
        windows = os.name == "nt"
    return name.replace(":", "-") if windows else name


def deliver(payload: bytes, path: Path) -> Path:
    """Write ``payload`` to ``path`` through a temporary file so readers never see a partial report."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp, "wb") as handle:
            handle.write(payload)
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    return path


class ExportPipeline:
    """Fetches, orders, renders and delivers one report at a time.

    A second :meth:`export_report` call while one is running returns ``None``
    without querying the store. Errors surface as :class:`ExportError`
    subclasses and always release the in-flight guard.
    """

    def __init__(
        self,
        store: HistoryStore,
        output_dir: Union[str, Path],
        *,
        download_limit: int = DOWNLOAD_LIMIT,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
        rows_per_page: int = DEFAULT_ROWS_PER_PAGE,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if download_limit < 1:
            raise ValueError("download_limit must be at least 1")
        self.store = store
        self.output_dir = Path(output_dir)
        self.download_limit = download_limit
        self.timestamp_format = timestamp_format
        self.rows_per_page = rows_per_page
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def export_report(self, fmt: Union[ExportFormat, str]) -> Optional[ExportResult]:
        fmt = ExportFormat.parse(fmt)
        if self._in_flight:
            logger.info("Export already in progress; ignoring %s request", fmt.value)
            return None
        self._in_flight = True
        try:
            loop = asyncio.get_running_loop()
            batch = await self._fetch_batch(loop)
            moment = self._clock()
            payload = await self._render(loop, batch, fmt, moment)
            path = self.output_dir / disk_filename(export_filename(fmt, moment))
            try:
                await loop.run_in_executor(None, deliver, payload, path)
            except OSError as exc:
                raise DeliveryError(f"Could not save report: {exc}") from exc
            logger.info("Exported %d records to %s", len(batch), path)
            return ExportResult(path=path, format=fmt, row_count=len(batch))
        except ExportError as exc:
            logger.warning("Export failed: %s", exc.user_message)
            raise
        finally:
            self._in_flight = False

    async def _fetch_batch(self, loop: asyncio.AbstractEventLoop) -> List[TelemetryRecord]:
        try:
            records = await loop.run_in_executor(None, self.store.fetch_latest, self.download_limit)
        except ExportError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise StoreQueryError(str(exc) or None) from exc
        if not records:
            raise EmptyResultError()
        # Store ordering is only a hint.
        batch = sorted(records, key=lambda record: record.timestamp)
        return batch[-self.download_limit:]

    async def _render(
        self,
        loop: asyncio.AbstractEventLoop,
        batch: List[TelemetryRecord],
        fmt: ExportFormat,
        moment: datetime,
    ) -> bytes:
        def _run() -> bytes:
            return render_report(
                batch,
                fmt,
                timestamp_format=self.timestamp_format,
                rows_per_page=self.rows_per_page,
                generated_at=moment,
            )

        try:
            return await loop.run_in_executor(None, _run)
        except RenderError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise RenderError(str(exc) or None) from exc
