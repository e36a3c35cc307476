"""Wiring helpers: background event loop and component factories."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional, TypeVar

from power_meter.export import ExportPipeline
from power_meter.io import DashboardConfig
from power_meter.storage import CsvHistoryStore, FirebaseHistoryStore, HistoryStore
from power_meter.transport import SimulatedTransport, Transport, WebSocketTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventLoopThread:
    """Runs an asyncio loop on a daemon thread so a Qt main loop can stay in charge."""

    def __init__(self, name: str = "MeterLoop") -> None:
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("EventLoopThread.start must be called first")
        return self._loop

    def start(self) -> asyncio.AbstractEventLoop:
        if self._thread and self._thread.is_alive():
            return self.loop
        self._ready.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        self._ready.wait()
        return self.loop

    def submit(self, coro: Coroutine[Any, Any, T]) -> "concurrent.futures.Future[T]":
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call_soon(self, callback, *args) -> None:
        self.loop.call_soon_threadsafe(callback, *args)

    def stop(self, timeout: float = 2.0) -> None:
        loop = self._loop
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.close()
            self._loop = None


def build_transport(
    config: DashboardConfig,
    loop: Optional[asyncio.AbstractEventLoop] = None,
    *,
    simulated: bool = False,
) -> Transport:
    if simulated:
        logger.info("Using simulated meter transport")
        return SimulatedTransport(loop=loop)
    return WebSocketTransport(
        config.transport_url,
        reconnection=config.reconnection,
        reconnection_attempts=config.reconnection_attempts,
        reconnection_delay=config.reconnection_delay_s,
        open_timeout=config.open_timeout_s,
        loop=loop,
    )


def build_history_store(config: DashboardConfig) -> HistoryStore:
    if config.history_backend == "firebase":
        return FirebaseHistoryStore(
            config.firebase_url,
            config.firebase_path,
            timeout=config.firebase_timeout_s,
        )
    return CsvHistoryStore(config.history_dir)


def build_export_pipeline(config: DashboardConfig, store: Optional[HistoryStore] = None) -> ExportPipeline:
    return ExportPipeline(
        store or build_history_store(config),
        config.output_dir,
        download_limit=config.download_limit,
        timestamp_format=config.pdf_timestamp_format,
        rows_per_page=config.rows_per_page,
    )
