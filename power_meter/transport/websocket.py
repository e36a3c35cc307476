"""Reconnecting WebSocket client that emits meter events."""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import logging
from typing import Any, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed

from power_meter.errors import TransportError
from power_meter.transport.base import (
    CLIENT_DISCONNECT_REASON,
    EVENT_CONNECT,
    EVENT_CONNECT_ERROR,
    EVENT_DISCONNECT,
    EVENT_RECONNECT_ATTEMPT,
    EVENT_RECONNECT_FAILED,
    EVENT_SENSOR_DATA,
    TRANSPORT_CLOSE_REASON,
    EventEmitter,
)

logger = logging.getLogger(__name__)

Runner = Union["asyncio.Task[None]", "concurrent.futures.Future[None]"]


class WebSocketTransport(EventEmitter):
    """Persistent WebSocket connection with a fixed-delay, capped reconnection policy.

    Frames are JSON. ``{"event": name, "data": payload}`` and ``[name, payload]``
    are dispatched as ``name``; any other JSON object is a ``sensorData`` payload.
    All handlers run on the event loop that drives :meth:`run`.
    """

    def __init__(
        self,
        url: str,
        *,
        reconnection: bool = True,
        reconnection_attempts: int = 5,
        reconnection_delay: float = 1.0,
        open_timeout: float = 5.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        super().__init__()
        self.url = url
        self.reconnection = reconnection
        self.reconnection_attempts = reconnection_attempts
        self.reconnection_delay = reconnection_delay
        self.open_timeout = open_timeout
        self._loop = loop
        self._runner: Optional[Runner] = None
        self._closing = False
        self._connected = False
        # Bumped on every connect(); a runner from an older generation stays silent.
        self._generation = 0

    @property
    def connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Start the connection loop on the configured (or running) event loop.

        A runner that was asked to stop but has not finished yet is superseded
        by a fresh one, so ``disconnect(); connect()`` always reconnects.
        """
        if self._runner is not None and not self._runner.done() and not self._closing:
            return
        self._generation += 1
        self._closing = False
        self._connected = False
        self._runner = self._submit(self.run(self._generation))

    def disconnect(self) -> None:
        self._closing = True
        runner = self._runner
        if runner is None or runner.done():
            return
        if isinstance(runner, asyncio.Task):
            runner.get_loop().call_soon_threadsafe(runner.cancel)
        else:
            runner.cancel()

    def _submit(self, coro) -> Runner:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is None:
            if running is None:
                coro.close()
                raise TransportError("WebSocketTransport.connect needs an event loop")
            self._loop = running
        if running is self._loop:
            return self._loop.create_task(coro)
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    # ------------------------------------------------------------------
    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _emit_for(self, generation: int, event: str, *args: Any) -> None:
        if self._is_current(generation):
            self.emit(event, *args)
        else:
            logger.debug("Dropping '%s' from superseded connection loop", event)

    async def run(self, generation: Optional[int] = None) -> None:
        if generation is None:
            generation = self._generation
        attempts = 0
        connected = False
        while self._is_current(generation) and not self._closing:
            if attempts:
                logger.info("Reconnect attempt %d/%d to %s", attempts, self.reconnection_attempts, self.url)
                self._emit_for(generation, EVENT_RECONNECT_ATTEMPT, attempts)
            try:
                async with websockets.connect(self.url, open_timeout=self.open_timeout) as ws:
                    attempts = 0
                    connected = True
                    if self._is_current(generation):
                        self._connected = True
                    logger.info("Connected to %s", self.url)
                    self._emit_for(generation, EVENT_CONNECT)
                    reason = await self._receive(ws, generation)
            except asyncio.CancelledError:
                if connected:
                    self._mark_disconnected(generation)
                    self._emit_for(generation, EVENT_DISCONNECT, CLIENT_DISCONNECT_REASON)
                break
            except Exception as exc:  # noqa: BLE001
                if connected:
                    connected = False
                    self._mark_disconnected(generation)
                    logger.warning("Connection to %s dropped: %s", self.url, exc)
                    self._emit_for(generation, EVENT_DISCONNECT, f"{TRANSPORT_CLOSE_REASON}: {exc}")
                else:
                    logger.warning("Connection to %s failed: %s", self.url, exc)
                    self._emit_for(generation, EVENT_CONNECT_ERROR, TransportError(str(exc) or type(exc).__name__))
            else:
                connected = False
                self._mark_disconnected(generation)
                if self._closing:
                    reason = CLIENT_DISCONNECT_REASON
                logger.info("Disconnected from %s (%s)", self.url, reason)
                self._emit_for(generation, EVENT_DISCONNECT, reason)

            if self._closing or not self.reconnection or not self._is_current(generation):
                break
            attempts += 1
            if attempts > self.reconnection_attempts:
                logger.error("Giving up on %s after %d attempts", self.url, self.reconnection_attempts)
                self._emit_for(generation, EVENT_RECONNECT_FAILED)
                break
            try:
                await asyncio.sleep(self.reconnection_delay)
            except asyncio.CancelledError:
                break

    def _mark_disconnected(self, generation: int) -> None:
        if self._is_current(generation):
            self._connected = False

    async def _receive(self, ws, generation: int) -> str:
        try:
            async for raw in ws:
                if not self._is_current(generation):
                    break
                self.handle_message(raw)
        except ConnectionClosed:
            pass
        return ws.close_reason or TRANSPORT_CLOSE_REASON

    def handle_message(self, raw: Union[str, bytes]) -> None:
        """Decode one frame and emit the event it carries."""
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("Dropping non UTF-8 frame from %s", self.url)
                return
        text = raw.strip()
        if not text:
            return
        try:
            frame: Any = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Dropping malformed frame: %.80s", text)
            return

        if isinstance(frame, list) and len(frame) == 2 and isinstance(frame[0], str):
            self.emit(frame[0], frame[1])
        elif isinstance(frame, dict) and isinstance(frame.get("event"), str):
            self.emit(frame["event"], frame.get("data"))
        elif isinstance(frame, dict):
            self.emit(EVENT_SENSOR_DATA, frame)
        else:
            logger.warning("Dropping unsupported frame type %s", type(frame).__name__)
