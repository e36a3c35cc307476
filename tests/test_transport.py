import asyncio
import json

import pytest
import websockets

from power_meter.errors import TransportError
from power_meter.monitor import ConnectionMonitor, ConnectionPhase
from power_meter.telemetry import StreamBuffer, TelemetryRecord
from power_meter.transport import (
    EventEmitter,
    SimulatedTransport,
    WebSocketTransport,
    simulated_payload,
)

READING = {"timestamp": 1714550400000, "kwh": 1.5, "arus": 2.0, "tegangan": 220.0, "daya": 440.0}


def record_events(transport, events=("connect", "disconnect", "connect_error", "sensorData",
                                      "reconnect_attempt", "reconnect_failed", "status")):
    seen = []
    for name in events:
        transport.on(name, lambda *args, _name=name: seen.append((_name, args)))
    return seen


def test_emitter_off_and_listener_count():
    emitter = EventEmitter()
    calls = []

    def first(value):
        calls.append(("first", value))

    def second(value):
        calls.append(("second", value))

    emitter.on("tick", first)
    emitter.on("tick", second)
    emitter.on("tock", first)
    assert emitter.listener_count() == 3

    emitter.off("tick", first)
    emitter.emit("tick", 1)
    assert calls == [("second", 1)]

    emitter.off("tick")
    assert emitter.listener_count("tick") == 0
    assert emitter.listener_count() == 1


def test_emitter_contains_handler_failures():
    emitter = EventEmitter()
    calls = []

    def broken():
        raise RuntimeError("boom")

    emitter.on("tick", broken)
    emitter.on("tick", lambda: calls.append("ok"))
    emitter.emit("tick")
    assert calls == ["ok"]


def test_handle_message_dispatches_frames():
    transport = WebSocketTransport("ws://unused")
    seen = record_events(transport)

    transport.handle_message(json.dumps(READING))
    transport.handle_message(json.dumps({"event": "status", "data": {"ok": True}}))
    transport.handle_message(json.dumps(["sensorData", READING]).encode("utf-8"))
    transport.handle_message("not json")
    transport.handle_message("[1, 2, 3]")
    transport.handle_message(b"\xff\xfe")
    transport.handle_message("   ")

    assert seen == [
        ("sensorData", (READING,)),
        ("status", ({"ok": True},)),
        ("sensorData", (READING,)),
    ]


def test_connect_without_loop_raises():
    transport = WebSocketTransport("ws://unused")
    with pytest.raises(TransportError):
        transport.connect()


def test_reconnection_policy_is_capped():
    transport = WebSocketTransport(
        "ws://127.0.0.1:1/",
        reconnection_attempts=2,
        reconnection_delay=0,
        open_timeout=1.0,
    )
    seen = record_events(transport)

    asyncio.run(transport.run())

    names = [name for name, _ in seen]
    assert names == [
        "connect_error",
        "reconnect_attempt",
        "connect_error",
        "reconnect_attempt",
        "connect_error",
        "reconnect_failed",
    ]
    assert [args[0] for name, args in seen if name == "reconnect_attempt"] == [1, 2]
    assert all(isinstance(args[0], TransportError) for name, args in seen if name == "connect_error")


def test_no_reconnection_stops_after_first_failure():
    transport = WebSocketTransport("ws://127.0.0.1:1/", reconnection=False, open_timeout=1.0)
    seen = record_events(transport)
    asyncio.run(transport.run())
    assert [name for name, _ in seen] == ["connect_error"]


def test_server_frames_and_close_reason():
    async def handler(ws, *_):
        await ws.send(json.dumps(READING))
        await ws.send(json.dumps(["status", {"ok": True}]))
        await ws.close(reason="bye")

    async def scenario():
        async with websockets.serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            transport = WebSocketTransport(f"ws://127.0.0.1:{port}/", reconnection=False)
            seen = record_events(transport)
            await transport.run()
            return seen

    seen = asyncio.run(scenario())

    assert seen == [
        ("connect", ()),
        ("sensorData", (READING,)),
        ("status", ({"ok": True},)),
        ("disconnect", ("bye",)),
    ]


def test_simulated_payload_is_a_valid_reading():
    for counter in range(50):
        record = TelemetryRecord.from_payload(simulated_payload(counter, energy_start=12.0))
        assert record.energy >= 12.0
        assert record.current >= 0
        assert 200.0 < record.voltage < 240.0


def test_simulated_transport_emits_until_disconnected():
    async def scenario():
        transport = SimulatedTransport(interval=0.01)
        seen = record_events(transport, ("connect", "sensorData", "disconnect"))
        transport.connect()
        await asyncio.sleep(0.1)
        transport.disconnect()
        await asyncio.sleep(0.05)
        return seen

    seen = asyncio.run(scenario())
    names = [name for name, _ in seen]
    assert names[0] == "connect"
    assert names[-1] == "disconnect"
    assert names.count("sensorData") >= 2


async def wait_for_phase(monitor, phase, timeout=3.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while monitor.current_state().phase is not phase:
        if loop.time() > deadline:
            raise AssertionError(f"still {monitor.current_state()} after {timeout}s")
        await asyncio.sleep(0.01)


def test_websocket_stop_then_start_reconnects():
    accepted = []

    async def handler(ws, *_):
        accepted.append(ws)
        await ws.wait_closed()

    async def scenario():
        async with websockets.serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            transport = WebSocketTransport(f"ws://127.0.0.1:{port}/", reconnection_delay=0)
            monitor = ConnectionMonitor(transport, StreamBuffer())
            seen = []
            monitor.on_state_change(lambda state: seen.append(state.phase), replay=False)

            monitor.start()
            await wait_for_phase(monitor, ConnectionPhase.CONNECTED)
            # Restart within one loop iteration, before the old runner has unwound.
            monitor.stop()
            monitor.start()
            await wait_for_phase(monitor, ConnectionPhase.CONNECTED)
            await asyncio.sleep(0.2)

            final = monitor.current_state().phase
            connected = transport.connected
            monitor.stop()
            await asyncio.sleep(0.05)
            return final, connected, seen

    final, connected, seen = asyncio.run(scenario())

    assert final is ConnectionPhase.CONNECTED
    assert connected
    assert len(accepted) == 2
    assert seen[-1] is ConnectionPhase.DISCONNECTED
    assert seen.count(ConnectionPhase.CONNECTED) == 2


def test_simulated_stop_then_start_keeps_streaming():
    async def scenario():
        transport = SimulatedTransport(interval=0.01)
        sunk = []
        monitor = ConnectionMonitor(transport, StreamBuffer(), record_sink=sunk.append)
        monitor.start()
        await wait_for_phase(monitor, ConnectionPhase.CONNECTED)
        monitor.stop()
        monitor.start()
        sunk.clear()
        await asyncio.sleep(0.1)
        state = monitor.current_state().phase
        received = len(sunk)
        monitor.stop()
        await asyncio.sleep(0.02)
        return state, received

    state, received = asyncio.run(scenario())
    assert state is ConnectionPhase.CONNECTED
    assert received >= 2
