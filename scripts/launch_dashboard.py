#!/usr/bin/env python3
"""Launch the live power-meter dashboard."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from power_meter.gui.main_window import run_gui
from power_meter.gui.model import take_snapshot
from power_meter.io import load_config
from power_meter.monitor import ConnectionMonitor
from power_meter.runtime import EventLoopThread, build_export_pipeline, build_transport
from power_meter.telemetry import StreamBuffer, TelemetryLogger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--settings", type=Path, help="Optional path to a settings YAML file.")
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use simulated readings instead of connecting to the meter server.",
    )
    parser.add_argument(
        "--interval",
        type=int,
        help="Chart refresh interval in milliseconds (default from settings).",
    )
    parser.add_argument(
        "--no-record",
        action="store_true",
        help="Do not append live readings to the CSV history directory.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    config = load_config(args.settings) if args.settings else load_config()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    recorder: Optional[TelemetryLogger] = None
    if not args.no_record:
        recorder = TelemetryLogger(config.history_dir / f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv")

    runtime = EventLoopThread()
    loop = runtime.start()
    buffer = StreamBuffer(max_points=config.buffer_max_points)
    transport = build_transport(config, loop, simulated=args.mock)
    monitor = ConnectionMonitor(transport, buffer, record_sink=recorder)
    pipeline = build_export_pipeline(config)

    runtime.call_soon(monitor.start)
    try:
        run_gui(
            lambda: take_snapshot(buffer, monitor),
            lambda fmt: runtime.submit(pipeline.export_report(fmt)),
            snapshot_interval_ms=args.interval or config.refresh_interval_ms,
        )
    finally:
        runtime.call_soon(monitor.stop)
        runtime.stop()
        if recorder is not None:
            recorder.close()


if __name__ == "__main__":
    main()
