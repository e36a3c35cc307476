#!/usr/bin/env python3
"""Headless recorder: follow the meter stream and append readings to the CSV history."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from power_meter.gui.model import status_text
from power_meter.io import DashboardConfig, load_config
from power_meter.monitor import ConnectionMonitor, ConnectionState
from power_meter.runtime import build_transport
from power_meter.telemetry import StreamBuffer, TelemetryLogger

logger = logging.getLogger("record_stream")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--settings", type=Path, help="Optional path to a settings YAML file.")
    parser.add_argument("--mock", action="store_true", help="Record simulated readings.")
    parser.add_argument("--duration", type=float, help="Stop after this many seconds (default: run until Ctrl-C).")
    parser.add_argument("--output", type=Path, help="CSV file to append to (default: new file in the history dir).")
    return parser.parse_args()


async def record(config: DashboardConfig, output: Path, mock: bool, duration: Optional[float]) -> int:
    buffer = StreamBuffer(max_points=config.buffer_max_points)
    transport = build_transport(config, asyncio.get_running_loop(), simulated=mock)

    def report(state: ConnectionState) -> None:
        logger.info("Status: %s", status_text(state))

    with TelemetryLogger(output) as recorder:
        monitor = ConnectionMonitor(transport, buffer, record_sink=recorder)
        monitor.on_state_change(report)
        monitor.start()
        try:
            if duration:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
        finally:
            monitor.stop()
            # Give the transport task a chance to observe the cancellation.
            await asyncio.sleep(0)
    logger.info("Recorded to %s (%d rejected payloads)", output, monitor.rejected_payloads)
    return 0


def main() -> int:
    args = parse_args()
    config = load_config(args.settings) if args.settings else load_config()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    output = args.output or config.history_dir / f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
    try:
        return asyncio.run(record(config, output, args.mock, args.duration))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
