#!/usr/bin/env python3
"""Export the most recent historical readings as a CSV or PDF report."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from power_meter.errors import ExportError
from power_meter.export import ExportFormat
from power_meter.io import load_config
from power_meter.runtime import build_export_pipeline


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--format",
        choices=[fmt.value for fmt in ExportFormat],
        default=ExportFormat.CSV.value,
        help="Report format (default: csv).",
    )
    parser.add_argument("--settings", type=Path, help="Optional path to a settings YAML file.")
    parser.add_argument("--output-dir", type=Path, help="Directory for the report (default from settings).")
    parser.add_argument("--limit", type=int, help="Maximum number of records (default from settings).")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    config = load_config(args.settings) if args.settings else load_config()
    if args.output_dir:
        config = replace(config, output_dir=args.output_dir)
    if args.limit:
        config = replace(config, download_limit=args.limit)
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    pipeline = build_export_pipeline(config)
    try:
        result = asyncio.run(pipeline.export_report(args.format))
    except ExportError as exc:
        raise SystemExit(f"Export failed: {exc.user_message}") from exc
    if result is None:
        return 1
    print(f"Saved {result.row_count} rows to {result.path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
