"""Reusable Qt widgets."""

from .telemetry_plot import TelemetryPlot

__all__ = ["TelemetryPlot"]
