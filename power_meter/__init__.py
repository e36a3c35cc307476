"""Core package for the live power-meter dashboard."""

__all__ = ["telemetry", "transport", "monitor", "storage", "export", "io", "gui"]
__version__ = "0.1.0"
