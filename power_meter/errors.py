"""Exception types shared across the dashboard."""

from __future__ import annotations

from typing import Optional

GENERIC_EXPORT_MESSAGE = "Failed to export sensor data."


class SettingsError(RuntimeError):
    """Raised when the settings file contains invalid values."""


class TransportError(RuntimeError):
    """Connection-level failure reported by a transport."""

    @property
    def message(self) -> str:
        return str(self) or "connection error"


class MalformedPayloadError(ValueError):
    """Raised when a telemetry payload cannot be turned into a record."""


class ExportError(RuntimeError):
    """Base class for failures that abort a single export."""

    default_message = GENERIC_EXPORT_MESSAGE

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def user_message(self) -> str:
        text = str(self).strip()
        return text or GENERIC_EXPORT_MESSAGE


class EmptyResultError(ExportError):
    """The historical store holds no records to export."""

    default_message = "No sensor data available to export."


class StoreQueryError(ExportError):
    """The historical store could not be queried."""


class RenderError(ExportError):
    """The report could not be rendered."""


class DeliveryError(ExportError):
    """The rendered report could not be written to disk."""
