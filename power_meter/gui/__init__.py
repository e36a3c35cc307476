"""Graphical user interface components for the meter dashboard."""

from __future__ import annotations

from .model import (
    CHANNEL_STYLES,
    DASHBOARD_TITLE,
    STATUS_COLORS,
    ChannelStyle,
    DashboardSnapshot,
    StatusTier,
    status_text,
    status_tier,
    take_snapshot,
)

__all__ = [
    "CHANNEL_STYLES",
    "DASHBOARD_TITLE",
    "STATUS_COLORS",
    "ChannelStyle",
    "DashboardSnapshot",
    "StatusTier",
    "status_text",
    "status_tier",
    "take_snapshot",
]
