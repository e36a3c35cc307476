"""I/O utilities (configuration)."""

from .settings import (
    DEFAULT_SETTINGS_PATH,
    DashboardConfig,
    find_project_root,
    load_config,
    load_settings,
)

__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "DashboardConfig",
    "find_project_root",
    "load_config",
    "load_settings",
]
