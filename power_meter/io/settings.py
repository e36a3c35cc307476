import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import yaml

from power_meter.errors import SettingsError

PROJECT_MARKERS: Iterable[str] = (".git", "pyproject.toml", "config")
DEFAULT_SETTINGS_PATH = Path("config/settings.yml")
HISTORY_BACKENDS = ("csv", "firebase")

PathLike = Union[str, os.PathLike]


def find_project_root(markers: Iterable[str] = PROJECT_MARKERS) -> Path:
    """Attempt to locate the repository root by walking up until a marker file/dir appears."""
    start = Path(__file__).resolve().parent
    for candidate in [start] + list(start.parents):
        for marker in markers:
            if (candidate / marker).exists():
                return candidate
    return start


def _resolve(path: PathLike, project_root: Path) -> Path:
    target = Path(path)
    if not target.is_absolute():
        target = project_root / target
    return target


def _load_yaml(target: Path) -> Dict[str, Any]:
    if not target.exists():
        raise FileNotFoundError(f"settings file not found: {target}")
    with open(target, "r", encoding="utf-8") as handle:
        try:
            return yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise SettingsError(f"Invalid YAML in settings file {target}: {exc}") from exc


def load_settings(path: Optional[PathLike] = None) -> Dict[str, Any]:
    """Load the YAML settings file, defaulting to ``config/settings.yml`` under the project root."""
    project_root = find_project_root()
    target = _resolve(path or DEFAULT_SETTINGS_PATH, project_root)
    return _load_yaml(target)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise SettingsError(f"'{name}' must be a mapping")
    return section


def _positive_int(value: Any, key: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"'{key}' must be an integer, got {value!r}") from exc
    if number < 1:
        raise SettingsError(f"'{key}' must be at least 1, got {number}")
    return number


def _flag(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise SettingsError(f"'{key}' must be true or false, got {value!r}")
    return value


def _non_negative_float(value: Any, key: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise SettingsError(f"'{key}' must be a number, got {value!r}") from exc
    if number < 0:
        raise SettingsError(f"'{key}' must not be negative, got {number}")
    return number


@dataclass(frozen=True)
class DashboardConfig:
    """Typed view of ``settings.yml``; relative paths are resolved against the project root."""

    transport_url: str = "ws://localhost:3000/"
    reconnection: bool = True
    reconnection_attempts: int = 5
    reconnection_delay_s: float = 1.0
    open_timeout_s: float = 5.0
    buffer_max_points: int = 20
    download_limit: int = 1000
    output_dir: Path = Path("output/exports")
    pdf_timestamp_format: str = "%d/%m/%Y %H:%M:%S"
    rows_per_page: int = 30
    history_backend: str = "csv"
    history_dir: Path = Path("output/telemetry")
    firebase_url: str = ""
    firebase_path: str = "sensor_data"
    firebase_timeout_s: float = 10.0
    refresh_interval_ms: int = 500
    log_level: str = "INFO"

    @classmethod
    def from_settings(cls, data: Dict[str, Any], project_root: Optional[Path] = None) -> "DashboardConfig":
        root = project_root or find_project_root()
        transport = _section(data, "transport")
        buffer = _section(data, "buffer")
        export = _section(data, "export")
        history = _section(data, "history")
        firebase = history.get("firebase") or {}
        ui = _section(data, "ui")
        logging_cfg = _section(data, "logging")

        backend = str(history.get("backend", cls.history_backend)).lower()
        if backend not in HISTORY_BACKENDS:
            raise SettingsError(f"Unsupported history backend '{backend}'")
        firebase_url = str(firebase.get("database_url") or "")
        if backend == "firebase" and not firebase_url:
            raise SettingsError("history.firebase.database_url is required for the firebase backend")

        return cls(
            transport_url=str(transport.get("url", cls.transport_url)),
            reconnection=_flag(transport.get("reconnection", cls.reconnection), "transport.reconnection"),
            reconnection_attempts=_positive_int(
                transport.get("reconnection_attempts", cls.reconnection_attempts), "transport.reconnection_attempts"
            ),
            reconnection_delay_s=_non_negative_float(
                transport.get("reconnection_delay_ms", cls.reconnection_delay_s * 1000), "transport.reconnection_delay_ms"
            ) / 1000.0,
            open_timeout_s=_non_negative_float(transport.get("open_timeout_s", cls.open_timeout_s), "transport.open_timeout_s"),
            buffer_max_points=_positive_int(buffer.get("max_points", cls.buffer_max_points), "buffer.max_points"),
            download_limit=_positive_int(export.get("download_limit", cls.download_limit), "export.download_limit"),
            output_dir=_resolve(export.get("output_dir", cls.output_dir), root),
            pdf_timestamp_format=str(export.get("pdf_timestamp_format", cls.pdf_timestamp_format)),
            rows_per_page=_positive_int(export.get("rows_per_page", cls.rows_per_page), "export.rows_per_page"),
            history_backend=backend,
            history_dir=_resolve(history.get("csv_dir", cls.history_dir), root),
            firebase_url=firebase_url,
            firebase_path=str(firebase.get("path", cls.firebase_path)),
            firebase_timeout_s=_non_negative_float(
                firebase.get("timeout_s", cls.firebase_timeout_s), "history.firebase.timeout_s"
            ),
            refresh_interval_ms=_positive_int(ui.get("refresh_interval_ms", cls.refresh_interval_ms), "ui.refresh_interval_ms"),
            log_level=str(logging_cfg.get("level", cls.log_level)).upper(),
        )


def load_config(path: Optional[PathLike] = None) -> DashboardConfig:
    """Load ``settings.yml`` and convert it into a :class:`DashboardConfig`."""
    return DashboardConfig.from_settings(load_settings(path))
