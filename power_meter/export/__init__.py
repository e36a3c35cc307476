"""Historical report export (CSV and paginated PDF)."""

from .pipeline import DOWNLOAD_LIMIT, ExportPipeline, ExportResult, deliver, disk_filename, export_filename
from .render import (
    REPORT_HEADER,
    REPORT_TITLE,
    ExportFormat,
    format_decimal,
    format_rows,
    iso_timestamp,
    locale_timestamp,
    render_csv,
    render_pdf,
    render_report,
)

__all__ = [
    "DOWNLOAD_LIMIT",
    "REPORT_HEADER",
    "REPORT_TITLE",
    "ExportFormat",
    "ExportPipeline",
    "ExportResult",
    "deliver",
    "disk_filename",
    "export_filename",
    "format_decimal",
    "format_rows",
    "iso_timestamp",
    "locale_timestamp",
    "render_csv",
    "render_pdf",
    "render_report",
]
