"""Qt-based main window for watching the meter stream and exporting reports."""

from __future__ import annotations

import concurrent.futures
from typing import Callable, Optional

from PySide6.QtCore import Qt, QTimer, Signal, Slot
from PySide6.QtWidgets import (
    QApplication,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from power_meter.errors import GENERIC_EXPORT_MESSAGE, ExportError
from power_meter.export import ExportFormat, ExportResult
from power_meter.gui.model import CHANNEL_STYLES, DASHBOARD_TITLE, DashboardSnapshot
from power_meter.gui.widgets import TelemetryPlot

# ---------------------------------------------------------------------------
# Layout constants
WINDOW_DEFAULT_SIZE = (1280, 860)
TITLE_FONT_SIZE_PT = 16

SnapshotProvider = Callable[[], Optional[DashboardSnapshot]]
ExportRunner = Callable[[ExportFormat], "concurrent.futures.Future[Optional[ExportResult]]"]


class StatusPane(QGroupBox):
    """Connection status line and the most recent reading per channel."""

    def __init__(self) -> None:
        super().__init__("Status")
        self.status_label = QLabel("Status: Connecting...")
        self.values_label = QLabel("No readings yet")

        layout = QVBoxLayout()
        layout.addWidget(self.status_label)
        layout.addWidget(self.values_label)
        self.setLayout(layout)

    def update_snapshot(self, snapshot: DashboardSnapshot) -> None:
        self.status_label.setText(f"Status: {snapshot.status_text}")
        self.status_label.setStyleSheet(f"color: {snapshot.status_color}; font-weight: bold;")
        buffer = snapshot.buffer
        if not len(buffer):
            self.values_label.setText("No readings yet")
            return
        parts = []
        for style in CHANNEL_STYLES:
            value = buffer.channel(style.channel)[-1]
            if value is not None:
                parts.append(f"{style.label}: {style.format_value(value)}")
        self.values_label.setText(f"{buffer.labels[-1]}  " + "   ".join(parts))


class ExportPane(QGroupBox):
    """Download buttons; disabled while an export is running."""

    export_requested = Signal(str)

    def __init__(self) -> None:
        super().__init__("Download")
        self.csv_btn = QPushButton("Download CSV")
        self.pdf_btn = QPushButton("Download PDF")

        layout = QHBoxLayout()
        layout.addWidget(self.csv_btn)
        layout.addWidget(self.pdf_btn)
        layout.addStretch()
        self.setLayout(layout)

        self.csv_btn.clicked.connect(lambda: self.export_requested.emit(ExportFormat.CSV.value))
        self.pdf_btn.clicked.connect(lambda: self.export_requested.emit(ExportFormat.PDF.value))

    def set_busy(self, busy: bool) -> None:
        self.csv_btn.setEnabled(not busy)
        self.pdf_btn.setEnabled(not busy)
        self.csv_btn.setText("Downloading..." if busy else "Download CSV")
        self.pdf_btn.setText("Downloading..." if busy else "Download PDF")


class MainWindow(QMainWindow):
    """Main UI window coordinating panes."""

    export_requested = Signal(str)
    export_finished = Signal(object)

    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle(DASHBOARD_TITLE)
        self.resize(*WINDOW_DEFAULT_SIZE)

        title = QLabel(DASHBOARD_TITLE)
        title.setAlignment(Qt.AlignCenter)
        title.setStyleSheet(f"font-size: {TITLE_FONT_SIZE_PT}pt; font-weight: bold;")

        self.status_pane = StatusPane()
        self.telemetry_plot = TelemetryPlot()
        self.export_pane = ExportPane()

        central = QWidget()
        layout = QVBoxLayout()
        layout.addWidget(title)
        layout.addWidget(self.status_pane)
        layout.addWidget(self.telemetry_plot, stretch=1)
        layout.addWidget(self.export_pane)
        central.setLayout(layout)
        self.setCentralWidget(central)

        self.export_pane.export_requested.connect(self.export_requested)
        self.export_finished.connect(self.show_export_outcome)

    @Slot(object)
    def update_snapshot(self, snapshot: DashboardSnapshot) -> None:
        self.status_pane.update_snapshot(snapshot)
        self.telemetry_plot.set_snapshot(snapshot.buffer)

    @Slot(object)
    def show_export_outcome(self, future: "concurrent.futures.Future[Optional[ExportResult]]") -> None:
        self.export_pane.set_busy(False)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            message = error.user_message if isinstance(error, ExportError) else (str(error) or GENERIC_EXPORT_MESSAGE)
            QMessageBox.critical(self, "Download Failed", message)
            return
        result = future.result()
        if result is not None:
            QMessageBox.information(
                self,
                "Download Complete",
                f"Saved {result.row_count} rows to {result.path}",
            )


def run_gui(
    snapshot_provider: SnapshotProvider,
    export_runner: ExportRunner,
    snapshot_interval_ms: int = 500,
) -> None:
    """Launch the GUI, poll snapshots and hand export requests to ``export_runner``."""
    app = QApplication.instance() or QApplication([])
    window = MainWindow()

    def refresh() -> None:
        snapshot = snapshot_provider()
        if snapshot is None:
            return
        window.update_snapshot(snapshot)

    def handle_export(fmt: str) -> None:
        window.export_pane.set_busy(True)
        future = export_runner(ExportFormat.parse(fmt))
        future.add_done_callback(window.export_finished.emit)

    timer = QTimer()
    timer.timeout.connect(refresh)
    timer.start(snapshot_interval_ms)
    window.export_requested.connect(handle_export)

    window.show()
    refresh()
    app.exec()
