"""Telemetry plotting widget embedded in Qt."""

from __future__ import annotations

from typing import Optional

from PySide6.QtWidgets import QSizePolicy, QVBoxLayout, QWidget
from matplotlib.backends.backend_qtagg import FigureCanvasQTAgg as FigureCanvas
from matplotlib.figure import Figure

from power_meter.gui.model import CHANNEL_STYLES
from power_meter.telemetry import BufferSnapshot


class TelemetryPlot(QWidget):
    """Embeds four Matplotlib line charts, one per meter channel."""

    def __init__(self, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self._snapshot: Optional[BufferSnapshot] = None

        self._figure = Figure(figsize=(10, 6))
        self._canvas = FigureCanvas(self._figure)
        self._canvas.setSizePolicy(QSizePolicy.Expanding, QSizePolicy.Expanding)

        layout = QVBoxLayout()
        layout.addWidget(self._canvas)
        self.setLayout(layout)

        self._axes = {}
        self._lines = {}
        for index, style in enumerate(CHANNEL_STYLES, start=1):
            ax = self._figure.add_subplot(2, 2, index)
            ax.set_title(style.title, fontsize=10)
            ax.set_ylabel(style.unit)
            ax.grid(True, linestyle="--", linewidth=0.3)
            line = ax.plot([], [], color=style.color, marker="o", markersize=3, label=style.label)[0]
            ax.legend(loc="upper left", fontsize=8)
            self._axes[style.channel] = ax
            self._lines[style.channel] = line

        self._figure.tight_layout()

    def set_snapshot(self, snapshot: BufferSnapshot) -> None:
        self._snapshot = snapshot
        self.refresh()

    def refresh(self) -> None:
        if self._snapshot is None:
            return
        data = self._snapshot.to_dict_of_lists()
        labels = data["labels"]
        positions = list(range(len(labels)))

        for style in CHANNEL_STYLES:
            ax = self._axes[style.channel]
            values = data[style.channel]
            self._lines[style.channel].set_data(positions, values)
            ax.set_xlim(-0.5, max(len(positions) - 0.5, 0.5))
            ax.set_ylim(*style.y_limits(values))
            ax.set_xticks(positions)
            ax.set_xticklabels(labels, rotation=45, ha="right", fontsize=7)

        self._canvas.draw_idle()
