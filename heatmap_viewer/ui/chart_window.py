"""
Heatmap chart GUI using PyQt6 - pops out as a standalone window.

Paints DrawPlans produced by the RedrawScheduler:
- Axis lines and labels unclipped
- Heatmap segments and candles clipped to the plot area
- Symbol box in the header switches instrument
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from PyQt6.QtCore import QPointF, QRectF, Qt, QTimer
from PyQt6.QtGui import QColor, QFont, QPainter, QPen, QPolygonF
from PyQt6.QtWidgets import (
    QApplication, QHBoxLayout, QLabel, QLineEdit, QMainWindow, QVBoxLayout, QWidget,
)

from ..config import ChartStyle
from ..types import CandlePrimitive, Color, DrawPlan, Layer, LinePrimitive, TextPrimitive

if TYPE_CHECKING:
    from ..engine.scheduler import RedrawScheduler
    from ..engine.session import MarketDataSession

HEADER_BG = QColor(30, 41, 59)
TEXT_COLOR = QColor(248, 250, 252)


def qcolor(color: Color, opacity: float = 1.0) -> QColor:
    c = QColor(*color)
    c.setAlphaF(min(max(opacity, 0.0), 1.0))
    return c


class ChartCanvas(QWidget):
    """Widget that paints the latest DrawPlan and reports its size to the scheduler."""

    def __init__(self, scheduler: RedrawScheduler) -> None:
        super().__init__()
        self.scheduler = scheduler
        self._plan: DrawPlan | None = None
        self.setMinimumSize(400, 300)

    def show_plan(self, plan: DrawPlan) -> None:
        """RedrawScheduler present callback."""
        self._plan = plan
        self.update()

    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        self.scheduler.on_resize(event.size().width(), event.size().height())

    def paintEvent(self, event) -> None:
        plan = self._plan
        style = ChartStyle.for_mode(plan.dark_mode if plan else True)

        painter = QPainter(self)
        painter.setRenderHint(QPainter.RenderHint.Antialiasing)
        painter.fillRect(self.rect(), qcolor(style.background))

        if plan is None or plan.is_empty:
            painter.setPen(qcolor(style.axis_color, style.label_opacity))
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, "Waiting for candles...")
            painter.end()
            return

        clip = plan.plot_area
        clip_rect = QRectF(clip.left, clip.top, clip.width, clip.height) if clip else None

        for prim in plan.primitives:
            if prim.layer == Layer.AXIS or clip_rect is None:
                painter.setClipping(False)
            else:
                painter.setClipRect(clip_rect)

            if isinstance(prim, LinePrimitive):
                self._paint_line(painter, prim)
            elif isinstance(prim, CandlePrimitive):
                self._paint_candle(painter, prim)
            elif isinstance(prim, TextPrimitive):
                self._paint_text(painter, prim)

        painter.end()

    @staticmethod
    def _paint_line(painter: QPainter, line: LinePrimitive) -> None:
        pen = QPen(qcolor(line.color, line.opacity))
        pen.setWidthF(line.width)
        pen.setCapStyle(Qt.PenCapStyle.FlatCap)
        painter.setPen(pen)
        painter.drawPolyline(QPolygonF([QPointF(x, y) for x, y in line.points]))

    @staticmethod
    def _paint_candle(painter: QPainter, candle: CandlePrimitive) -> None:
        color = qcolor(candle.color)
        painter.setPen(QPen(color, 1))
        painter.drawLine(QPointF(candle.x, candle.high_y), QPointF(candle.x, candle.low_y))

        top = min(candle.open_y, candle.close_y)
        height = max(abs(candle.open_y - candle.close_y), 1.0)
        body = QRectF(candle.x - candle.width / 2, top, candle.width, height)
        if candle.filled:
            painter.fillRect(body, color)
        else:
            painter.drawRect(body)

    @staticmethod
    def _paint_text(painter: QPainter, label: TextPrimitive) -> None:
        painter.save()
        painter.setPen(qcolor(label.color, label.opacity))
        painter.setFont(QFont(label.font, label.size))
        painter.translate(label.x, label.y)
        painter.rotate(label.rotation)
        painter.drawText(QRectF(-60, -10, 120, 20), Qt.AlignmentFlag.AlignCenter, label.text)
        painter.restore()


class ChartWindow(QMainWindow):
    """Main Heatmap Viewer window."""

    def __init__(self, session: MarketDataSession, scheduler: RedrawScheduler) -> None:
        super().__init__()
        self.session = session
        self.scheduler = scheduler

        self.setWindowTitle(f"Heatmap Viewer - {session.symbol or ''}")
        self.setMinimumSize(900, 600)
        self.setStyleSheet(f"background-color: {HEADER_BG.name()}; color: {TEXT_COLOR.name()};")

        self._setup_ui()
        self._setup_timers()

    def _setup_ui(self) -> None:
        """Build the UI."""
        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)
        layout.setContentsMargins(0, 0, 0, 0)

        header = QHBoxLayout()
        header.setContentsMargins(10, 6, 10, 6)
        self.header = QLabel("Connecting...")
        self.header.setFont(QFont("Consolas", 12, QFont.Weight.Bold))
        header.addWidget(self.header, 1)

        self.symbol_input = QLineEdit()
        self.symbol_input.setPlaceholderText("Symbol")
        self.symbol_input.setMaximumWidth(160)
        self.symbol_input.returnPressed.connect(self._switch_symbol)
        header.addWidget(self.symbol_input)
        layout.addLayout(header)

        self.canvas = ChartCanvas(self.scheduler)
        self.scheduler.present = self.canvas.show_plan
        layout.addWidget(self.canvas, 1)

    def _setup_timers(self) -> None:
        """Redraw on the scheduler cadence, refresh header text more often."""
        self.redraw_timer = QTimer()
        self.redraw_timer.timeout.connect(self.scheduler.on_tick)
        self.redraw_timer.start(int(self.scheduler.interval_sec * 1000))

        self.status_timer = QTimer()
        self.status_timer.timeout.connect(self._update_header)
        self.status_timer.start(500)

    def _update_header(self) -> None:
        s = self.session
        self.header.setText(
            f"  {s.symbol or '-'}  │  Buckets: {len(s.heatmap)}  │  "
            f"Pending: {s.pending}  │  Candles: {len(s.klines)}  │  "
            f"Dropped: {s.binner.total_dropped}"
        )

    def _switch_symbol(self) -> None:
        symbol = self.symbol_input.text().strip()
        self.symbol_input.clear()
        if symbol and self.session.set_instrument(symbol):
            self.setWindowTitle(f"Heatmap Viewer - {self.session.symbol}")
            self.scheduler.on_tick()


def run_gui(session: MarketDataSession, scheduler: RedrawScheduler) -> None:
    """Run the GUI application (blocking)."""
    app = QApplication(sys.argv)
    app.setStyle("Fusion")

    window = ChartWindow(session, scheduler)
    window.show()

    app.exec()
