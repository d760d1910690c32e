"""
Chart composition: heatmap + candles + axes -> one DrawPlan.

compose() is pure with respect to its inputs and idempotent for identical
inputs (pass now_ms to pin the wall clock used for trailing segments).

Pass structure:
1. Axis auto-ranging from the candles (price axis zoomed out 2x)
2. Axis lines, ticks and labels
3. Heatmap line segments, styled by deviation of their size from the
   global robust center of all intensities
4. Candlesticks on top

Degenerate spreads (no non-zero intensities, or MAD == 0) map every
deviation to 0.0, so no NaN or Infinity ever reaches a primitive.
"""

from __future__ import annotations

import math
import time
from datetime import datetime, timezone
from typing import Callable, Sequence

import numpy as np

from ..config import ChartStyle, HeatmapConfig
from ..types import (
    CandlePrimitive, DrawPlan, HeatmapSnapshot, Kline, Layer, LinePrimitive,
    Primitive, Rect, TextPrimitive, Timestamp,
)
from .stats import median, median_absolute_deviation

TICK_LENGTH = 5.0
BASELINE_OPACITY = 0.3


def format_price_label(value: float, decimals: int = 4) -> str:
    """Round to `decimals` places and drop trailing zeros."""
    scale = 10 ** decimals
    rounded = round(value * scale) / scale
    text = f"{rounded:.{decimals}f}".rstrip('0').rstrip('.')
    return "0" if text in ("", "-0") else text


def format_time_label(ts_ms: Timestamp, fmt: str = "%H:%M:%S") -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime(fmt)


def _axis_values(lo: float, hi: float, count: int) -> list[float]:
    if hi == lo or count <= 1:
        return [lo]
    return [float(v) for v in np.linspace(lo, hi, count)]


class ChartComposer:
    """
    Builds DrawPlans. Holds configuration only, no per-draw state.

    Usage:
        composer = ChartComposer()
        plan = composer.compose(heatmap.snapshot(), klines.snapshot(), (800, 600), dark_mode=True)
    """

    __slots__ = ('config',)

    def __init__(self, config: HeatmapConfig | None = None) -> None:
        self.config = config or HeatmapConfig()

    @staticmethod
    def price_range(klines: Sequence[Kline]) -> tuple[float, float]:
        """[min low, max high] widened by half its own span on each side."""
        lo = min(k.low for k in klines)
        hi = max(k.high for k in klines)
        pad = (hi - lo) / 2.0
        return lo - pad, hi + pad

    @staticmethod
    def time_range(klines: Sequence[Kline]) -> tuple[Timestamp, Timestamp]:
        return min(k.open_time for k in klines), max(k.open_time for k in klines)

    @staticmethod
    def intensity_scale(heatmap: HeatmapSnapshot) -> tuple[float, float]:
        """
        Global (center, spread) over |intensity| of all non-zero finite cells.

        Returns (0.0, 0.0) when there is nothing to measure.
        """
        sizes = [
            abs(size)
            for series in heatmap.values()
            for _, size in series
            if size != 0 and math.isfinite(size)
        ]
        if not sizes:
            return 0.0, 0.0
        center = median(sizes)
        return center, median_absolute_deviation(sizes, center)

    @staticmethod
    def deviation(magnitude: float, center: float, spread: float) -> float:
        if spread == 0 or not math.isfinite(spread):
            return 0.0
        dev = (magnitude - center) / spread
        return dev if math.isfinite(dev) else 0.0

    def interior_style(self, deviation: float) -> tuple[float, float]:
        """(width, opacity) for a segment between two series entries."""
        if deviation > self.config.wall_threshold:
            return self.config.wall_width, 1.0
        return self.config.baseline_width, BASELINE_OPACITY * min(max(deviation, 0.1), 1.0)

    def trailing_style(self, deviation: float) -> tuple[float, float]:
        """(width, opacity) for the still-open segment running up to now."""
        if deviation > self.config.wall_threshold:
            return self.config.wall_width, 1.0
        return self.config.baseline_width, BASELINE_OPACITY / max(deviation, 1.0)

    def compose(
        self,
        heatmap: HeatmapSnapshot,
        klines: Sequence[Kline],
        canvas_size: tuple[int, int],
        dark_mode: bool,
        now_ms: Timestamp | None = None,
    ) -> DrawPlan:
        """
        Build the DrawPlan for one redraw.

        Returns an empty plan (no plot area, no primitives) when there are no
        klines, or when the canvas leaves no room for a plot area once the
        margin and label areas are taken out.
        """
        width, height = int(canvas_size[0]), int(canvas_size[1])
        style = ChartStyle.for_mode(dark_mode)
        if not klines:
            return DrawPlan(width, height, None, None, None, (), dark_mode)

        plot = Rect(
            left=float(style.margin + style.y_label_area),
            top=float(style.margin),
            right=float(width - style.margin),
            bottom=float(height - style.margin - style.x_label_area),
        )
        if plot.width <= 0 or plot.height <= 0:
            return DrawPlan(width, height, None, None, None, (), dark_mode)

        if now_ms is None:
            now_ms = int(time.time() * 1000)

        t0, t1 = self.time_range(klines)
        p0, p1 = self.price_range(klines)

        def x_of(ts: float) -> float:
            if t1 == t0:
                return (plot.left + plot.right) / 2
            return plot.left + (ts - t0) / (t1 - t0) * plot.width

        def y_of(price: float) -> float:
            if p1 == p0:
                return (plot.top + plot.bottom) / 2
            return plot.bottom - (price - p0) / (p1 - p0) * plot.height

        primitives: list[Primitive] = []
        primitives.extend(self._axes(style, plot, (t0, t1), (p0, p1), x_of, y_of))
        primitives.extend(self._heatmap(style, heatmap, (t0, t1), (p0, p1), now_ms, x_of, y_of))
        primitives.extend(
            CandlePrimitive(
                x=x_of(k.open_time),
                open_y=y_of(k.open),
                high_y=y_of(k.high),
                low_y=y_of(k.low),
                close_y=y_of(k.close),
                width=style.candle_width,
                color=style.up_color if k.close >= k.open else style.down_color,
            )
            for k in sorted(klines, key=lambda k: k.open_time)
        )

        return DrawPlan(width, height, plot, (t0, t1), (p0, p1), tuple(primitives), dark_mode)

    def _axes(
        self,
        style: ChartStyle,
        plot: Rect,
        time_range: tuple[Timestamp, Timestamp],
        price_range: tuple[float, float],
        x_of: Callable[[float], float],
        y_of: Callable[[float], float],
    ) -> list[Primitive]:
        out: list[Primitive] = [
            LinePrimitive(((plot.left, plot.top), (plot.left, plot.bottom)),
                          style.axis_color, 1.0, style.axis_opacity, Layer.AXIS),
            LinePrimitive(((plot.left, plot.bottom), (plot.right, plot.bottom)),
                          style.axis_color, 1.0, style.axis_opacity, Layer.AXIS),
        ]

        for price in _axis_values(price_range[0], price_range[1], style.y_labels):
            y = y_of(price)
            out.append(LinePrimitive(((plot.left - TICK_LENGTH, y), (plot.left, y)),
                                     style.axis_color, 1.0, style.axis_opacity, Layer.AXIS))
            out.append(TextPrimitive(
                x=plot.left - style.y_label_area / 2, y=y,
                text=format_price_label(price, style.y_label_decimals),
                color=style.axis_color, opacity=style.label_opacity,
                font=style.font, size=style.font_size, rotation=90.0,
            ))

        for ts in _axis_values(time_range[0], time_range[1], style.x_labels):
            x = x_of(ts)
            out.append(LinePrimitive(((x, plot.bottom), (x, plot.bottom + TICK_LENGTH)),
                                     style.axis_color, 1.0, style.axis_opacity, Layer.AXIS))
            out.append(TextPrimitive(
                x=x, y=plot.bottom + style.x_label_area / 2,
                text=format_time_label(int(ts), style.x_label_format),
                color=style.axis_color, opacity=style.label_opacity,
                font=style.font, size=style.font_size,
            ))
        return out

    def _heatmap(
        self,
        style: ChartStyle,
        heatmap: HeatmapSnapshot,
        time_range: tuple[Timestamp, Timestamp],
        price_range: tuple[float, float],
        now_ms: Timestamp,
        x_of: Callable[[float], float],
        y_of: Callable[[float], float],
    ) -> list[LinePrimitive]:
        t0, t1 = time_range
        p0, p1 = price_range
        step = self.config.time_step_ms
        center, spread = self.intensity_scale(heatmap)
        out: list[LinePrimitive] = []

        def segment(times: list[float], y: float, line_width: float, opacity: float) -> LinePrimitive:
            return LinePrimitive(tuple((x_of(t), y) for t in times), style.heatmap_color, line_width, opacity)

        for price_key in sorted(heatmap):
            price = float(price_key)
            if price <= p0 or price >= p1:
                continue
            y = y_of(price)

            times: list[float] = []
            last_size = 0.0
            for ts, size in heatmap[price_key]:
                if ts < t0 or ts > t1:
                    continue
                times.append(ts)

                if len(times) >= 2:
                    magnitude = max(abs(last_size), abs(size))
                    dev = self.deviation(magnitude, center, spread)
                    out.append(segment(times, y, *self.interior_style(dev)))
                    times = []
                    # Reconnect consecutive non-zero runs without a gap
                    if abs(size) > 0:
                        times.append(ts - step)

                last_size = size

            if times:
                times.append(now_ms)
                dev = self.deviation(abs(last_size), center, spread)
                out.append(segment(times, y, *self.trailing_style(dev)))

        return out
