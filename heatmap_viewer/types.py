"""
Data types for Heatmap Viewer.

Performance notes:
- Using NamedTuple for immutable, memory-efficient structures
- Timestamps are integer milliseconds since the epoch throughout
- Draw primitives are in pixel space (origin top-left) so surfaces only paint
"""

from __future__ import annotations

from decimal import Decimal
from enum import IntEnum
from typing import Mapping, NamedTuple, Optional, Sequence, Union

Timestamp = int
Color = tuple[int, int, int]


class NormalizedDepthEvent(NamedTuple):
    """Single price level change from the depth stream."""
    event_time: Timestamp
    sequence: int
    price: float
    signed_size: float  # +ve bid liquidity, -ve ask liquidity


class NormalizedCandleEvent(NamedTuple):
    """Candle update from the kline stream."""
    open_time: Timestamp
    open: float
    high: float
    low: float
    close: float
    buy_volume: float
    total_volume: float
    close_time: Timestamp


class Kline(NamedTuple):
    """Stored candle, keyed by open_time."""
    open_time: Timestamp
    open: float
    high: float
    low: float
    close: float
    buy_volume: float
    sell_volume: float
    close_time: Timestamp

    @classmethod
    def from_event(cls, event: NormalizedCandleEvent) -> Kline:
        return cls(
            open_time=event.open_time,
            open=event.open,
            high=event.high,
            low=event.low,
            close=event.close,
            buy_volume=event.buy_volume,
            sell_volume=event.total_volume - event.buy_volume,
            close_time=event.close_time,
        )


# Price bucket -> [(time_bucket, intensity), ...] ascending by time
HeatmapSnapshot = Mapping[Decimal, Sequence[tuple[Timestamp, float]]]


class FlushResult(NamedTuple):
    """Outcome of draining the pending queue into the heatmap."""
    applied: int      # Cells that changed the store
    suppressed: int   # No-op restatements of the same size
    rejected: int     # Malformed events skipped
    evicted: int      # Price buckets removed by the outlier pass


class Layer(IntEnum):
    """Paint order. Lower layers are drawn first."""
    AXIS = 0
    HEATMAP = 1
    CANDLE = 2


class Rect(NamedTuple):
    left: float
    top: float
    right: float
    bottom: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top


class LinePrimitive(NamedTuple):
    """Polyline. Heatmap lines are clipped to the plot area by the surface."""
    points: tuple[tuple[float, float], ...]
    color: Color
    width: float
    opacity: float
    layer: Layer = Layer.HEATMAP


class CandlePrimitive(NamedTuple):
    """Candle glyph: wick from high_y to low_y, body between open_y and close_y."""
    x: float
    open_y: float
    high_y: float
    low_y: float
    close_y: float
    width: float
    color: Color
    filled: bool = True
    layer: Layer = Layer.CANDLE


class TextPrimitive(NamedTuple):
    """Axis label anchored at its center."""
    x: float
    y: float
    text: str
    color: Color
    opacity: float
    font: str
    size: int
    rotation: float = 0.0  # degrees, clockwise
    layer: Layer = Layer.AXIS


Primitive = Union[LinePrimitive, CandlePrimitive, TextPrimitive]


class DrawPlan(NamedTuple):
    """
    Ordered output of one composition pass.

    Primitives are ordered axis -> heatmap -> candles. An empty plan carries
    no primitives and no ranges.
    """
    width: int
    height: int
    plot_area: Optional[Rect]
    time_range: Optional[tuple[Timestamp, Timestamp]]
    price_range: Optional[tuple[float, float]]
    primitives: tuple[Primitive, ...]
    dark_mode: bool = True

    @property
    def is_empty(self) -> bool:
        return not self.primitives

    def layer(self, layer: Layer) -> list[Primitive]:
        """Primitives belonging to a single layer, in paint order."""
        return [p for p in self.primitives if p.layer == layer]
