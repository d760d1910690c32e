"""
Tunable defaults for binning, eviction, styling and cadence.

The eviction multiplier and wall threshold have no derivation beyond
"looks right on BTCUSDT"; they are plain defaults, override freely.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .types import Color

# Colors
UP_COLOR: Color = (81, 205, 160)      # Green
DOWN_COLOR: Color = (192, 80, 77)     # Red
GREY: Color = (158, 158, 158)
BLACK: Color = (0, 0, 0)
CYAN_600: Color = (0, 172, 193)
CYAN_300: Color = (77, 208, 225)
DARK_BG: Color = (17, 24, 39)
LIGHT_BG: Color = (249, 250, 251)


class OverflowPolicy(Enum):
    """What to do when the pending depth queue is at capacity."""
    DROP_OLDEST = "drop-oldest"
    DROP_NEWEST = "drop-newest"


@dataclass(frozen=True)
class HeatmapConfig:
    """Engine configuration. All intervals in seconds, timestamps in ms."""

    price_step: float = 1.0
    time_step_ms: int = 1000
    max_price_buckets: int = 200
    eviction_multiplier: float = 2.0
    wall_threshold: float = 9.0
    wall_width: float = 8.0
    baseline_width: float = 4.0
    flush_interval_sec: float = 0.3
    redraw_interval_sec: float = 2.0
    queue_capacity: int = 100_000
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST

    def __post_init__(self) -> None:
        if not self.price_step > 0:
            raise ValueError(f"price_step must be positive, got {self.price_step}")
        if self.time_step_ms <= 0:
            raise ValueError(f"time_step_ms must be positive, got {self.time_step_ms}")
        if self.max_price_buckets <= 0:
            raise ValueError(f"max_price_buckets must be positive, got {self.max_price_buckets}")
        if not self.eviction_multiplier > 0:
            raise ValueError(f"eviction_multiplier must be positive, got {self.eviction_multiplier}")
        if self.flush_interval_sec <= 0 or self.redraw_interval_sec <= 0:
            raise ValueError("flush and redraw intervals must be positive")
        if self.queue_capacity <= 0:
            raise ValueError(f"queue_capacity must be positive, got {self.queue_capacity}")


@dataclass(frozen=True)
class ChartStyle:
    """Fixed chart styling. Only the light/dark choice varies."""

    dark_mode: bool
    axis_color: Color
    heatmap_color: Color
    background: Color
    up_color: Color = UP_COLOR
    down_color: Color = DOWN_COLOR
    axis_opacity: float = 0.45
    label_opacity: float = 0.65
    font: str = "monospace"
    font_size: int = 12
    margin: int = 10
    x_label_area: int = 30
    y_label_area: int = 30
    x_labels: int = 8
    y_labels: int = 10
    x_label_format: str = "%H:%M:%S"
    y_label_decimals: int = 4
    candle_width: float = 8.0

    @classmethod
    def for_mode(cls, dark_mode: bool) -> ChartStyle:
        if dark_mode:
            return cls(dark_mode=True, axis_color=GREY, heatmap_color=CYAN_600, background=DARK_BG)
        return cls(dark_mode=False, axis_color=BLACK, heatmap_color=CYAN_300, background=LIGHT_BG)
