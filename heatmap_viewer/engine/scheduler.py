"""
Redraw scheduler: timer ticks + resize signals -> one serialized compose.

Both triggers only set a dirty flag (last write wins for the size) and then
try to drain. At most one compose runs at a time; a trigger that lands while
a draw is in flight is picked up by that draw's loop instead of starting a
second one.

The host owns the actual timer (QTimer, Textual set_interval) and calls
on_tick() every `interval_sec`.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from ..logging_config import get_logger
from ..types import DrawPlan
from .composer import ChartComposer
from .heatmap import HeatmapStore
from .klines import KlineStore

logger = get_logger(__name__)

DEFAULT_INTERVAL_SEC = 2.0


class RedrawScheduler:
    """
    Serialized compose consumer fed by two independent producers.

    Usage:
        scheduler = RedrawScheduler(composer, heatmap, klines, present=surface.show_plan)
        timer.timeout.connect(scheduler.on_tick)
        surface.resized.connect(scheduler.on_resize)
    """

    def __init__(
        self,
        composer: ChartComposer,
        heatmap: HeatmapStore,
        klines: KlineStore,
        present: Callable[[DrawPlan], None],
        size: tuple[int, int] = (0, 0),
        dark_mode: bool = True,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
        clock_ms: Optional[Callable[[], int]] = None,
    ) -> None:
        self.composer = composer
        self.heatmap = heatmap
        self.klines = klines
        self.present = present
        self.interval_sec = interval_sec
        self._clock_ms = clock_ms

        self._state_lock = threading.Lock()
        self._draw_lock = threading.Lock()
        self._size = size
        self._dark_mode = dark_mode
        self._dirty = False

        self.draw_count = 0
        self.failure_count = 0

    @property
    def size(self) -> tuple[int, int]:
        with self._state_lock:
            return self._size

    @property
    def dirty(self) -> bool:
        with self._state_lock:
            return self._dirty

    def on_tick(self) -> bool:
        """Periodic timer trigger. Returns True if a draw ran on this call."""
        with self._state_lock:
            self._dirty = True
        return self.drain()

    def on_resize(self, width: int, height: int) -> bool:
        """Host surface size changed. Returns True if a draw ran on this call."""
        with self._state_lock:
            self._size = (int(width), int(height))
            self._dirty = True
        return self.drain()

    def set_dark_mode(self, dark_mode: bool) -> None:
        with self._state_lock:
            if dark_mode != self._dark_mode:
                self._dark_mode = dark_mode
                self._dirty = True

    def drain(self) -> bool:
        """
        Run compose + present while dirty.

        Returns immediately (False) if another thread is drawing; that
        thread sees the dirty flag and redraws with the latest state.
        """
        drew = False
        while True:
            if not self._draw_lock.acquire(blocking=False):
                return drew
            try:
                while True:
                    with self._state_lock:
                        if not self._dirty:
                            break
                        self._dirty = False
                        size = self._size
                        dark_mode = self._dark_mode
                    drew = self._draw(size, dark_mode) or drew
            finally:
                self._draw_lock.release()

            # A trigger may have landed between the last check and the release
            if not self.dirty:
                return drew

    def _draw(self, size: tuple[int, int], dark_mode: bool) -> bool:
        now_ms = self._clock_ms() if self._clock_ms else None
        try:
            plan = self.composer.compose(
                self.heatmap.snapshot(),
                self.klines.snapshot(),
                size,
                dark_mode,
                now_ms=now_ms,
            )
            self.present(plan)
        except Exception:
            # Skip this cycle; the next tick retries
            self.failure_count += 1
            logger.exception("redraw_failed", size=size)
            return False
        self.draw_count += 1
        return True
