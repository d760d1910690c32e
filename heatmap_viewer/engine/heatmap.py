"""
Sparse liquidity heatmap store: price bucket -> time series of intensities.

HOT PATH: apply_batch() runs on every flush (~3x per second) with every
depth level change received since the previous flush.

Performance strategy:
1. dict keyed by Decimal price bucket for O(1) row lookup
2. Each row keeps parallel time/value lists; appends are O(1), the rare
   out-of-order time bucket falls back to bisect insertion
3. One lock acquisition per batch, not per cell
4. Readers get a copy (snapshot) so drawing never holds the lock while painting

Thread-safety: all public methods are safe to call from any thread.
"""

from __future__ import annotations

import math
import threading
from bisect import bisect_left
from decimal import Decimal
from typing import Iterable, Optional

from ..logging_config import get_logger
from ..types import HeatmapSnapshot, Timestamp
from .stats import median, median_absolute_deviation

logger = get_logger(__name__)


class TimeSeries:
    """
    Intensities for one price bucket, ascending and unique by time bucket.

    record() implements the run-length style compression: consecutive
    identical non-zero sizes collapse into one entry and a zero always
    terminates a run.
    """

    __slots__ = ('_times', '_values')

    def __init__(self) -> None:
        self._times: list[Timestamp] = []
        self._values: list[float] = []

    def __len__(self) -> int:
        return len(self._times)

    def last(self) -> Optional[tuple[Timestamp, float]]:
        """Latest (time_bucket, intensity), or None if empty."""
        if not self._times:
            return None
        return self._times[-1], self._values[-1]

    def record(self, time_bucket: Timestamp, size: float) -> bool:
        """
        Fold one binned update into the series.

        Returns False when the update was suppressed as a no-op.
        """
        if self._times:
            last_time = self._times[-1]
            last_size = self._values[-1]
            if last_size == size and size != 0:
                return False
            if last_time == time_bucket and size != 0:
                self._values[-1] = size
                return True

        if not self._times or time_bucket > self._times[-1]:
            self._times.append(time_bucket)
            self._values.append(size)
            return True

        # Late event for an earlier time bucket
        i = bisect_left(self._times, time_bucket)
        if i < len(self._times) and self._times[i] == time_bucket:
            self._values[i] = size
        else:
            self._times.insert(i, time_bucket)
            self._values.insert(i, size)
        return True

    def items(self) -> tuple[tuple[Timestamp, float], ...]:
        return tuple(zip(self._times, self._values))


class HeatmapStore:
    """
    Bounded sparse 2-D heatmap.

    The bucket count is soft-bounded by evict_outliers(); the binner decides
    when to run it.
    """

    __slots__ = ('_rows', '_lock')

    def __init__(self) -> None:
        self._rows: dict[Decimal, TimeSeries] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def __contains__(self, price_bucket: Decimal) -> bool:
        with self._lock:
            return price_bucket in self._rows

    def apply_batch(self, cells: Iterable[tuple[Decimal, Timestamp, float]]) -> tuple[int, int]:
        """
        Apply (price_bucket, time_bucket, size) cells atomically, in order.

        Returns (applied, suppressed) counts.
        """
        applied = 0
        suppressed = 0
        with self._lock:
            rows = self._rows
            for price_bucket, time_bucket, size in cells:
                series = rows.get(price_bucket)
                if series is None:
                    series = rows[price_bucket] = TimeSeries()
                if series.record(time_bucket, size):
                    applied += 1
                else:
                    suppressed += 1
        return applied, suppressed

    def evict_outliers(self, multiplier: float) -> list[Decimal]:
        """
        Drop price buckets far from the robust center of all bucket prices.

        A bucket goes when |price - median| / MAD > multiplier. With MAD == 0
        the ratio is undefined and nothing is evicted this pass.
        """
        with self._lock:
            if not self._rows:
                return []
            keys = list(self._rows)
            prices = [float(k) for k in keys]
            center = median(prices)
            spread = median_absolute_deviation(prices, center)
            if spread == 0 or not math.isfinite(spread):
                return []

            removed = [
                key for key, price in zip(keys, prices)
                if abs(price - center) / spread > multiplier
            ]
            for key in removed:
                del self._rows[key]

        if removed:
            logger.info(
                "heatmap_outliers_evicted",
                evicted=len(removed),
                center=center,
                spread=spread,
            )
        return removed

    def snapshot(self) -> HeatmapSnapshot:
        """Copy of the whole store, safe to read without the lock."""
        with self._lock:
            return {price: series.items() for price, series in self._rows.items()}

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()
