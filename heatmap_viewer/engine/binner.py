"""
Order flow binner: pending depth queue -> heatmap store.

HOT PATH: enqueue() is called for every price level in every depth message
(~100s-1000s per second for active symbols); flush() drains the backlog on a
fixed cadence.

Performance strategy:
1. enqueue() is an O(1) deque append under a lock that no reader ever takes
2. flush() swaps the whole deque out, so ingestion is never blocked while a
   batch is binned and folded into the store
3. The store is locked once per batch

The queue is bounded: at capacity either the oldest queued event or the
incoming one is dropped, depending on OverflowPolicy.
"""

from __future__ import annotations

import math
import threading
from collections import deque
from decimal import ROUND_FLOOR, Decimal
from typing import Iterator

from ..config import HeatmapConfig, OverflowPolicy
from ..logging_config import get_logger
from ..types import FlushResult, NormalizedDepthEvent, Timestamp
from .heatmap import HeatmapStore

logger = get_logger(__name__)


def _is_finite(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class OrderFlowBinner:
    """
    Owns the pending depth queue and folds it into a HeatmapStore.

    Thread-safety: enqueue() and flush() may run on different threads.
    Concurrent flush() calls are serialized.
    """

    __slots__ = (
        'config', '_price_step', '_queue', '_queue_lock', '_flush_lock',
        '_dropped', 'total_dropped', 'total_rejected'
    )

    def __init__(self, config: HeatmapConfig | None = None) -> None:
        self.config = config or HeatmapConfig()
        self._price_step = Decimal(str(self.config.price_step))

        self._queue: deque[NormalizedDepthEvent] = deque()
        self._queue_lock = threading.Lock()
        self._flush_lock = threading.Lock()

        # Drops since the last flush, reported once per flush
        self._dropped: int = 0
        self.total_dropped: int = 0
        self.total_rejected: int = 0

    def __len__(self) -> int:
        with self._queue_lock:
            return len(self._queue)

    def price_to_bucket(self, price: float) -> Decimal:
        """floor(price / step) * step, computed in decimal to avoid bucket drift."""
        steps = (Decimal(repr(price)) / self._price_step).to_integral_value(rounding=ROUND_FLOOR)
        return steps * self._price_step

    def time_to_bucket(self, event_time: Timestamp) -> Timestamp:
        step = self.config.time_step_ms
        return (int(event_time) // step) * step

    def enqueue(self, event: NormalizedDepthEvent) -> bool:
        """
        Queue one depth event for the next flush. HOT PATH.

        Returns False if the event was dropped because the queue is full
        (DROP_NEWEST). Under DROP_OLDEST the incoming event is always accepted.
        """
        with self._queue_lock:
            if len(self._queue) >= self.config.queue_capacity:
                self._dropped += 1
                self.total_dropped += 1
                if self.config.overflow_policy is OverflowPolicy.DROP_NEWEST:
                    return False
                self._queue.popleft()
            self._queue.append(event)
            return True

    def _bin(self, batch: deque[NormalizedDepthEvent], rejected: list[int]) -> Iterator[tuple[Decimal, Timestamp, float]]:
        for event in batch:
            if not (_is_finite(event.price) and _is_finite(event.signed_size) and _is_finite(event.event_time)):
                rejected[0] += 1
                logger.warning(
                    "depth_event_rejected",
                    price=event.price,
                    size=event.signed_size,
                    event_time=event.event_time,
                    sequence=event.sequence,
                )
                continue
            yield (
                self.price_to_bucket(event.price),
                self.time_to_bucket(event.event_time),
                float(event.signed_size),
            )

    def flush(self, store: HeatmapStore) -> FlushResult:
        """
        Drain the entire pending queue into the store in arrival order.

        Malformed events are skipped and counted, they never fail the batch.
        Runs the outlier eviction pass once the store exceeds its ceiling.
        """
        with self._flush_lock:
            with self._queue_lock:
                batch = self._queue
                self._queue = deque()
                dropped = self._dropped
                self._dropped = 0

            if dropped:
                logger.warning(
                    "depth_queue_overflow",
                    dropped=dropped,
                    capacity=self.config.queue_capacity,
                    policy=self.config.overflow_policy.value,
                )

            rejected = [0]
            applied, suppressed = store.apply_batch(self._bin(batch, rejected)) if batch else (0, 0)
            self.total_rejected += rejected[0]

            evicted = 0
            if len(store) > self.config.max_price_buckets:
                evicted = self.evict_outliers(store)

        if batch:
            logger.debug(
                "depth_queue_flushed",
                events=len(batch),
                applied=applied,
                suppressed=suppressed,
                rejected=rejected[0],
                evicted=evicted,
                buckets=len(store),
            )
        return FlushResult(applied, suppressed, rejected[0], evicted)

    def evict_outliers(self, store: HeatmapStore, multiplier: float | None = None) -> int:
        """Remove price buckets whose deviation / MAD exceeds the multiplier."""
        if multiplier is None:
            multiplier = self.config.eviction_multiplier
        return len(store.evict_outliers(multiplier))

    def clear(self) -> None:
        """Discard everything still queued."""
        with self._queue_lock:
            self._queue.clear()
            self._dropped = 0
