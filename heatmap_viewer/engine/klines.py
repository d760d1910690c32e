"""
Candle store with upsert-by-open-time semantics.

Size is bounded by the kline interval and process lifetime (the store is
reset on instrument change), so there is no eviction.

Thread-safety: all public methods are safe to call from any thread.
"""

from __future__ import annotations

import math
import threading
from bisect import insort

from ..errors import MalformedEventError
from ..types import Kline, NormalizedCandleEvent, Timestamp

_PRICE_FIELDS = ('open', 'high', 'low', 'close')
_VOLUME_FIELDS = ('buy_volume', 'total_volume')


def validate_candle(event: NormalizedCandleEvent) -> None:
    """Raise MalformedEventError if any numeric field is missing or non-finite."""
    for field in ('open_time', 'close_time') + _PRICE_FIELDS + _VOLUME_FIELDS:
        value = getattr(event, field)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or not math.isfinite(value):
            raise MalformedEventError(f"candle field {field!r} is not a finite number", event=event, field=field,
                                      context={"open_time": event.open_time})
    for field in _VOLUME_FIELDS:
        if getattr(event, field) < 0:
            raise MalformedEventError(f"candle field {field!r} is negative", event=event, field=field,
                                      context={"open_time": event.open_time})


class KlineStore:
    """Ordered OHLCV series keyed by open_time. Later events replace earlier ones in full."""

    __slots__ = ('_klines', '_open_times', '_lock')

    def __init__(self) -> None:
        self._klines: dict[Timestamp, Kline] = {}
        self._open_times: list[Timestamp] = []  # Ascending
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._klines)

    def upsert(self, event: NormalizedCandleEvent) -> bool:
        """
        Insert or replace the candle at event.open_time.

        Returns True if a new open time was added.
        """
        validate_candle(event)
        kline = Kline.from_event(event)
        with self._lock:
            is_new = kline.open_time not in self._klines
            self._klines[kline.open_time] = kline
            if is_new:
                insort(self._open_times, kline.open_time)
        return is_new

    def get(self, open_time: Timestamp) -> Kline | None:
        with self._lock:
            return self._klines.get(open_time)

    def snapshot(self) -> list[Kline]:
        """All candles ascending by open time."""
        with self._lock:
            return [self._klines[t] for t in self._open_times]

    def clear(self) -> None:
        with self._lock:
            self._klines.clear()
            self._open_times.clear()
