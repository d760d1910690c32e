"""
Market data session: ingestion boundary and instrument lifecycle.

Owns the heatmap store, the kline store and the binner (with its pending
queue), and runs the periodic flush on a background thread.

Depth events go through the queue and are binned on the flush cadence.
Candles bypass the queue and are upserted directly; they arrive about once
per second and need no batching.

An instrument switch stops the flush thread, then clears the queue and both
stores before the new symbol is announced to listeners (the transport
redials on that signal). Submissions racing the switch wait on the
lifecycle lock, so nothing from the old instrument survives the clear.
Submissions tagged with their source symbol are matched against the
current instrument under that same lock, so a message validated just
before a switch cannot land in the new instrument's state.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from ..config import HeatmapConfig
from ..errors import MalformedEventError
from ..logging_config import get_logger
from ..types import FlushResult, NormalizedCandleEvent, NormalizedDepthEvent
from .binner import OrderFlowBinner
from .heatmap import HeatmapStore
from .klines import KlineStore

logger = get_logger(__name__)

InstrumentListener = Callable[[str], None]


class MarketDataSession:
    """
    Usage:
        session = MarketDataSession()
        session.add_instrument_listener(client.request_redial)
        session.set_instrument("BTCUSDT")
        session.start()
        ...
        session.submit_depth_event(event)   # from the transport thread
    """

    def __init__(self, config: HeatmapConfig | None = None) -> None:
        self.config = config or HeatmapConfig()
        self.heatmap = HeatmapStore()
        self.klines = KlineStore()
        self.binner = OrderFlowBinner(self.config)

        self._symbol: Optional[str] = None
        self._lifecycle_lock = threading.RLock()
        self._listeners: list[InstrumentListener] = []

        self._flush_thread: Optional[threading.Thread] = None
        self._flush_stop = threading.Event()
        self._flush_interval = self.config.flush_interval_sec

    @property
    def symbol(self) -> Optional[str]:
        return self._symbol

    @property
    def pending(self) -> int:
        """Depth events waiting for the next flush."""
        return len(self.binner)

    @property
    def running(self) -> bool:
        return self._flush_thread is not None and self._flush_thread.is_alive()

    def add_instrument_listener(self, listener: InstrumentListener) -> None:
        self._listeners.append(listener)

    # Ingestion -----------------------------------------------------------

    def _is_current(self, symbol: Optional[str]) -> bool:
        return symbol is None or symbol.upper() == self._symbol

    def submit_depth_event(self, event: NormalizedDepthEvent, symbol: Optional[str] = None) -> bool:
        """
        Queue a depth event. Returns False if dropped by the overflow policy.

        When `symbol` is given the event is also dropped unless it names the
        current instrument; the check and the enqueue happen under the same
        lock as the instrument switch.
        """
        with self._lifecycle_lock:
            if not self._is_current(symbol):
                logger.debug("depth_event_stale", symbol=symbol, current=self._symbol)
                return False
            return self.binner.enqueue(event)

    def submit_candle_event(self, event: NormalizedCandleEvent, symbol: Optional[str] = None) -> bool:
        """
        Upsert a candle. Returns False for a stale `symbol` (see
        submit_depth_event) or a malformed candle, which is logged and skipped.
        """
        with self._lifecycle_lock:
            if not self._is_current(symbol):
                logger.debug("candle_event_stale", symbol=symbol, current=self._symbol)
                return False
            try:
                self.klines.upsert(event)
            except MalformedEventError as e:
                logger.warning("candle_event_rejected", reason=str(e), recoverable=e.recoverable, **e.context)
                return False
        return True

    def flush_now(self) -> FlushResult:
        """Drain the pending queue into the heatmap on the calling thread."""
        with self._lifecycle_lock:
            return self.binner.flush(self.heatmap)

    # Instrument lifecycle ---------------------------------------------------

    def set_instrument(self, symbol: str) -> bool:
        """
        Switch the tracked instrument.

        No-op (returns False) if unchanged. Otherwise cancels the flush timer,
        clears the queue and both stores, then notifies listeners.
        """
        symbol = symbol.upper()
        with self._lifecycle_lock:
            if symbol == self._symbol:
                return False
            was_running = self._stop_flush_thread()
            self.binner.clear()
            self.heatmap.clear()
            self.klines.clear()
            previous, self._symbol = self._symbol, symbol

        logger.info("instrument_changed", previous=previous, symbol=symbol)

        for listener in list(self._listeners):
            try:
                listener(symbol)
            except Exception:
                logger.exception("instrument_listener_failed", symbol=symbol)

        if was_running:
            self.start()
        return True

    # Flush timer --------------------------------------------------------------

    def start(self, flush_interval: float | None = None) -> None:
        """Start the periodic flush thread (no-op if already running)."""
        with self._lifecycle_lock:
            if self.running:
                return
            if flush_interval:
                self._flush_interval = flush_interval
            self._flush_stop = threading.Event()
            self._flush_thread = threading.Thread(
                target=self._flush_loop,
                args=(self._flush_stop, self._flush_interval),
                name="heatmap-flush",
                daemon=True,
            )
            self._flush_thread.start()

    def stop(self) -> None:
        """Stop the periodic flush thread and wait for it to exit."""
        with self._lifecycle_lock:
            self._stop_flush_thread()

    def _stop_flush_thread(self) -> bool:
        thread = self._flush_thread
        if thread is None:
            return False
        self._flush_stop.set()
        if thread is not threading.current_thread():
            thread.join()
        self._flush_thread = None
        return True

    def _flush_loop(self, stop: threading.Event, interval: float) -> None:
        while not stop.wait(interval):
            try:
                self.binner.flush(self.heatmap)
            except Exception:
                logger.exception("flush_failed", symbol=self._symbol)
