"""Tests for the order flow binner and heatmap store."""

import math
from decimal import Decimal

import pytest

from heatmap_viewer.config import HeatmapConfig, OverflowPolicy
from heatmap_viewer.engine.binner import OrderFlowBinner
from heatmap_viewer.engine.heatmap import HeatmapStore, TimeSeries
from heatmap_viewer.types import FlushResult


def fold(events, config=None):
    """Enqueue events, flush once, return (store, result)."""
    binner = OrderFlowBinner(config)
    store = HeatmapStore()
    for e in events:
        binner.enqueue(e)
    return store, binner.flush(store)


class TestBucketing:
    """Test price/time quantization."""

    def test_price_floors_to_step(self):
        binner = OrderFlowBinner()
        assert binner.price_to_bucket(100.99) == Decimal("100")
        assert binner.price_to_bucket(100.0) == Decimal("100")
        assert binner.price_to_bucket(99.999) == Decimal("99")

    def test_fractional_step_has_no_float_drift(self):
        """0.3 / 0.1 in floats is 2.9999999999999996; decimal keeps it exact."""
        binner = OrderFlowBinner(HeatmapConfig(price_step=0.1))
        assert binner.price_to_bucket(0.3) == Decimal("0.3")
        assert binner.price_to_bucket(42001.37) == Decimal("42001.3")

    def test_time_floors_to_step(self, base_ts):
        binner = OrderFlowBinner()
        assert binner.time_to_bucket(base_ts + 999) == base_ts
        assert binner.time_to_bucket(base_ts + 1000) == base_ts + 1000


class TestFlushRules:
    """Test the per-bucket last-write and no-op rules."""

    def test_identical_nonzero_size_is_suppressed(self, make_depth, base_ts):
        """Two consecutive identical non-zero sizes at different times -> one entry."""
        store, result = fold([
            make_depth(0, 100.3, 5.0),
            make_depth(2000, 100.7, 5.0),
        ])
        assert store.snapshot()[Decimal("100")] == ((base_ts, 5.0),)
        assert result.applied == 1
        assert result.suppressed == 1

    def test_zero_terminates_run(self, make_depth, base_ts):
        """Non-zero then zero at a later time bucket -> two entries."""
        store, _ = fold([
            make_depth(0, 100.0, 5.0),
            make_depth(2000, 100.0, 0.0),
        ])
        assert store.snapshot()[Decimal("100")] == ((base_ts, 5.0), (base_ts + 2000, 0.0))

    def test_repeated_zero_is_recorded(self, make_depth, base_ts):
        store, result = fold([
            make_depth(0, 100.0, 0.0),
            make_depth(2000, 100.0, 0.0),
        ])
        assert len(store.snapshot()[Decimal("100")]) == 2
        assert result.suppressed == 0

    def test_same_time_bucket_overwrites(self, make_depth, base_ts):
        store, _ = fold([
            make_depth(100, 100.0, 5.0),
            make_depth(600, 100.0, 6.0),
        ])
        assert store.snapshot()[Decimal("100")] == ((base_ts, 6.0),)

    def test_zero_in_same_time_bucket_replaces_value(self, make_depth, base_ts):
        store, _ = fold([
            make_depth(100, 100.0, 5.0),
            make_depth(600, 100.0, 0.0),
        ])
        assert store.snapshot()[Decimal("100")] == ((base_ts, 0.0),)

    def test_sign_change_is_new_value(self, make_depth, base_ts):
        """Bid 5 then ask 5 at the same level are different intensities."""
        store, _ = fold([
            make_depth(0, 100.0, 5.0),
            make_depth(1000, 100.0, -5.0),
        ])
        assert store.snapshot()[Decimal("100")] == ((base_ts, 5.0), (base_ts + 1000, -5.0))

    def test_arrival_order_is_preserved(self, make_depth, base_ts):
        store, _ = fold([
            make_depth(0, 100.0, 1.0),
            make_depth(1000, 100.0, 2.0),
            make_depth(2000, 100.0, 3.0),
        ])
        assert [v for _, v in store.snapshot()[Decimal("100")]] == [1.0, 2.0, 3.0]

    def test_late_event_inserted_in_time_order(self, make_depth, base_ts):
        store, _ = fold([
            make_depth(0, 100.0, 1.0),
            make_depth(3000, 100.0, 0.0),
            make_depth(1000, 100.0, 2.0),
        ])
        times = [t for t, _ in store.snapshot()[Decimal("100")]]
        assert times == [base_ts, base_ts + 1000, base_ts + 3000]

    def test_flush_drains_queue(self, make_depth):
        binner = OrderFlowBinner()
        store = HeatmapStore()
        binner.enqueue(make_depth(0, 100.0, 1.0))
        binner.enqueue(make_depth(0, 101.0, 1.0))
        assert len(binner) == 2
        binner.flush(store)
        assert len(binner) == 0
        assert len(store) == 2

    def test_empty_flush(self):
        binner = OrderFlowBinner()
        assert binner.flush(HeatmapStore()) == FlushResult(0, 0, 0, 0)


class TestMalformedEvents:
    """Test that bad events are skipped without failing the batch."""

    @pytest.mark.parametrize("price,size", [
        (math.nan, 1.0),
        (math.inf, 1.0),
        (100.0, math.nan),
        (100.0, -math.inf),
        (None, 1.0),
    ])
    def test_rejected_and_batch_continues(self, make_depth, price, size):
        store, result = fold([
            make_depth(0, 100.0, 1.0),
            make_depth(500, price, size),
            make_depth(1000, 101.0, 2.0),
        ])
        assert result.rejected == 1
        assert result.applied == 2
        assert set(store.snapshot()) == {Decimal("100"), Decimal("101")}


class TestQueueOverflow:
    """Test the explicit pending queue bound."""

    def test_drop_oldest(self, make_depth, base_ts):
        config = HeatmapConfig(queue_capacity=3, overflow_policy=OverflowPolicy.DROP_OLDEST)
        binner = OrderFlowBinner(config)
        for i in range(5):
            assert binner.enqueue(make_depth(i * 1000, 100.0 + i, 1.0)) is True
        assert len(binner) == 3
        assert binner.total_dropped == 2

        store = HeatmapStore()
        binner.flush(store)
        assert set(store.snapshot()) == {Decimal("102"), Decimal("103"), Decimal("104")}

    def test_drop_newest(self, make_depth):
        config = HeatmapConfig(queue_capacity=3, overflow_policy=OverflowPolicy.DROP_NEWEST)
        binner = OrderFlowBinner(config)
        accepted = [binner.enqueue(make_depth(i * 1000, 100.0 + i, 1.0)) for i in range(5)]
        assert accepted == [True, True, True, False, False]

        store = HeatmapStore()
        binner.flush(store)
        assert set(store.snapshot()) == {Decimal("100"), Decimal("101"), Decimal("102")}

    def test_clear_discards_queue(self, make_depth):
        binner = OrderFlowBinner()
        binner.enqueue(make_depth(0, 100.0, 1.0))
        binner.clear()
        assert len(binner) == 0


class TestEviction:
    """Test the MAD outlier eviction pass."""

    def _store_with_outlier(self, base_ts, inliers=200):
        store = HeatmapStore()
        cells = [(Decimal(1000 + i), base_ts, 1.0) for i in range(inliers)]
        cells.append((Decimal(110_000), base_ts, 1.0))  # 100x the median
        store.apply_batch(cells)
        return store

    def test_gross_outlier_removed(self, base_ts):
        """201 buckets, one at 100x the median -> only the outlier goes."""
        store = self._store_with_outlier(base_ts)
        assert len(store) == 201

        evicted = OrderFlowBinner().evict_outliers(store)

        assert evicted == 1
        assert len(store) == 200
        assert Decimal(110_000) not in store
        assert all(Decimal(1000 + i) in store for i in range(200))

    def test_flush_triggers_eviction_above_ceiling(self, make_depth, base_ts):
        binner = OrderFlowBinner()
        store = HeatmapStore()
        for i in range(200):
            binner.enqueue(make_depth(0, 1000.0 + i, 1.0))
        binner.enqueue(make_depth(0, 110_000.0, 1.0))

        result = binner.flush(store)

        assert result.evicted == 1
        assert Decimal("110000") not in store

    def test_no_eviction_at_ceiling(self, make_depth):
        binner = OrderFlowBinner()
        store = HeatmapStore()
        for i in range(199):
            binner.enqueue(make_depth(0, 1000.0 + i, 1.0))
        binner.enqueue(make_depth(0, 110_000.0, 1.0))

        result = binner.flush(store)

        assert result.evicted == 0
        assert len(store) == 200

    def test_whole_series_dropped(self, base_ts):
        store = self._store_with_outlier(base_ts)
        store.apply_batch([(Decimal(110_000), base_ts + 1000, 2.0)])
        OrderFlowBinner().evict_outliers(store)
        assert Decimal(110_000) not in store.snapshot()

    def test_zero_mad_never_evicts(self, base_ts):
        """A single bucket has MAD 0; the ratio is undefined so nothing goes."""
        store = HeatmapStore()
        store.apply_batch([(Decimal(100), base_ts, 1.0)])
        assert store.evict_outliers(2.0) == []
        assert len(store) == 1

    def test_empty_store(self):
        assert HeatmapStore().evict_outliers(2.0) == []

    def test_custom_multiplier(self, base_ts):
        """A tighter multiplier also trims the edges of the inlier range."""
        store = self._store_with_outlier(base_ts)
        evicted = OrderFlowBinner().evict_outliers(store, multiplier=1.5)
        assert evicted > 1
        assert Decimal(1100) in store


class TestTimeSeries:
    """Test the series record() primitive directly."""

    def test_last_of_empty(self):
        assert TimeSeries().last() is None

    def test_record_returns_false_when_suppressed(self):
        series = TimeSeries()
        assert series.record(0, 5.0) is True
        assert series.record(1000, 5.0) is False
        assert series.last() == (0, 5.0)
        assert len(series) == 1
