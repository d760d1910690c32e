"""Tests for the redraw scheduler."""

import pytest

from heatmap_viewer.engine.composer import ChartComposer
from heatmap_viewer.engine.heatmap import HeatmapStore
from heatmap_viewer.engine.klines import KlineStore
from heatmap_viewer.engine.scheduler import RedrawScheduler


@pytest.fixture
def stores(make_candle):
    klines = KlineStore()
    klines.upsert(make_candle(0))
    klines.upsert(make_candle(1, open=102.0, close=104.0))
    return HeatmapStore(), klines


def make_scheduler(stores, present, **kwargs):
    heatmap, klines = stores
    return RedrawScheduler(ChartComposer(), heatmap, klines, present=present, size=(800, 600), **kwargs)


class TestTriggers:
    """Test tick and resize triggers."""

    def test_tick_draws_once(self, stores):
        plans = []
        scheduler = make_scheduler(stores, plans.append)

        assert scheduler.on_tick() is True
        assert len(plans) == 1
        assert (plans[0].width, plans[0].height) == (800, 600)
        assert not scheduler.dirty

    def test_drain_without_trigger_does_nothing(self, stores):
        plans = []
        scheduler = make_scheduler(stores, plans.append)
        assert scheduler.drain() is False
        assert plans == []

    def test_resize_uses_new_size(self, stores):
        plans = []
        scheduler = make_scheduler(stores, plans.append)

        scheduler.on_resize(1024, 768)

        assert scheduler.size == (1024, 768)
        assert (plans[-1].width, plans[-1].height) == (1024, 768)

    def test_trigger_during_draw_is_not_lost(self, stores):
        """A resize landing mid-draw is drawn by the in-flight drain with the latest size."""
        plans = []
        scheduler = make_scheduler(stores, None)

        def present(plan):
            plans.append(plan)
            if len(plans) == 1:
                # Re-entrant trigger cannot start a second draw
                assert scheduler.on_resize(640, 480) is False

        scheduler.present = present
        assert scheduler.on_tick() is True

        assert [(p.width, p.height) for p in plans] == [(800, 600), (640, 480)]
        assert scheduler.draw_count == 2

    def test_reads_latest_store_state(self, stores, make_candle):
        plans = []
        scheduler = make_scheduler(stores, plans.append)
        scheduler.on_tick()
        stores[1].upsert(make_candle(2))
        scheduler.on_tick()
        assert plans[0].time_range != plans[1].time_range

    def test_dark_mode_toggle_marks_dirty(self, stores):
        plans = []
        scheduler = make_scheduler(stores, plans.append)
        scheduler.set_dark_mode(False)
        assert scheduler.dirty
        scheduler.drain()
        assert plans[-1].dark_mode is False

    def test_clock_pins_now(self, stores, base_ts):
        plans = []
        scheduler = make_scheduler(stores, plans.append, clock_ms=lambda: base_ts + 5000)
        scheduler.on_tick()
        scheduler.on_tick()
        assert plans[0] == plans[1]


class TestFailures:
    """Test that a failing draw skips the cycle and the next tick retries."""

    def test_present_error_skips_cycle(self, stores):
        calls = []

        def present(plan):
            calls.append(plan)
            if len(calls) == 1:
                raise RuntimeError("surface gone")

        scheduler = make_scheduler(stores, present)

        assert scheduler.on_tick() is False
        assert scheduler.failure_count == 1
        assert scheduler.draw_count == 0

        assert scheduler.on_tick() is True
        assert scheduler.draw_count == 1

    def test_compose_error_skips_cycle(self, stores):
        class BrokenComposer(ChartComposer):
            def compose(self, *args, **kwargs):
                raise ValueError("boom")

        heatmap, klines = stores
        plans = []
        scheduler = RedrawScheduler(BrokenComposer(), heatmap, klines, present=plans.append)

        scheduler.on_tick()

        assert plans == []
        assert scheduler.failure_count == 1
        assert not scheduler.dirty
