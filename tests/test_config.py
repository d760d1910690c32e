"""Tests for configuration defaults and validation."""

import pytest

from heatmap_viewer.config import BLACK, CYAN_300, CYAN_600, GREY, ChartStyle, HeatmapConfig, OverflowPolicy


class TestHeatmapConfig:
    """Test HeatmapConfig defaults and validation."""

    def test_defaults(self):
        config = HeatmapConfig()
        assert config.price_step == 1.0
        assert config.time_step_ms == 1000
        assert config.max_price_buckets == 200
        assert config.eviction_multiplier == 2.0
        assert config.wall_threshold == 9.0
        assert config.overflow_policy is OverflowPolicy.DROP_OLDEST

    @pytest.mark.parametrize("field", ["price_step", "time_step_ms", "max_price_buckets", "queue_capacity"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValueError):
            HeatmapConfig(**{field: 0})

    def test_overflow_policy_from_cli_value(self):
        assert OverflowPolicy("drop-newest") is OverflowPolicy.DROP_NEWEST


class TestChartStyle:
    """Test light/dark palettes."""

    def test_dark(self):
        style = ChartStyle.for_mode(True)
        assert style.axis_color == GREY
        assert style.heatmap_color == CYAN_600

    def test_light(self):
        style = ChartStyle.for_mode(False)
        assert style.axis_color == BLACK
        assert style.heatmap_color == CYAN_300
