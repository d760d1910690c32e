"""Pytest configuration and shared fixtures."""

import pytest
from decimal import Decimal

from heatmap_viewer.config import HeatmapConfig
from heatmap_viewer.types import Kline, NormalizedCandleEvent, NormalizedDepthEvent

# 2024-01-01 00:00:00 UTC
BASE_TS = 1_704_067_200_000


def depth(ts_offset_ms: int, price: float, size: float, seq: int = 1) -> NormalizedDepthEvent:
    return NormalizedDepthEvent(BASE_TS + ts_offset_ms, seq, price, size)


def candle(
    offset_sec: int,
    open: float = 100.0,
    high: float = 105.0,
    low: float = 95.0,
    close: float = 102.0,
    buy_volume: float = 4.0,
    total_volume: float = 10.0,
) -> NormalizedCandleEvent:
    open_time = BASE_TS + offset_sec * 1000
    return NormalizedCandleEvent(open_time, open, high, low, close, buy_volume, total_volume, open_time + 999)


def kline(offset_sec: int, **kwargs) -> Kline:
    return Kline.from_event(candle(offset_sec, **kwargs))


@pytest.fixture
def base_ts() -> int:
    return BASE_TS


@pytest.fixture
def config() -> HeatmapConfig:
    return HeatmapConfig()


@pytest.fixture
def sample_klines() -> list:
    """Three 1s candles spanning 90..110."""
    return [
        kline(0, open=100.0, high=104.0, low=96.0, close=102.0),
        kline(1, open=102.0, high=110.0, low=101.0, close=108.0),
        kline(2, open=108.0, high=109.0, low=90.0, close=92.0),
    ]


@pytest.fixture
def sample_heatmap() -> dict:
    """Heatmap snapshot with rows inside and outside the sample_klines price range."""
    return {
        Decimal("100"): ((BASE_TS, 5.0), (BASE_TS + 1000, 6.0), (BASE_TS + 2000, 0.0)),
        Decimal("95"): ((BASE_TS + 1000, -3.0),),
        Decimal("500"): ((BASE_TS, 7.0), (BASE_TS + 1000, 8.0)),
    }


@pytest.fixture
def make_depth():
    """Factory for depth events offset from BASE_TS."""
    return depth


@pytest.fixture
def make_candle():
    """Factory for candle events offset (in seconds) from BASE_TS."""
    return candle


@pytest.fixture
def make_kline():
    """Factory for stored klines offset (in seconds) from BASE_TS."""
    return kline
