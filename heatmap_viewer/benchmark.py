#!/usr/bin/env python3
"""
Micro-benchmark for Heatmap Viewer performance.

Tests:
1. Depth enqueue throughput
2. Flush (binning + store fold) throughput
3. Outlier eviction pass
4. Full chart composition speed

Usage:
    python -m heatmap_viewer.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

from .engine.binner import OrderFlowBinner
from .engine.composer import ChartComposer
from .engine.heatmap import HeatmapStore
from .engine.klines import KlineStore
from .types import NormalizedCandleEvent, NormalizedDepthEvent


def generate_mock_depth(base_price: float, base_ts: int, count: int) -> list[NormalizedDepthEvent]:
    """Generate depth level changes around base_price, 10ms apart."""
    events = []
    for i in range(count):
        offset = random.uniform(0.5, 100)
        is_bid = random.random() > 0.5
        price = base_price - offset if is_bid else base_price + offset
        # Random qty (0 = level emptied)
        size = random.uniform(0.01, 50) if random.random() > 0.2 else 0.0
        events.append(NormalizedDepthEvent(base_ts + i * 10, i, price, size if is_bid else -size))
    return events


def generate_mock_candles(base_price: float, base_ts: int, count: int) -> list[NormalizedCandleEvent]:
    """Generate a 1s random walk of candles."""
    candles = []
    price = base_price
    for i in range(count):
        op = price
        cl = op + random.uniform(-5, 5)
        hi = max(op, cl) + random.uniform(0, 2)
        lo = min(op, cl) - random.uniform(0, 2)
        vol = random.uniform(1, 20)
        candles.append(NormalizedCandleEvent(
            base_ts + i * 1000, op, hi, lo, cl, vol * random.random(), vol, base_ts + i * 1000 + 999
        ))
        price = cl
    return candles


def benchmark_enqueue(iterations: int = 200_000) -> None:
    """Benchmark raw enqueue throughput."""
    print("\n=== Depth Enqueue Benchmark ===")

    binner = OrderFlowBinner()
    events = generate_mock_depth(60_000.0, int(time.time() * 1000), iterations)

    start = time.perf_counter()
    for e in events:
        binner.enqueue(e)
    elapsed = time.perf_counter() - start

    print(f"  Events queued: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {iterations / elapsed:,.0f} events/sec")
    print(f"  Per event: {elapsed/iterations*1_000_000:.2f}µs")


def benchmark_flush(batches: int = 200, batch_size: int = 1000) -> None:
    """Benchmark flush of realistic 300ms batches."""
    print("\n=== Flush Benchmark ===")

    binner = OrderFlowBinner()
    store = HeatmapStore()
    base_ts = int(time.time() * 1000)

    times = []
    for b in range(batches):
        for e in generate_mock_depth(60_000.0, base_ts + b * 300, batch_size):
            binner.enqueue(e)
        start = time.perf_counter()
        binner.flush(store)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    print(f"  Batches: {batches} x {batch_size:,} events")
    print(f"  Avg flush: {avg_time:.3f}ms")
    print(f"  Std dev: {stdev(times) * 1000:.3f}ms")
    print(f"  Buckets after: {len(store)}")


def benchmark_eviction(iterations: int = 500) -> None:
    """Benchmark the outlier pass over a store just above the ceiling."""
    print("\n=== Outlier Eviction Benchmark ===")

    binner = OrderFlowBinner()
    base_ts = int(time.time() * 1000)
    times = []
    for _ in range(iterations):
        store = HeatmapStore()
        cells = [(binner.price_to_bucket(60_000.0 + i), base_ts, 1.0) for i in range(-100, 101)]
        store.apply_batch(cells)
        start = time.perf_counter()
        binner.evict_outliers(store)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    print(f"  Iterations: {iterations}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {stdev(times) * 1000:.3f}ms")


def benchmark_compose(iterations: int = 50) -> None:
    """Benchmark full chart composition (what the redraw timer pays)."""
    print("\n=== Compose Benchmark ===")

    base_ts = int(time.time() * 1000)
    binner = OrderFlowBinner()
    store = HeatmapStore()
    for b in range(600):
        for e in generate_mock_depth(60_000.0, base_ts + b * 300, 200):
            binner.enqueue(e)
        binner.flush(store)

    klines = KlineStore()
    for c in generate_mock_candles(60_000.0, base_ts, 180):
        klines.upsert(c)

    composer = ChartComposer()
    heatmap_snap = store.snapshot()
    kline_snap = klines.snapshot()

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        plan = composer.compose(heatmap_snap, kline_snap, (1600, 900), dark_mode=True, now_ms=base_ts + 180_000)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000
    print(f"  Iterations: {iterations}")
    print(f"  Primitives: {len(plan.primitives):,}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Std dev: {stdev(times) * 1000:.3f}ms")
    print(f"  Max FPS possible: {1000/avg_time:,.0f}")


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("Heatmap Viewer Performance Benchmark")
    print("=" * 60)

    benchmark_enqueue()
    benchmark_flush()
    benchmark_eviction()
    benchmark_compose()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
