#!/usr/bin/env python3
"""
Heatmap Viewer - Live liquidity heatmap + candles for Binance spot streams.

Usage:
    python -m heatmap_viewer.main BTCUSDT --price-step 1 --light

Controls:
    q - Quit
    t - Toggle light/dark chart
    r - Redraw now
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from .config import HeatmapConfig, OverflowPolicy


def build_config(args: argparse.Namespace) -> HeatmapConfig:
    return HeatmapConfig(
        price_step=args.price_step,
        max_price_buckets=args.max_buckets,
        redraw_interval_sec=args.redraw_interval,
        queue_capacity=args.queue_capacity,
        overflow_policy=OverflowPolicy(args.overflow),
    )


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Arguments shared by the TUI and GUI entry points."""
    parser.add_argument(
        "symbol",
        nargs="?",
        default="BTCUSDT",
        help="Trading symbol (default: BTCUSDT)"
    )

    parser.add_argument(
        "--price-step",
        type=float,
        default=1.0,
        help="Heatmap price bucket size (default: 1.0)"
    )

    parser.add_argument(
        "--max-buckets",
        type=int,
        default=200,
        help="Price bucket count that triggers outlier eviction (default: 200)"
    )

    parser.add_argument(
        "--redraw-interval",
        type=float,
        default=2.0,
        help="Seconds between periodic redraws (default: 2)"
    )

    parser.add_argument(
        "--queue-capacity",
        type=int,
        default=100_000,
        help="Max pending depth events between flushes (default: 100000)"
    )

    parser.add_argument(
        "--overflow",
        choices=[p.value for p in OverflowPolicy],
        default=OverflowPolicy.DROP_OLDEST.value,
        help="Which event to drop when the pending queue is full (default: drop-oldest)"
    )

    parser.add_argument(
        "--light",
        action="store_true",
        help="Light chart theme (default: dark)"
    )

    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level (default: WARNING)"
    )

    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON lines"
    )


async def main(symbol: str, config: HeatmapConfig, dark_mode: bool) -> None:
    """Main entry point - runs data feed and UI concurrently."""

    # Import here to avoid slow startup for --help
    from .datafeed.binance_client import BinanceStreamClient
    from .engine.composer import ChartComposer
    from .engine.scheduler import RedrawScheduler
    from .engine.session import MarketDataSession
    from .ui.chart_view import run_ui

    session = MarketDataSession(config)
    client = BinanceStreamClient(session)
    session.add_instrument_listener(client.request_redial)

    scheduler = RedrawScheduler(
        ChartComposer(config),
        session.heatmap,
        session.klines,
        present=lambda plan: None,  # Replaced by the canvas on compose
        dark_mode=dark_mode,
        interval_sec=config.redraw_interval_sec,
    )

    session.set_instrument(symbol)
    session.start()

    feed_task = asyncio.create_task(client.run())

    try:
        # Run UI (blocks until quit)
        await run_ui(session, scheduler, dark_mode)
    finally:
        # Cleanup
        client.stop()
        session.stop()
        feed_task.cancel()
        try:
            await feed_task
        except asyncio.CancelledError:
            pass


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Heatmap Viewer - Live liquidity heatmap for Binance spot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m heatmap_viewer.main BTCUSDT
    python -m heatmap_viewer.main ETHUSDT --price-step 0.1 --light
    python -m heatmap_viewer.main SOLUSDT --price-step 0.01 --max-buckets 300
        """
    )
    add_common_arguments(parser)
    args = parser.parse_args()

    from .logging_config import configure_logging
    configure_logging(args.log_level, format_json=args.log_json)

    # Run
    try:
        asyncio.run(main(args.symbol, build_config(args), dark_mode=not args.light))
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
