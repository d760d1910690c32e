#!/usr/bin/env python3
"""
Heatmap Viewer GUI - Standalone window version.

Usage:
    python -m heatmap_viewer.gui BTCUSDT --price-step 1
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import threading

from .logging_config import get_logger
from .main import add_common_arguments, build_config

logger = get_logger(__name__)


def run_async_feed(client, loop: asyncio.AbstractEventLoop) -> None:
    """Run the async data feed in a separate thread."""
    try:
        logger.info("feed_thread_started")
        asyncio.set_event_loop(loop)
        loop.run_until_complete(client.run())
    except Exception:
        logger.exception("feed_thread_failed")


def main(symbol: str, config, dark_mode: bool) -> None:
    """Main entry point - runs data feed in background, GUI in main thread."""

    from .datafeed.binance_client import BinanceStreamClient
    from .engine.composer import ChartComposer
    from .engine.scheduler import RedrawScheduler
    from .engine.session import MarketDataSession
    from .ui.chart_window import run_gui

    session = MarketDataSession(config)
    client = BinanceStreamClient(session)
    session.add_instrument_listener(client.request_redial)

    scheduler = RedrawScheduler(
        ChartComposer(config),
        session.heatmap,
        session.klines,
        present=lambda plan: None,  # Replaced by the canvas on window setup
        dark_mode=dark_mode,
        interval_sec=config.redraw_interval_sec,
    )

    session.set_instrument(symbol)
    session.start()

    # Create event loop for async operations
    loop = asyncio.new_event_loop()

    # Start data feed in background thread
    feed_thread = threading.Thread(
        target=run_async_feed,
        args=(client, loop),
        daemon=True
    )
    feed_thread.start()

    # Run GUI in main thread (required by Qt)
    try:
        run_gui(session, scheduler)
    finally:
        client.stop()
        session.stop()
        feed_thread.join(timeout=2.0)


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Heatmap Viewer GUI - Standalone window for Binance spot",
    )
    add_common_arguments(parser)
    args = parser.parse_args()

    from .logging_config import configure_logging
    configure_logging(args.log_level, format_json=args.log_json)

    try:
        main(args.symbol, build_config(args), dark_mode=not args.light)
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
