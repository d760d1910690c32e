"""
Heatmap Viewer - Live liquidity heatmap + candlestick chart for Binance spot streams.

Architecture:
- datafeed/: WebSocket connection, parsing raw messages into normalized events
- engine/: Binning, robust statistics, stores, chart composition, redraw scheduling
- ui/: Draw plan surfaces (Textual TUI and PyQt6 window)
"""

__version__ = "0.1.0"
