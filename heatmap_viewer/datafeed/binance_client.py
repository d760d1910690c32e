"""
Binance spot WebSocket client with async orchestration.

Handles:
1. Combined stream for diff depth (100ms) + 1s klines
2. Parsing payloads into normalized depth/candle events
3. Redialing when the session switches instrument
4. Reconnect with backoff on transport errors

Performance notes:
- Uses orjson for fast JSON parsing
- Minimal logging in hot path (malformed messages only)
- All I/O is non-blocking (pure asyncio); the session is thread-safe so the
  client may run on its own event loop thread
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Optional

import aiohttp
import orjson

from ..errors import MalformedEventError, TransportError
from ..logging_config import get_logger
from ..types import NormalizedCandleEvent, NormalizedDepthEvent

if TYPE_CHECKING:
    from ..engine.session import MarketDataSession

logger = get_logger(__name__)

# Binance spot market data endpoint
WS_BASE = "wss://data-stream.binance.vision"

MAX_BACKOFF_SEC = 30.0


def json_loads(data: bytes | str) -> Any:
    return orjson.loads(data)


def parse_depth_payload(payload: dict) -> list[NormalizedDepthEvent]:
    """
    Split one depthUpdate message into per-level events.

    Expected format: {E: event_time, u: last_id, b: [[price, qty], ...], a: [[price, qty], ...]}
    Ask sizes are negated so the sign encodes the side.
    """
    try:
        ts = int(payload['E'])
        seq = int(payload['u'])
        events = [
            NormalizedDepthEvent(ts, seq, float(price), float(qty))
            for price, qty in payload.get('b', [])
        ]
        events.extend(
            NormalizedDepthEvent(ts, seq, float(price), -float(qty))
            for price, qty in payload.get('a', [])
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedEventError(
            f"bad depth payload: {e}", event=payload, context={"kind": "depth"},
        ) from e
    return events


def parse_kline_payload(payload: dict) -> NormalizedCandleEvent:
    """
    Parse a kline message.

    Expected format: {k: {t: open_time, T: close_time, o, h, l, c, V: taker buy volume, v: volume}}
    """
    try:
        k = payload['k']
        return NormalizedCandleEvent(
            open_time=int(k['t']),
            open=float(k['o']),
            high=float(k['h']),
            low=float(k['l']),
            close=float(k['c']),
            buy_volume=float(k['V']),
            total_volume=float(k['v']),
            close_time=int(k['T']),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedEventError(
            f"bad kline payload: {e}", event=payload, context={"kind": "kline"},
        ) from e


class BinanceStreamClient:
    """
    Async Binance client feeding a MarketDataSession.

    Usage:
        client = BinanceStreamClient(session)
        session.add_instrument_listener(client.request_redial)
        await client.run()
    """

    def __init__(
        self,
        session: MarketDataSession,
        ws_base: str = WS_BASE,
        depth_interval_ms: int = 100,
        kline_interval: str = "1s",
    ) -> None:
        self.session = session
        self.ws_base = ws_base
        self.depth_interval_ms = depth_interval_ms
        self.kline_interval = kline_interval

        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._redial: Optional[asyncio.Event] = None

        self.messages_received: int = 0
        self.messages_dropped: int = 0

    def build_ws_url(self, symbol: str) -> str:
        """Combined stream URL for depth diffs + klines of one symbol."""
        s = symbol.lower()
        return f"{self.ws_base}/stream?streams={s}@depth@{self.depth_interval_ms}ms/{s}@kline_{self.kline_interval}"

    def request_redial(self, symbol: str) -> None:
        """Instrument listener. Safe to call from any thread."""
        if self._loop is None or self._redial is None:
            return
        self._loop.call_soon_threadsafe(self._redial.set)

    def handle_message(self, raw: bytes | str) -> None:
        """
        Dispatch one combined-stream message into the session.

        HOT PATH - called for every message (~10-20 per second).
        Malformed or stale messages are logged and dropped.
        """
        self.messages_received += 1
        try:
            data = json_loads(raw)
        except orjson.JSONDecodeError:
            self.messages_dropped += 1
            logger.warning("ws_message_undecodable", size=len(raw))
            return

        # Combined stream format: {stream: "...", data: {...}}
        stream = data.get('stream', '') if isinstance(data, dict) else ''
        payload = data.get('data', data) if isinstance(data, dict) else data

        symbol = self.session.symbol
        if symbol is None or not stream.startswith(symbol.lower() + '@'):
            # Leftover from the previous instrument, or not ours at all
            self.messages_dropped += 1
            logger.debug("ws_stream_ignored", stream=stream, symbol=symbol)
            return

        # The session re-checks the stream symbol under its lifecycle lock,
        # so a switch landing after the check above still drops the message
        stream_symbol = stream.split('@', 1)[0]
        try:
            if '@depth' in stream:
                events = parse_depth_payload(payload)
                accepted = sum(self.session.submit_depth_event(e, symbol=stream_symbol) for e in events)
                if events and not accepted:
                    self.messages_dropped += 1
            elif '@kline' in stream:
                if not self.session.submit_candle_event(parse_kline_payload(payload), symbol=stream_symbol):
                    self.messages_dropped += 1
            else:
                self.messages_dropped += 1
                logger.info("ws_stream_unknown", stream=stream)
        except MalformedEventError as e:
            self.messages_dropped += 1
            logger.warning(
                "ws_message_malformed", stream=stream, reason=str(e), recoverable=e.recoverable, **e.context,
            )

    async def _stream(self, session: aiohttp.ClientSession, symbol: str) -> None:
        url = self.build_ws_url(symbol)
        logger.info("ws_connecting", url=url, symbol=symbol)
        assert self._redial is not None

        async with session.ws_connect(url, heartbeat=30.0) as ws:
            logger.info("ws_connected", symbol=symbol)
            redial = asyncio.ensure_future(self._redial.wait())
            try:
                while self._running and not self._redial.is_set():
                    receive = asyncio.ensure_future(ws.receive())
                    done, _ = await asyncio.wait({receive, redial}, return_when=asyncio.FIRST_COMPLETED)
                    if receive not in done:
                        receive.cancel()
                        break

                    msg = receive.result()
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self.handle_message(msg.data)
                    elif msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.CLOSING):
                        raise TransportError("websocket closed by server", url=url)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise TransportError(f"websocket error: {ws.exception()}", url=url)
            finally:
                redial.cancel()

    async def run(self) -> None:
        """
        Main run loop. Streams the session's current instrument until stop().

        Redials on instrument change; reconnects with exponential backoff on
        transport errors without tearing down the session.
        """
        self._running = True
        self._loop = asyncio.get_running_loop()
        self._redial = asyncio.Event()
        backoff = 1.0

        async with aiohttp.ClientSession() as http:
            while self._running:
                symbol = self.session.symbol
                if symbol is None:
                    await self._redial.wait()
                    self._redial.clear()
                    continue

                try:
                    await self._stream(http, symbol)
                    backoff = 1.0
                except (aiohttp.ClientError, TransportError, asyncio.TimeoutError) as e:
                    if not self._running:
                        break
                    logger.warning("ws_disconnected", symbol=symbol, error=str(e), retry_in=backoff)
                    try:
                        await asyncio.wait_for(self._redial.wait(), timeout=backoff)
                    except asyncio.TimeoutError:
                        pass
                    backoff = min(backoff * 2, MAX_BACKOFF_SEC)

                if self._redial.is_set():
                    logger.info("ws_redial", previous=symbol, symbol=self.session.symbol)
                    self._redial.clear()

        logger.info("ws_stopped")

    def stop(self) -> None:
        """Signal the client to stop. Safe to call from any thread."""
        self._running = False
        if self._loop is not None and self._redial is not None:
            self._loop.call_soon_threadsafe(self._redial.set)
