"""Finnhub trade stream and the live tick merge into the MarketTable."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

import websockets

from .cache import MarketTable
from .models import HistoryPoint, coerce_float, now_ms

logger = logging.getLogger(__name__)

BUCKET_MS = 60_000
HISTORY_CAP = 180


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    ERROR = "error"


def merge_history_point(
    history: list[HistoryPoint],
    point: HistoryPoint,
    bucket_ms: int = BUCKET_MS,
    cap: int = HISTORY_CAP,
) -> None:
    """Fold a tick into a rolling history buffer, in place.

    A tick within `bucket_ms` of the last point overwrites it; otherwise it is
    appended. Either way the buffer is then trimmed to the newest `cap`
    points, which also bounds a polled history that arrived longer than
    `cap`. Timestamps never move backwards, so a late tick keeps the newer
    timestamp.
    """
    if history and point.t - history[-1].t <= bucket_ms:
        history[-1] = HistoryPoint(t=max(point.t, history[-1].t), p=point.p)
    else:
        history.append(point)
    if len(history) > cap:
        del history[:-cap]


def merge_trades(table: MarketTable, message: Any) -> list[str]:
    """Apply one server message to the table. Returns the symbols updated.

    Only `{"type": "trade", "data": [...]}` messages are acted on. Within a
    batch the last tick per symbol wins. Ticks for symbols without a record
    are dropped.
    """
    if not isinstance(message, dict) or message.get("type") != "trade":
        return []
    data = message.get("data")
    if not isinstance(data, list):
        return []

    last_by_symbol: dict[str, dict] = {}
    for tick in data:
        if isinstance(tick, dict) and tick.get("s"):
            last_by_symbol[tick["s"]] = tick

    updated = []
    for symbol, tick in last_by_symbol.items():
        record = table.get(symbol)
        if record is None:
            continue
        price = coerce_float(tick.get("p"))
        if price is None or price < 0:
            logger.debug("Dropping tick with bad price for %s: %r", symbol, tick.get("p"))
            continue
        ts = coerce_float(tick.get("t"))
        t = int(ts) if ts is not None else now_ms()

        record.last = price
        record.t = t
        merge_history_point(record.history, HistoryPoint(t=t, p=price))
        updated.append(symbol)

    if updated:
        table.touch()
    return updated


class LiveTickStream:
    """Owns the Finnhub websocket and merges trade ticks into the MarketTable.

    State machine:
        DISCONNECTED -> CONNECTING -> OPEN -> (CLOSED | ERROR) -> DISCONNECTED

    After a close or error the stream waits `reconnect_delay` seconds and
    connects again, indefinitely, until stop() is called. On every open it
    subscribes to the whole watchlist; later adds/removes send a single
    subscribe/unsubscribe message.
    """

    def __init__(
        self,
        table: MarketTable,
        watchlist,
        api_key: str,
        url: str = "wss://ws.finnhub.io",
        reconnect_delay: float = 3.0,
        connect: Callable[[str], Any] = websockets.connect,
    ) -> None:
        self._table = table
        self._watchlist = watchlist
        self._api_key = (api_key or "").strip()
        self._url = url
        self._reconnect_delay = reconnect_delay
        self._connect = connect
        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self.state = ConnectionState.DISCONNECTED

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the connection task. No-op without a token or if already running."""
        if not self._api_key:
            logger.info("Live stream disabled: no Finnhub token")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="live-tick-stream")

    async def stop(self) -> None:
        """Tear down the connection and cancel any pending reconnect. Idempotent."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._ws = None
        self.state = ConnectionState.DISCONNECTED

    async def reconfigure(self, provider_id: str, api_key: str) -> None:
        """Follow a provider/credential change: run only for Finnhub with a token."""
        await self.stop()
        self._api_key = (api_key or "").strip()
        if provider_id == "finnhub":
            self.start()

    async def subscribe(self, symbol: str) -> None:
        await self._send({"type": "subscribe", "symbol": symbol})

    async def unsubscribe(self, symbol: str) -> None:
        await self._send({"type": "unsubscribe", "symbol": symbol})

    def handle_raw(self, raw: str | bytes) -> list[str]:
        """Decode one server frame and merge it. Garbage frames are ignored."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.debug("Ignoring non-JSON frame: %r", raw[:80])
            return []
        return merge_trades(self._table, message)

    # --- Internal ---

    async def _run(self) -> None:
        while True:
            self.state = ConnectionState.CONNECTING
            try:
                async with self._connect(f"{self._url}?token={self._api_key}") as ws:
                    self._ws = ws
                    self.state = ConnectionState.OPEN
                    logger.info("Live stream connected")
                    await self._subscribe_all()
                    async for raw in ws:
                        self.handle_raw(raw)
                self.state = ConnectionState.CLOSED
                logger.info("Live stream closed by server")
            except Exception as e:
                self.state = ConnectionState.ERROR
                logger.warning("Live stream error: %s", e)
            finally:
                self._ws = None

            self.state = ConnectionState.DISCONNECTED
            await asyncio.sleep(self._reconnect_delay)

    async def _subscribe_all(self) -> None:
        for symbol in self._watchlist.symbols():
            await self.subscribe(symbol)

    async def _send(self, message: dict) -> None:
        ws = self._ws
        if ws is None or self.state is not ConnectionState.OPEN:
            return
        try:
            await ws.send(json.dumps(message))
        except websockets.ConnectionClosed as e:
            logger.debug("Dropped %s for %s: %s", message["type"], message["symbol"], e)
