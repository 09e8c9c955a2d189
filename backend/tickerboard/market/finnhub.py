"""Finnhub REST client."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from .errors import (
    EntitlementError,
    MissingCredentialError,
    NoDataError,
    upstream_error,
)
from .http import DEFAULT_DELAYS, fetch_json, with_retry
from .interface import MarketDataProvider
from .models import USD, HistoryPoint, Quote, SearchResult, coerce_float, now_ms
from .symbols import InstrumentClass, classify, crypto_fallback

logger = logging.getLogger(__name__)

CANDLE_ENDPOINTS: dict[InstrumentClass, str] = {
    InstrumentClass.FOREX: "/forex/candle",
    InstrumentClass.CRYPTO: "/crypto/candle",
    InstrumentClass.EQUITY: "/stock/candle",
}

QUOTE_LOOKBACK_SECONDS = 24 * 60 * 60
HISTORY_LOOKBACK_SECONDS = 14 * 24 * 60 * 60


def _first_number(*values: Any) -> float | None:
    for value in values:
        number = coerce_float(value)
        if number is not None:
            return number
    return None


def _equity_last(payload: dict) -> float | None:
    """Last price from a /quote payload.

    `c` (or `price` when `c` is absent) wins unless it is zero; then `ask`
    unless it is zero; then `bid` as-is.
    """
    last = _first_number(payload.get("c"), payload.get("price"))
    if last:
        return last
    ask = coerce_float(payload.get("ask"))
    if ask:
        return ask
    return coerce_float(payload.get("bid"))


def _is_transient(error: Exception) -> bool:
    return not isinstance(error, (EntitlementError, MissingCredentialError))


def _search_type(raw_type: str) -> str:
    raw_type = raw_type.lower()
    if "forex" in raw_type:
        return "forex"
    if "crypto" in raw_type:
        return "crypto"
    if "etf" in raw_type:
        return "etf"
    return "stock"


class FinnhubProvider(MarketDataProvider):
    """MarketDataProvider backed by the Finnhub REST API.

    Free-tier entitlements are narrow, so each instrument class has its own
    endpoint:
      - OANDA:*          -> /forex/quote, /forex/candle
      - EXCHANGE:PAIR    -> /crypto/candle (quotes derived from 1-minute candles)
      - plain tickers    -> /quote, /stock/candle

    Every quote is reported in USD regardless of the instrument.
    """

    id = "finnhub"
    name = "Finnhub"
    gold_symbol = "OANDA:XAU_USD"

    BASE_URL = "https://finnhub.io/api/v1"

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        resolution: str = "15",
        retry_delays: Sequence[float] = DEFAULT_DELAYS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(api_key)
        self._client = client
        self._resolution = resolution
        self._retry_delays = tuple(retry_delays)
        self._clock = clock

    async def search(self, query: str) -> list[SearchResult]:
        query = (query or "").strip()
        if not self._api_key or not query:
            return []
        payload = await self._get("/search", {"q": query})
        items = []
        for raw in payload.get("result") or []:
            symbol = raw.get("symbol")
            description = raw.get("description") or ""
            if not symbol or not description:
                continue
            items.append(
                SearchResult(
                    symbol=symbol,
                    name=description,
                    type=_search_type(raw.get("type") or ""),
                    display=f"{symbol} — {description}",
                )
            )
        return self._finalize_search(query, items)

    async def quote(self, symbol: str) -> Quote:
        kind = classify(symbol)
        if kind is InstrumentClass.FOREX:
            return await self._forex_quote(symbol)
        if kind is InstrumentClass.CRYPTO:
            return await self._crypto_quote(symbol)
        return await self._equity_quote(symbol)

    async def history(self, symbol: str) -> list[HistoryPoint]:
        to = int(self._clock())
        payload = await self._get_with_retry(
            CANDLE_ENDPOINTS[classify(symbol)],
            {
                "symbol": symbol,
                "resolution": self._resolution,
                "from": to - HISTORY_LOOKBACK_SECONDS,
                "to": to,
            },
        )
        if payload.get("s") != "ok":
            return []
        points = []
        for ts, close in zip(payload.get("t") or [], payload.get("c") or []):
            t = coerce_float(ts)
            p = coerce_float(close)
            if t is None or p is None:
                continue
            points.append(HistoryPoint(t=int(t * 1000), p=p))
        points.sort(key=lambda pt: pt.t)
        return points

    async def profile(self, symbol: str) -> dict:
        """Company profile (logo, weburl, ...) from /stock/profile2."""
        return await self._get_with_retry("/stock/profile2", {"symbol": symbol})

    # --- Instrument classes ---

    async def _forex_quote(self, symbol: str) -> Quote:
        payload = await self._get_with_retry("/forex/quote", {"symbol": symbol})
        last = _first_number(payload.get("c"), payload.get("ask"), payload.get("bid"))
        prev = _first_number(payload.get("pc"))
        return Quote(
            last=last,
            prev_close=prev if prev is not None else last,
            t=now_ms(),
            ccy=USD,
        )

    async def _crypto_quote(self, symbol: str) -> Quote:
        to = int(self._clock())
        params = {"resolution": "1", "from": to - QUOTE_LOOKBACK_SECONDS, "to": to}

        payload = await self._get_with_retry("/crypto/candle", {**params, "symbol": symbol})
        if not self._has_candles(payload):
            alt = crypto_fallback(symbol)
            if alt:
                logger.info("No candles for %s, falling back to %s", symbol, alt)
                payload = await self._get_with_retry("/crypto/candle", {**params, "symbol": alt})
            if not self._has_candles(payload):
                raise NoDataError(f"No crypto data for {symbol}")

        closes = payload["c"]
        times = payload.get("t") or []
        last = coerce_float(closes[-1])
        prev = coerce_float(closes[-2]) if len(closes) > 1 else last
        ts = coerce_float(times[-1]) if times else None
        return Quote(
            last=last,
            prev_close=prev,
            t=int((ts if ts is not None else to) * 1000),
            ccy=USD,
        )

    async def _equity_quote(self, symbol: str) -> Quote:
        payload = await self._get_with_retry("/quote", {"symbol": symbol})
        last = _equity_last(payload)
        prev = _first_number(payload.get("pc"), payload.get("prevClose"))
        ts = coerce_float(payload.get("t"))
        return Quote(
            last=last,
            prev_close=prev if prev is not None else last,
            t=int(ts * 1000) if ts else now_ms(),
            ccy=USD,
        )

    # --- Internal ---

    @staticmethod
    def _has_candles(payload: dict) -> bool:
        closes = payload.get("c")
        return payload.get("s") == "ok" and isinstance(closes, list) and bool(closes)

    async def _get_with_retry(self, endpoint: str, params: dict[str, Any]) -> dict:
        return await with_retry(
            lambda: self._get(endpoint, params),
            delays=self._retry_delays,
            fallback_delay=self._retry_delays[-1] if self._retry_delays else 0.0,
            should_retry=_is_transient,
        )

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict:
        if not self._api_key:
            raise MissingCredentialError(f"{self.name}: no API token configured")
        payload = await fetch_json(
            self._client,
            f"{self.BASE_URL}{endpoint}",
            {**params, "token": self._api_key},
        )
        if not isinstance(payload, dict):
            return {}
        if payload.get("error"):
            raise upstream_error(str(payload["error"]))
        return payload
