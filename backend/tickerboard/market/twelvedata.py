"""Twelve Data REST client."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from .errors import MissingCredentialError, NoDataError, upstream_error
from .http import fetch_json
from .interface import MarketDataProvider
from .models import USD, HistoryPoint, Quote, SearchResult, coerce_float, now_ms

logger = logging.getLogger(__name__)


def _parse_datetime_ms(value: Any) -> int | None:
    """Parse Twelve Data's 'YYYY-MM-DD[ HH:MM:SS]' strings (UTC) to Unix ms."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


class TwelveDataProvider(MarketDataProvider):
    """MarketDataProvider backed by the Twelve Data REST API.

    Broad instrument coverage, including venue-qualified regional listings
    such as `SAP:XETRA`. Quotes carry the upstream currency field as-is.
    Errors are signalled in-band with `{"status": "error", "message": ...}`.
    """

    id = "twelvedata"
    name = "Twelve Data"
    gold_symbol = "XAU/USD"

    BASE_URL = "https://api.twelvedata.com"

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient,
        interval: str = "15min",
        output_size: int = 200,
    ) -> None:
        super().__init__(api_key)
        self._client = client
        self._interval = interval
        self._output_size = output_size

    async def search(self, query: str) -> list[SearchResult]:
        query = (query or "").strip()
        if not self._api_key or not query:
            return []
        payload = await self._get("/symbol_search", {"symbol": query})
        items = []
        for raw in payload.get("data") or []:
            symbol = raw.get("symbol")
            if not symbol:
                continue
            name = raw.get("instrument_name") or raw.get("name") or symbol
            items.append(
                SearchResult(
                    symbol=symbol,
                    name=name,
                    type=(raw.get("instrument_type") or raw.get("exchange") or "").lower(),
                    display=f"{symbol} — {name}",
                )
            )
        return self._finalize_search(query, items)

    async def quote(self, symbol: str) -> Quote:
        payload = await self._get("/quote", {"symbol": symbol})
        last = coerce_float(payload.get("price"))
        if last is None:
            last = coerce_float(payload.get("close"))
        ts = coerce_float(payload.get("timestamp"))
        t = int(ts * 1000) if ts is not None else _parse_datetime_ms(payload.get("datetime"))
        return Quote(
            last=last,
            prev_close=coerce_float(payload.get("previous_close")),
            t=t if t is not None else now_ms(),
            ccy=str(payload.get("currency") or USD).upper(),
        )

    async def history(self, symbol: str) -> list[HistoryPoint]:
        try:
            payload = await self._get(
                "/time_series",
                {
                    "symbol": symbol,
                    "interval": self._interval,
                    "outputsize": self._output_size,
                    "order": "ASC",
                },
            )
        except NoDataError:
            return []
        points = []
        for raw in payload.get("values") or payload.get("data") or []:
            t = _parse_datetime_ms(raw.get("datetime"))
            p = coerce_float(raw.get("close"))
            if t is None or p is None:
                continue
            points.append(HistoryPoint(t=t, p=p))
        points.sort(key=lambda pt: pt.t)
        return points

    # --- Internal ---

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict:
        if not self._api_key:
            raise MissingCredentialError(f"{self.name}: no API key configured")
        payload = await fetch_json(
            self._client,
            f"{self.BASE_URL}{endpoint}",
            {**params, "apikey": self._api_key},
        )
        if not isinstance(payload, dict):
            return {}
        if payload.get("status") == "error":
            message = str(payload.get("message") or "Twelve Data error")
            code = payload.get("code")
            status = code if isinstance(code, int) else None
            if "no data" in message.lower():
                raise NoDataError(message, status)
            raise upstream_error(message, status)
        return payload
