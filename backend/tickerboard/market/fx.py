"""USD -> EUR conversion rate."""

from __future__ import annotations

import logging

import httpx

from .errors import MarketDataError
from .http import fetch_json
from .models import coerce_float

logger = logging.getLogger(__name__)


class FxRateSource:
    """Process-wide USD->EUR rate, refreshed once per poll cycle.

    A failed refresh keeps the last known rate; it never blocks or fails the
    cycle that triggered it.
    """

    def __init__(self, client: httpx.AsyncClient, url: str, initial_rate: float = 0.9) -> None:
        self._client = client
        self._url = url
        self._rate = initial_rate

    @property
    def usd_eur(self) -> float:
        return self._rate

    async def refresh(self) -> float:
        try:
            payload = await fetch_json(self._client, self._url)
        except (MarketDataError, httpx.HTTPError) as e:
            logger.warning("FX rate refresh failed, keeping %.4f: %s", self._rate, e)
            return self._rate
        rates = payload.get("rates") if isinstance(payload, dict) else None
        rate = coerce_float(rates.get("EUR")) if isinstance(rates, dict) else None
        if rate:
            self._rate = rate
        return self._rate
