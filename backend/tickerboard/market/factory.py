"""Factory for creating market data providers."""

from __future__ import annotations

import logging

import httpx

from .finnhub import FinnhubProvider
from .interface import MarketDataProvider
from .twelvedata import TwelveDataProvider

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type[MarketDataProvider]] = {
    FinnhubProvider.id: FinnhubProvider,
    TwelveDataProvider.id: TwelveDataProvider,
}


def create_provider(provider_id: str, api_key: str, client: httpx.AsyncClient) -> MarketDataProvider:
    """Create the provider selected by configuration.

    - "finnhub"    -> FinnhubProvider (also drives the live trade stream)
    - "twelvedata" -> TwelveDataProvider

    Unknown ids raise ValueError; there is no plugin discovery.
    """
    try:
        provider_cls = PROVIDERS[provider_id]
    except KeyError:
        raise ValueError(f"Unknown market data provider: {provider_id!r}") from None

    logger.info("Market data provider: %s", provider_cls.name)
    return provider_cls(api_key=api_key, client=client)
