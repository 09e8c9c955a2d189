"""Fixtures for market data tests.

Upstream HTTP is served by ``httpx.MockTransport`` handlers, so provider
tests exercise the real request/response handling without network access.
"""

from collections.abc import Callable

import httpx
import pytest

from tickerboard.market.cache import MarketTable
from tickerboard.market.models import HistoryPoint, MarketRecord

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def make_client():
    """Factory for AsyncClients backed by a MockTransport handler."""
    def _make(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def table() -> MarketTable:
    return MarketTable()


@pytest.fixture
def aapl_record() -> MarketRecord:
    """AAPL record with a two-point history ending at t=1_000_000 ms."""
    return MarketRecord(
        last=190.0,
        prev_close=188.0,
        t=1_000_000,
        ccy="USD",
        history=[HistoryPoint(t=940_000, p=189.5), HistoryPoint(t=1_000_000, p=190.0)],
    )
