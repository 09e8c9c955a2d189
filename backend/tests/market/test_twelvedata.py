"""Tests for TwelveDataProvider (mocked HTTP)."""

import httpx
import pytest

from tickerboard.market.errors import (
    EntitlementError,
    MissingCredentialError,
    RateLimitError,
    UpstreamError,
)
from tickerboard.market.twelvedata import TwelveDataProvider


def _route(routes: dict, calls: list | None = None):
    """MockTransport handler dispatching on URL path."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        body = routes[request.url.path]
        return httpx.Response(200, json=body)

    return handler


@pytest.mark.asyncio
class TestTwelveDataProvider:
    """Unit tests for TwelveDataProvider with a mocked API."""

    async def test_quote_trusts_upstream_currency(self, make_client):
        calls = []
        client = make_client(
            _route(
                {
                    "/quote": {
                        "symbol": "SAP",
                        "price": "181.20",
                        "previous_close": "179.80",
                        "currency": "eur",
                        "datetime": "2024-02-10",
                    }
                },
                calls,
            )
        )
        provider = TwelveDataProvider(api_key="td-key", client=client)

        quote = await provider.quote("SAP:XETRA")

        assert quote.last == 181.2
        assert quote.prev_close == 179.8
        assert quote.ccy == "EUR"
        assert quote.t == 1707523200000
        params = calls[0].url.params
        assert params["symbol"] == "SAP:XETRA"
        assert params["apikey"] == "td-key"

    async def test_quote_defaults_to_usd(self, make_client):
        client = make_client(_route({"/quote": {"close": "10", "previous_close": "9"}}))
        quote = await TwelveDataProvider(api_key="k", client=client).quote("X")
        assert quote.last == 10.0
        assert quote.ccy == "USD"

    async def test_quote_unparseable_price_is_absent(self, make_client):
        client = make_client(_route({"/quote": {"price": "N/A", "previous_close": "9"}}))
        quote = await TwelveDataProvider(api_key="k", client=client).quote("X")
        assert quote.last is None
        assert quote.change_percent is None

    async def test_status_error_raises(self, make_client):
        client = make_client(
            _route({"/quote": {"status": "error", "code": 400, "message": "symbol not found"}})
        )
        with pytest.raises(UpstreamError, match="symbol not found"):
            await TwelveDataProvider(api_key="k", client=client).quote("NOPE")

    async def test_plan_restriction_is_entitlement(self, make_client):
        client = make_client(
            _route(
                {
                    "/quote": {
                        "status": "error",
                        "code": 403,
                        "message": "This symbol is not available with your plan.",
                    }
                }
            )
        )
        with pytest.raises(EntitlementError):
            await TwelveDataProvider(api_key="k", client=client).quote("VOD:LSE")

    async def test_in_band_rate_limit(self, make_client):
        client = make_client(
            _route(
                {
                    "/quote": {
                        "status": "error",
                        "code": 429,
                        "message": "You have run out of API credits for the current minute.",
                    }
                }
            )
        )
        with pytest.raises(RateLimitError) as exc:
            await TwelveDataProvider(api_key="k", client=client).quote("AAPL")
        assert exc.value.status == 429

    async def test_history_sorted_ascending(self, make_client):
        calls = []
        client = make_client(
            _route(
                {
                    "/time_series": {
                        "status": "ok",
                        "values": [
                            {"datetime": "2024-02-09 15:45:00", "close": "3"},
                            {"datetime": "2024-02-09 15:15:00", "close": "1"},
                            {"datetime": "2024-02-09 15:30:00", "close": "2"},
                            {"datetime": "2024-02-09 16:00:00", "close": "bad"},
                        ],
                    }
                },
                calls,
            )
        )
        history = await TwelveDataProvider(api_key="k", client=client).history("AAPL")

        assert [pt.p for pt in history] == [1.0, 2.0, 3.0]
        assert all(a.t <= b.t for a, b in zip(history, history[1:]))
        params = calls[0].url.params
        assert params["interval"] == "15min"
        assert params["outputsize"] == "200"
        assert params["order"] == "ASC"

    async def test_history_no_data_is_empty(self, make_client):
        client = make_client(
            _route(
                {
                    "/time_series": {
                        "status": "error",
                        "code": 400,
                        "message": "No data is available on the specified dates.",
                    }
                }
            )
        )
        assert await TwelveDataProvider(api_key="k", client=client).history("AAPL") == []

    async def test_search_maps_results(self, make_client):
        client = make_client(
            _route(
                {
                    "/symbol_search": {
                        "data": [
                            {"symbol": "AAPL", "instrument_name": "Apple Inc", "instrument_type": "Common Stock"},
                            {"symbol": "AAPL", "instrument_name": "Apple Inc", "instrument_type": "Common Stock"},
                            {"symbol": "AAPX", "exchange": "NYSE"},
                        ]
                    }
                }
            )
        )
        results = await TwelveDataProvider(api_key="k", client=client).search("AAPL")

        assert [r.symbol for r in results] == ["AAPL", "AAPX"]
        assert results[0].name == "Apple Inc"
        assert results[0].type == "common stock"
        assert results[0].display == "AAPL — Apple Inc"
        assert results[1].name == "AAPX"
        assert results[1].type == "nyse"

    async def test_search_gold_synonym(self, make_client):
        client = make_client(_route({"/symbol_search": {"data": [{"symbol": "XAUUSD", "instrument_name": "X"}]}}))
        results = await TwelveDataProvider(api_key="k", client=client).search("xau")
        assert results[0].symbol == "XAU/USD"
        assert results[0].name == "Gold Spot"
        assert results[0].type == "forex"

    async def test_search_without_key_or_query(self, make_client):
        calls = []
        client = make_client(_route({}, calls))
        assert await TwelveDataProvider(api_key="", client=client).search("AAPL") == []
        assert await TwelveDataProvider(api_key="k", client=client).search("   ") == []
        assert calls == []

    async def test_quote_without_key_fails_fast(self, make_client):
        calls = []
        client = make_client(_route({}, calls))
        with pytest.raises(MissingCredentialError):
            await TwelveDataProvider(api_key="  ", client=client).quote("AAPL")
        assert calls == []
