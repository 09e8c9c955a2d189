"""Tests for MarketAggregator with scripted providers."""

import asyncio

import httpx
import pytest

from tickerboard.market.aggregator import MarketAggregator
from tickerboard.market.cache import MarketTable
from tickerboard.market.errors import EntitlementError, RateLimitError, TransportError
from tickerboard.market.interface import MarketDataProvider
from tickerboard.market.logos import LogoResolver
from tickerboard.market.models import HistoryPoint, MarketRecord, Quote, SearchResult
from tickerboard.market.twelvedata import TwelveDataProvider
from tickerboard.store import MemoryStore
from tickerboard.watchlist import Watchlist


class FakeProvider(MarketDataProvider):
    """Provider answering from dicts; values that are exceptions get raised."""

    def __init__(self, id: str = "finnhub", quotes=None, histories=None, name: str = "Fake") -> None:
        super().__init__("key")
        self.id = id
        self.name = name
        self.quotes = quotes or {}
        self.histories = histories or {}
        self.calls: list[tuple[str, str]] = []

    async def search(self, query: str) -> list[SearchResult]:
        return []

    async def quote(self, symbol: str) -> Quote:
        self.calls.append(("quote", symbol))
        value = self.quotes.get(symbol, Quote(last=100.0, prev_close=99.0, t=1_000))
        if isinstance(value, Exception):
            raise value
        return value

    async def history(self, symbol: str) -> list[HistoryPoint]:
        self.calls.append(("history", symbol))
        value = self.histories.get(symbol, [HistoryPoint(t=1_000, p=100.0)])
        if isinstance(value, Exception):
            raise value
        return value


class FakeFx:
    def __init__(self) -> None:
        self.refreshes = 0
        self.usd_eur = 0.9

    async def refresh(self) -> float:
        self.refreshes += 1
        return self.usd_eur


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class Notices(list):
    def __call__(self, message, severity="info", auto_dismiss_ms=4200):
        self.append((message, severity))


def _setup(provider, symbols=("AAPL",), fallback=None, lookup=None, clock=None):
    store = MemoryStore()
    watchlist = Watchlist(store)
    for symbol in reversed(symbols):
        watchlist.add(symbol)
    table = MarketTable()
    notices = Notices()
    aggregator = MarketAggregator(
        table=table,
        watchlist=watchlist,
        provider=provider,
        fx=FakeFx(),
        logos=LogoResolver(store, lookup),
        fallback=fallback,
        notifier=notices,
        refresh_interval=3600.0,
        cooldown=60.0,
        clock=clock or FakeClock(),
    )
    return aggregator, table, notices


@pytest.mark.asyncio
class TestRefreshCycle:
    """Fan-out fetch and record replacement."""

    async def test_populates_records(self):
        provider = FakeProvider(
            quotes={"AAPL": Quote(last=190.5, prev_close=188.0, t=5_000, ccy="USD")},
            histories={"AAPL": [HistoryPoint(t=1_000, p=189.0), HistoryPoint(t=2_000, p=190.0)]},
        )
        aggregator, table, notices = _setup(provider, symbols=("AAPL", "MSFT"))

        assert await aggregator.refresh_all() is True

        record = table.get("AAPL")
        assert record.last == 190.5
        assert record.prev_close == 188.0
        assert record.t == 5_000
        assert [pt.p for pt in record.history] == [189.0, 190.0]
        assert "MSFT" in table
        assert notices == []

    async def test_refreshes_fx_rate_each_cycle(self):
        aggregator, _, _ = _setup(FakeProvider())
        await aggregator.refresh_all()
        await aggregator.refresh_all(manual=True)
        assert aggregator._fx.refreshes == 2

    async def test_failure_preserves_previous_record(self):
        provider = FakeProvider()
        aggregator, table, notices = _setup(provider)
        await aggregator.refresh_all()
        before = table.get("AAPL")

        provider.quotes["AAPL"] = TransportError("HTTP 500", status=500)
        await aggregator.refresh_all()

        assert table.get("AAPL") is before
        assert notices == [("Failed: AAPL (HTTP 500)", "error")]

    async def test_no_partial_overwrite(self):
        """Quote succeeding while history fails must not replace the record."""
        provider = FakeProvider()
        aggregator, table, notices = _setup(provider)
        await aggregator.refresh_all()
        before = table.get("AAPL")

        provider.quotes["AAPL"] = Quote(last=500.0, prev_close=1.0, t=9_000)
        provider.histories["AAPL"] = TransportError("HTTP 502 (HTML)", status=502)
        await aggregator.refresh_all()

        assert table.get("AAPL") is before
        assert table.get("AAPL").last == 100.0
        assert len(notices) == 1

    async def test_sibling_failures_are_independent(self):
        provider = FakeProvider(quotes={"BAD": TransportError("HTTP 500")})
        aggregator, table, notices = _setup(provider, symbols=("AAPL", "BAD", "MSFT"))

        await aggregator.refresh_all()

        assert "AAPL" in table
        assert "MSFT" in table
        assert "BAD" not in table
        assert notices == [("Failed: BAD (HTTP 500)", "error")]

    async def test_logo_fetched_once(self):
        lookups = []

        async def lookup(symbol):
            lookups.append(symbol)
            return {"logo": f"https://logos.test/{symbol}.png"}

        aggregator, table, _ = _setup(FakeProvider(), lookup=lookup)
        await aggregator.refresh_all()
        await aggregator.refresh_all()

        assert lookups == ["AAPL"]
        assert table.get("AAPL").logo == "https://logos.test/AAPL.png"

    async def test_missing_logo_not_refetched(self):
        lookups = []

        async def lookup(symbol):
            lookups.append(symbol)
            return {}

        aggregator, table, _ = _setup(FakeProvider(), lookup=lookup)
        await aggregator.refresh_all()
        await aggregator.refresh_all()

        assert lookups == ["AAPL"]
        assert table.get("AAPL").logo is None


@pytest.mark.asyncio
class TestEntitlementFallback:
    """Finnhub entitlement denial -> Twelve Data with venue symbol."""

    async def test_fallback_to_alternate_provider(self):
        primary = FakeProvider(
            id="finnhub",
            quotes={"SYM.DE": EntitlementError("You don't have access to this resource.", 403)},
        )
        fallback = FakeProvider(
            id="twelvedata",
            quotes={"SYM:XETRA": Quote(last=42.0, prev_close=40.0, t=7_000, ccy="EUR")},
            histories={"SYM:XETRA": [HistoryPoint(t=7_000, p=42.0)]},
        )
        aggregator, table, notices = _setup(primary, symbols=("SYM.DE",), fallback=fallback)

        await aggregator.refresh_all()

        record = table.get("SYM.DE")
        assert record is not None
        assert record.ccy == "EUR"
        assert record.last == 42.0
        assert ("quote", "SYM:XETRA") in fallback.calls
        assert ("history", "SYM:XETRA") in fallback.calls
        assert notices == []

    async def test_fallback_failure_notifies_and_preserves(self):
        primary = FakeProvider(id="finnhub")
        fallback = FakeProvider(id="twelvedata", quotes={"SYM:XETRA": TransportError("HTTP 404")})
        aggregator, table, notices = _setup(primary, symbols=("SYM.DE",), fallback=fallback)
        await aggregator.refresh_all()
        before = table.get("SYM.DE")

        primary.quotes["SYM.DE"] = EntitlementError("no access", 403)
        await aggregator.refresh_all()

        assert table.get("SYM.DE") is before
        assert notices == [("Failed: SYM.DE (HTTP 404)", "error")]

    async def test_no_fallback_for_other_providers(self):
        primary = FakeProvider(id="twelvedata", quotes={"VOD:LSE": EntitlementError("upgrade your plan")})
        fallback = FakeProvider(id="twelvedata")
        aggregator, table, notices = _setup(primary, symbols=("VOD:LSE",), fallback=fallback)

        await aggregator.refresh_all()

        assert fallback.calls == []
        assert notices == [("Failed: VOD:LSE (upgrade your plan)", "error")]

    async def test_plain_errors_do_not_fall_back(self):
        primary = FakeProvider(id="finnhub", quotes={"SYM.DE": TransportError("HTTP 500")})
        fallback = FakeProvider(id="twelvedata")
        aggregator, _, notices = _setup(primary, symbols=("SYM.DE",), fallback=fallback)

        await aggregator.refresh_all()

        assert fallback.calls == []
        assert len(notices) == 1


@pytest.mark.asyncio
class TestRateLimitCooldown:
    """HTTP 429 pauses automatic refreshes for 60 seconds."""

    async def test_cooldown_window(self):
        clock = FakeClock(1_000.0)
        provider = FakeProvider(quotes={"AAPL": RateLimitError("HTTP 429", status=429)})
        aggregator, _, notices = _setup(provider, clock=clock)

        assert await aggregator.refresh_all() is True
        assert aggregator.in_cooldown
        assert notices == [("Rate limited — pausing updates for 60s", "warning")]

        provider.quotes.pop("AAPL")
        provider.calls.clear()

        clock.now = 1_059.9
        assert await aggregator.refresh_all() is False
        assert provider.calls == []

        clock.now = 1_060.0
        assert await aggregator.refresh_all() is True
        assert provider.calls

    async def test_twelvedata_in_band_429_starts_cooldown(self, make_client):
        body = {"status": "error", "code": 429, "message": "You have run out of API credits."}
        client = make_client(lambda req: httpx.Response(200, json=body))
        provider = TwelveDataProvider(api_key="k", client=client)
        clock = FakeClock(1_000.0)
        aggregator, _, notices = _setup(provider, symbols=("AAPL", "MSFT"), clock=clock)

        await aggregator.refresh_all()

        assert aggregator.in_cooldown
        assert notices == [("Rate limited — pausing updates for 60s", "warning")]
        clock.now = 1_030.0
        assert await aggregator.refresh_all() is False

    async def test_manual_refresh_bypasses_cooldown(self):
        clock = FakeClock(1_000.0)
        provider = FakeProvider(quotes={"AAPL": RateLimitError("HTTP 429", status=429)})
        aggregator, table, _ = _setup(provider, clock=clock)
        await aggregator.refresh_all()

        provider.quotes.pop("AAPL")
        clock.now = 1_010.0
        assert await aggregator.refresh_all(manual=True) is True
        assert "AAPL" in table

    async def test_one_notice_per_cycle(self):
        provider = FakeProvider(
            quotes={
                "AAPL": RateLimitError("HTTP 429", status=429),
                "MSFT": RateLimitError("HTTP 429", status=429),
            }
        )
        aggregator, _, notices = _setup(provider, symbols=("AAPL", "MSFT"))
        await aggregator.refresh_all()
        assert len(notices) == 1


@pytest.mark.asyncio
class TestAggregatorLifecycle:
    """start()/stop() polling task."""

    async def test_start_refreshes_immediately(self):
        aggregator, table, _ = _setup(FakeProvider())
        await aggregator.start()
        try:
            assert "AAPL" in table
            assert aggregator._task is not None
            assert not aggregator._task.done()
        finally:
            await aggregator.stop()
        assert aggregator._task is None

    async def test_stop_is_idempotent(self):
        aggregator, _, _ = _setup(FakeProvider())
        await aggregator.stop()
        await aggregator.stop()

    async def test_poll_loop_runs_on_interval(self):
        provider = FakeProvider()
        aggregator, _, _ = _setup(provider)
        aggregator._interval = 0.01
        await aggregator.start()
        calls_after_start = len(provider.calls)
        await asyncio.sleep(0.1)
        await aggregator.stop()
        assert len(provider.calls) > calls_after_start

    async def test_set_provider(self):
        aggregator, table, _ = _setup(FakeProvider(id="finnhub"))
        other = FakeProvider(id="twelvedata", quotes={"AAPL": Quote(last=1.0, prev_close=1.0, t=1, ccy="GBP")})
        aggregator.set_provider(other)
        await aggregator.refresh_all()
        assert aggregator.provider is other
        assert table.get("AAPL").ccy == "GBP"

    async def test_existing_logo_preserved(self):
        aggregator, table, _ = _setup(FakeProvider())
        table.replace("AAPL", MarketRecord(last=1.0, prev_close=1.0, t=0, logo="kept.png"))
        await aggregator.refresh_all()
        assert table.get("AAPL").logo == "kept.png"
