"""Polling orchestrator: fan-out fetch, provider fallback and rate-limit cooldown."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from .cache import MarketTable
from .errors import EntitlementError, RateLimitError
from .fx import FxRateSource
from .interface import MarketDataProvider
from .logos import LogoResolver
from .models import MarketRecord, WatchEntry
from .notify import LoggingNotifier, Notifier
from .symbols import to_venue_symbol

logger = logging.getLogger(__name__)

RATE_LIMIT_NOTICE = "Rate limited — pausing updates for {seconds:.0f}s"


class MarketAggregator:
    """Refreshes the MarketTable for every watched symbol.

    Each cycle refreshes the USD->EUR rate, then fetches quote and history for
    all symbols concurrently. A symbol's record is only replaced once both
    requests succeeded; on failure the previous record stays and a notice is
    raised. Finnhub entitlement denials are retried against Twelve Data with
    the venue-qualified symbol.

    Automatic cycles pause for `cooldown` seconds after any HTTP 429. Manual
    refreshes ignore the pause.
    """

    def __init__(
        self,
        table: MarketTable,
        watchlist,
        provider: MarketDataProvider,
        fx: FxRateSource,
        logos: LogoResolver,
        fallback: MarketDataProvider | None = None,
        notifier: Notifier | None = None,
        refresh_interval: float = 30.0,
        cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._table = table
        self._watchlist = watchlist
        self._provider = provider
        self._fx = fx
        self._logos = logos
        self._fallback = fallback
        self._notify = notifier or LoggingNotifier()
        self._interval = refresh_interval
        self._cooldown = cooldown
        self._clock = clock
        self._backoff_until: float = 0.0
        self._task: asyncio.Task | None = None

    @property
    def provider(self) -> MarketDataProvider:
        return self._provider

    def set_provider(
        self,
        provider: MarketDataProvider,
        logos: LogoResolver | None = None,
        fallback: MarketDataProvider | None = None,
    ) -> None:
        """Switch the active provider; takes effect on the next cycle."""
        self._provider = provider
        if logos is not None:
            self._logos = logos
        self._fallback = fallback
        logger.info("Aggregator: active provider is now %s", provider.name)

    @property
    def in_cooldown(self) -> bool:
        return self._clock() < self._backoff_until

    async def start(self) -> None:
        # Immediate first cycle so the table has data right away
        await self.refresh_all(manual=True)
        self._task = asyncio.create_task(self._poll_loop(), name="market-aggregator")
        logger.info(
            "Aggregator started: %d symbols, %.1fs interval",
            len(self._watchlist),
            self._interval,
        )

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Aggregator stopped")

    async def refresh_all(self, manual: bool = False) -> bool:
        """Run one refresh cycle. Returns False if skipped for the cooldown."""
        if not manual and self.in_cooldown:
            logger.debug("Skipping automatic refresh: rate-limit cooldown active")
            return False

        await self._fx.refresh()
        entries = list(self._watchlist)
        errors = await asyncio.gather(*(self.update_one(entry) for entry in entries))

        if any(isinstance(e, RateLimitError) for e in errors):
            self._start_cooldown()
        failed = sum(1 for e in errors if e is not None)
        logger.debug("Refresh cycle: %d/%d symbols updated", len(entries) - failed, len(entries))
        return True

    async def update_one(self, entry: WatchEntry) -> Exception | None:
        """Refresh one symbol. Returns the error that stopped it, if any."""
        symbol = entry.symbol
        try:
            await self._fetch_into(symbol, self._provider, symbol)
            return None
        except RateLimitError as e:
            logger.warning("Rate limited while refreshing %s", symbol)
            return e
        except EntitlementError as e:
            if self._provider.id != "finnhub" or self._fallback is None:
                self._report(symbol, e)
                return e
            alt = to_venue_symbol(symbol)
            logger.info("%s not entitled on %s; retrying as %s on %s", symbol, self._provider.name, alt, self._fallback.name)
            try:
                await self._fetch_into(symbol, self._fallback, alt)
                return None
            except RateLimitError as e2:
                return e2
            except Exception as e2:
                self._report(symbol, e2)
                return e2
        except Exception as e:
            self._report(symbol, e)
            return e

    # --- Internal ---

    async def _poll_loop(self) -> None:
        """Refresh on interval. First cycle already happened in start()."""
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.refresh_all()
            except Exception:
                logger.exception("Refresh cycle failed")

    async def _fetch_into(self, symbol: str, provider: MarketDataProvider, upstream_symbol: str) -> None:
        # Let both requests settle before looking at either result
        quote, history = await asyncio.gather(
            provider.quote(upstream_symbol),
            provider.history(upstream_symbol),
            return_exceptions=True,
        )
        for result in (quote, history):
            if isinstance(result, BaseException):
                raise result

        existing = self._table.get(symbol)
        logo = existing.logo if existing and existing.logo else await self._logos.resolve(symbol)
        self._table.replace(symbol, MarketRecord.from_quote(quote, history, logo))

    def _start_cooldown(self) -> None:
        self._backoff_until = self._clock() + self._cooldown
        logger.warning("Rate limited; pausing automatic refresh for %.0fs", self._cooldown)
        self._notify(RATE_LIMIT_NOTICE.format(seconds=self._cooldown), "warning")

    def _report(self, symbol: str, error: Exception) -> None:
        logger.warning("Refresh failed for %s: %s", symbol, error)
        self._notify(f"Failed: {symbol} ({error})", "error")
