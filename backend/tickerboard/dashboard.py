"""Application state: one object owning the watchlist, table and market components."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx
import websockets

from .config import Settings
from .market.aggregator import MarketAggregator
from .market.cache import MarketTable
from .market.factory import create_provider
from .market.finnhub import FinnhubProvider
from .market.fx import FxRateSource
from .market.interface import MarketDataProvider
from .market.live import LiveTickStream
from .market.logos import LogoResolver
from .market.notify import RecordingNotifier
from .market.search import SearchController
from .market.twelvedata import TwelveDataProvider
from .store import KeyValueStore, MemoryStore, Preferences
from .watchlist import Watchlist

logger = logging.getLogger(__name__)


class Dashboard:
    """Owns all process-wide mutable state and the tasks that mutate it.

    Lifecycle:
        dash = Dashboard(get_settings())
        await dash.start()       # first refresh, poll loop, live stream
        await dash.add_symbol("TSLA", "Tesla", "stock")
        await dash.stop()
    """

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore | None = None,
        client: httpx.AsyncClient | None = None,
        connect: Callable[[str], Any] = websockets.connect,
    ) -> None:
        self.settings = settings
        self.store = store if store is not None else MemoryStore()
        self.prefs = Preferences(self.store, settings)
        self.watchlist = Watchlist(self.store)
        self.watchlist.seed_defaults(self.prefs.provider)
        self.table = MarketTable()
        self.notifier = RecordingNotifier()

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.request_timeout)
        self.fx = FxRateSource(self.client, settings.fx_rate_url, settings.default_usd_eur)

        provider = create_provider(self.prefs.provider, self.prefs.api_key, self.client)
        self.aggregator = MarketAggregator(
            table=self.table,
            watchlist=self.watchlist,
            provider=provider,
            fx=self.fx,
            logos=self._logos_for(provider),
            fallback=self._fallback_for(provider),
            notifier=self.notifier,
            refresh_interval=settings.refresh_interval,
            cooldown=settings.rate_limit_cooldown,
        )
        self.live = LiveTickStream(
            table=self.table,
            watchlist=self.watchlist,
            api_key=self.prefs.api_key,
            url=settings.ws_url,
            reconnect_delay=settings.ws_reconnect_delay,
            connect=connect,
        )
        self.search = SearchController(lambda: self.aggregator.provider, settings.search_debounce)

    @property
    def provider(self) -> MarketDataProvider:
        return self.aggregator.provider

    async def start(self) -> None:
        await self.aggregator.start()
        if self.provider.id == FinnhubProvider.id:
            self.live.start()

    async def stop(self) -> None:
        await self.live.stop()
        await self.aggregator.stop()
        if self._owns_client:
            await self.client.aclose()

    async def add_symbol(self, symbol: str, name: str = "", type: str = "") -> bool:
        """Watch `symbol`. Returns False if it was already watched."""
        if not self.watchlist.add(symbol, name, type):
            return False
        await self.live.subscribe(symbol.strip())
        await self.aggregator.refresh_all(manual=True)
        return True

    async def remove_symbol(self, symbol: str) -> bool:
        if not self.watchlist.remove(symbol):
            return False
        self.table.remove(symbol)
        await self.live.unsubscribe(symbol)
        return True

    async def refresh(self) -> bool:
        """User-initiated refresh; runs even during a rate-limit cooldown."""
        return await self.aggregator.refresh_all(manual=True)

    async def update_settings(
        self,
        provider: str | None = None,
        api_key: str | None = None,
        prefer_eur: bool | None = None,
        view_mode: str | None = None,
    ) -> None:
        if prefer_eur is not None:
            self.prefs.prefer_eur = prefer_eur
        if view_mode is not None:
            self.prefs.view_mode = view_mode
        if provider is None and api_key is None:
            return

        new_provider_id = provider or self.prefs.provider
        new_key = self.prefs.api_key if api_key is None else api_key.strip()
        # Validates the id before anything is persisted
        active = create_provider(new_provider_id, new_key, self.client)
        self.prefs.provider = new_provider_id
        self.prefs.api_key = new_key

        self.aggregator.set_provider(active, self._logos_for(active), self._fallback_for(active))
        self.notifier(f"Saved provider: {active.name}")
        await self.live.reconfigure(active.id, new_key)
        if len(self.watchlist):
            await self.aggregator.refresh_all(manual=True)

    def snapshot(self) -> dict:
        """Market records in watchlist order, converted for display."""
        rate = self.fx.usd_eur if self.prefs.prefer_eur else None
        records = self.table.get_all()
        return {
            symbol: records[symbol].to_dict(usd_eur=rate)
            for symbol in self.watchlist.symbols()
            if symbol in records
        }

    # --- Internal ---

    def _logos_for(self, provider: MarketDataProvider) -> LogoResolver:
        lookup = provider.profile if isinstance(provider, FinnhubProvider) else None
        return LogoResolver(self.store, lookup)

    def _fallback_for(self, provider: MarketDataProvider) -> MarketDataProvider | None:
        if provider.id != FinnhubProvider.id:
            return None
        key = self.settings.twelvedata_api_key or self.prefs.api_key
        return TwelveDataProvider(key, self.client) if key else None
