"""Persisted, ordered, duplicate-free watchlist."""

from __future__ import annotations

import logging

from .market.models import WatchEntry
from .store import WATCHLIST_KEY, KeyValueStore

logger = logging.getLogger(__name__)


def default_entries(provider: str) -> list[WatchEntry]:
    """Starter watchlist for a first session; gold uses the provider's convention."""
    gold = "XAU/USD" if provider == "twelvedata" else "OANDA:XAU_USD"
    return [
        WatchEntry("AAPL", "Apple Inc.", "stock"),
        WatchEntry("BINANCE:BTCUSDT", "Bitcoin", "crypto"),
        WatchEntry(gold, "Gold Spot", "forex"),
        WatchEntry("MSFT", "Microsoft", "stock"),
    ]


class Watchlist:
    """Newest-first sequence of WatchEntry, unique by symbol.

    Every mutation is written through to the KeyValueStore.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._entries: list[WatchEntry] = []
        for raw in store.get(WATCHLIST_KEY) or []:
            try:
                entry = WatchEntry.from_dict(raw)
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed watchlist entry %r: %s", raw, e)
                continue
            if entry.symbol not in self:
                self._entries.append(entry)

    def add(self, symbol: str, name: str = "", type: str = "") -> bool:
        """Insert at the front. Returns False (and changes nothing) if already present."""
        symbol = symbol.strip()
        if not symbol or symbol in self:
            return False
        self._entries.insert(0, WatchEntry(symbol, name, type))
        self._save()
        logger.info("Watchlist: added %s", symbol)
        return True

    def remove(self, symbol: str) -> bool:
        """Remove `symbol`. Returns False if it wasn't watched."""
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.symbol != symbol]
        if len(self._entries) == before:
            return False
        self._save()
        logger.info("Watchlist: removed %s", symbol)
        return True

    def seed_defaults(self, provider: str) -> None:
        """Install the starter entries when the list is empty."""
        if self._entries:
            return
        self._entries = default_entries(provider)
        self._save()

    def symbols(self) -> list[str]:
        return [e.symbol for e in self._entries]

    def to_list(self) -> list[dict]:
        return [e.to_dict() for e in self._entries]

    def _save(self) -> None:
        self._store.set(WATCHLIST_KEY, self.to_list())

    def __iter__(self):
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, symbol: str) -> bool:
        return any(e.symbol == symbol for e in self._entries)
