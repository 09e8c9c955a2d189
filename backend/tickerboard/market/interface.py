"""Abstract interface for market data providers."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from .models import HistoryPoint, Quote, SearchResult

MAX_SEARCH_RESULTS = 10

_GOLD_RE = re.compile(r"^xau|gold", re.IGNORECASE)


class MarketDataProvider(ABC):
    """Contract for upstream quote/history/search providers.

    Implementations normalize one upstream API into the canonical Quote,
    HistoryPoint and SearchResult shapes. Exactly one provider is active at a
    time; the aggregator picks it from configuration.

    Usage:
        provider = create_provider("finnhub", api_key, client)
        hits = await provider.search("AAPL")
        quote = await provider.quote("AAPL")
        history = await provider.history("AAPL")
    """

    #: Configuration id, e.g. "finnhub"
    id: str = ""
    #: Human-readable name
    name: str = ""
    #: Symbol this provider uses for spot gold
    gold_symbol: str = ""

    def __init__(self, api_key: str) -> None:
        self._api_key = (api_key or "").strip()

    @property
    def has_credential(self) -> bool:
        return bool(self._api_key)

    @abstractmethod
    async def search(self, query: str) -> list[SearchResult]:
        """Search upstream for symbols matching `query`.

        Returns [] for an empty query or when no credential is configured.
        Transport and parse errors propagate to the caller.
        """

    @abstractmethod
    async def quote(self, symbol: str) -> Quote:
        """Fetch the latest quote. Raises MissingCredentialError without a key."""

    @abstractmethod
    async def history(self, symbol: str) -> list[HistoryPoint]:
        """Fetch a bounded recent window, sorted ascending by time.

        An upstream "no data" answer yields [], not an error.
        """

    # --- Shared helpers ---

    def _gold_result(self) -> SearchResult:
        return SearchResult(
            symbol=self.gold_symbol,
            name="Gold Spot",
            type="forex",
            display=f"{self.gold_symbol} — Gold Spot",
        )

    def _finalize_search(self, query: str, items: list[SearchResult]) -> list[SearchResult]:
        """Rank, apply the gold synonym, dedupe by symbol and cap the list.

        Ranking: exact match, then prefix, then substring, then the rest.
        Python's sort is stable so ties keep upstream order. The synthetic
        gold result always leads, since neither upstream index surfaces it.
        """
        needle = query.strip().upper()

        def rank(item: SearchResult) -> int:
            sym = item.symbol.upper()
            if sym == needle:
                return 0
            if sym.startswith(needle):
                return 1
            if needle in sym:
                return 2
            return 3

        ranked = sorted(items, key=rank)
        if _GOLD_RE.search(query):
            ranked.insert(0, self._gold_result())
        seen: set[str] = set()
        out: list[SearchResult] = []
        for item in ranked:
            if item.symbol in seen:
                continue
            seen.add(item.symbol)
            out.append(item)
            if len(out) >= MAX_SEARCH_RESULTS:
                break
        return out
