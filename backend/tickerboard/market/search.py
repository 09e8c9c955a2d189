"""Debounced, cancel-on-keystroke symbol search."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .interface import MarketDataProvider
from .models import SearchResult

logger = logging.getLogger(__name__)


class SearchController:
    """Holds the suggestion list for the search box.

    Each submitted query waits `debounce` seconds and then asks the active
    provider. Submitting a new query cancels the previous one, whether it is
    still debouncing or already in flight, so only the newest query can ever
    update `suggestions`. Cancellation is not an error and is not reported.
    """

    def __init__(self, provider: Callable[[], MarketDataProvider], debounce: float = 0.2) -> None:
        self._provider = provider
        self._debounce = debounce
        self._task: asyncio.Task | None = None
        self.suggestions: list[SearchResult] = []

    def submit(self, query: str) -> asyncio.Task:
        """Start a search for `query`, superseding any pending one."""
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._run(query.strip()), name="symbol-search")
        return self._task

    async def search(self, query: str) -> list[SearchResult] | None:
        """Submit and wait. Returns None if a newer query superseded this one."""
        task = self.submit(query)
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return self.suggestions

    async def _run(self, query: str) -> None:
        await asyncio.sleep(self._debounce)
        if not query:
            self.suggestions = []
            return
        try:
            results = await self._provider().search(query)
        except Exception as e:
            logger.error("Search failed for %r: %s", query, e)
            results = []
        self.suggestions = results
