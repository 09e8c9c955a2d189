"""Market data subsystem for Tickerboard.

Public API:
    Quote, HistoryPoint, MarketRecord - Canonical data model
    MarketTable          - Shared in-memory table of MarketRecords
    MarketDataProvider   - Abstract interface for upstream providers
    create_provider      - Factory that selects Finnhub or Twelve Data
    MarketAggregator     - Polling orchestrator with fallback and cooldown
    LiveTickStream       - Finnhub trade stream merged into the table
    SearchController     - Debounced, cancel-on-keystroke search
    create_stream_router - FastAPI router factory for SSE endpoint
"""

from .aggregator import MarketAggregator
from .cache import MarketTable
from .factory import create_provider
from .interface import MarketDataProvider
from .live import LiveTickStream
from .models import HistoryPoint, MarketRecord, Quote
from .search import SearchController
from .stream import create_stream_router

__all__ = [
    "Quote",
    "HistoryPoint",
    "MarketRecord",
    "MarketTable",
    "MarketDataProvider",
    "create_provider",
    "MarketAggregator",
    "LiveTickStream",
    "SearchController",
    "create_stream_router",
]
