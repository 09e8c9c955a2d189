"""In-memory market data table."""

from __future__ import annotations

from threading import Lock

from .models import MarketRecord


class MarketTable:
    """In-memory table of the latest MarketRecord for each symbol.

    Writers: MarketAggregator (whole-record replace per poll) and
    LiveTickStream (field-level mutation between polls).
    Readers: SSE streaming endpoint, REST snapshot endpoint.

    Everything runs on one event loop, so the lock only matters for readers
    on other threads (e.g. sync FastAPI handlers run in the threadpool).
    """

    def __init__(self) -> None:
        self._records: dict[str, MarketRecord] = {}
        self._lock = Lock()
        self._version: int = 0  # Monotonically increasing; bumped on every mutation

    def replace(self, symbol: str, record: MarketRecord) -> MarketRecord:
        """Install a freshly polled record for `symbol`, discarding the old one."""
        with self._lock:
            self._records[symbol] = record
            self._version += 1
            return record

    def get(self, symbol: str) -> MarketRecord | None:
        """The live record for `symbol`, or None if unknown.

        The returned object is shared; live ticks mutate it in place.
        """
        with self._lock:
            return self._records.get(symbol)

    def get_all(self) -> dict[str, MarketRecord]:
        """Snapshot of all current records. Returns a shallow copy."""
        with self._lock:
            return dict(self._records)

    def remove(self, symbol: str) -> None:
        """Drop a symbol (e.g., when removed from the watchlist)."""
        with self._lock:
            if self._records.pop(symbol, None) is not None:
                self._version += 1

    def touch(self) -> None:
        """Bump the version after records were mutated in place."""
        with self._lock:
            self._version += 1

    @property
    def version(self) -> int:
        """Current version counter. Useful for SSE change detection."""
        return self._version

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._records
