"""Data models for market data."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any

USD = "USD"


def now_ms() -> int:
    """Current wall-clock time in Unix milliseconds."""
    return int(time.time() * 1000)


def coerce_float(value: Any) -> float | None:
    """Coerce an untyped upstream value to a float.

    Returns None for missing, unparseable, NaN or infinite values so callers
    can treat them as absent instead of propagating garbage.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def percent_change(last: float | None, prev_close: float | None) -> float | None:
    """Percent change of last vs prev_close, or None when it can't be computed."""
    if last is None or not prev_close:
        return None
    return round((last - prev_close) / prev_close * 100, 4)


@dataclass(frozen=True, slots=True)
class WatchEntry:
    """One instrument on the user's watchlist."""

    symbol: str
    name: str = ""
    type: str = ""  # stock | etf | forex | crypto | ""

    def to_dict(self) -> dict:
        return {"symbol": self.symbol, "name": self.name, "type": self.type}

    @classmethod
    def from_dict(cls, raw: dict) -> WatchEntry:
        return cls(
            symbol=str(raw["symbol"]),
            name=str(raw.get("name") or ""),
            type=str(raw.get("type") or ""),
        )


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A symbol-search hit, normalized across providers."""

    symbol: str
    name: str
    type: str
    display: str

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "type": self.type,
            "display": self.display,
        }


@dataclass(frozen=True, slots=True)
class HistoryPoint:
    """A single price sample. `t` is Unix milliseconds."""

    t: int
    p: float


@dataclass(frozen=True, slots=True)
class Quote:
    """Most recent known price point for a symbol."""

    last: float | None
    prev_close: float | None
    t: int = field(default_factory=now_ms)  # Unix milliseconds
    ccy: str = USD

    @property
    def change_percent(self) -> float | None:
        return percent_change(self.last, self.prev_close)


@dataclass(slots=True)
class MarketRecord:
    """Per-symbol aggregate read by the renderer.

    Replaced wholesale by each successful poll, then mutated field by field
    by live ticks until the next poll.
    """

    last: float | None
    prev_close: float | None
    t: int
    ccy: str = USD
    history: list[HistoryPoint] = field(default_factory=list)
    logo: str | None = None

    @classmethod
    def from_quote(
        cls,
        quote: Quote,
        history: list[HistoryPoint],
        logo: str | None = None,
    ) -> MarketRecord:
        return cls(
            last=quote.last,
            prev_close=quote.prev_close,
            t=quote.t,
            ccy=quote.ccy,
            history=list(history),
            logo=logo,
        )

    @property
    def change_percent(self) -> float | None:
        return percent_change(self.last, self.prev_close)

    @property
    def direction(self) -> str:
        """'up', 'down', or 'flat'."""
        pct = self.change_percent
        if pct is None or pct == 0:
            return "flat"
        return "up" if pct > 0 else "down"

    def to_dict(self, usd_eur: float | None = None) -> dict:
        """Serialize for JSON / SSE transmission.

        When `usd_eur` is given, USD-denominated prices are converted to EUR
        for display. Other currencies are passed through untouched.
        """
        convert = usd_eur is not None and (self.ccy or USD) == USD
        rate = usd_eur if convert else 1.0

        def scaled(value: float | None) -> float | None:
            return None if value is None else round(value * rate, 4)

        return {
            "last": scaled(self.last),
            "prev_close": scaled(self.prev_close),
            "t": self.t,
            "ccy": "EUR" if convert else self.ccy,
            "change_percent": self.change_percent,
            "direction": self.direction,
            "history": [{"t": pt.t, "p": scaled(pt.p)} for pt in self.history],
            "logo": self.logo,
        }
