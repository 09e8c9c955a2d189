"""Symbol classification and cross-venue remapping rules."""

from __future__ import annotations

import re
from enum import Enum

# Regional ticker suffix -> venue tag used by Twelve Data
VENUE_SUFFIXES: dict[str, str] = {
    "DE": "XETRA",
    "F": "FRA",
    "L": "LSE",
    "HK": "HKEX",
    "SZ": "SZSE",
    "SS": "SSE",
}

# Pairs on a retail venue that go quiet on Finnhub's candle feed -> Binance equivalents
CRYPTO_FALLBACKS: dict[tuple[str, str], str] = {
    ("COINBASE", "BTC-USD"): "BINANCE:BTCUSDT",
    ("COINBASE", "ETH-USD"): "BINANCE:ETHUSDT",
}

_SUFFIX_RE = re.compile(r"\.(DE|F|L|HK|SZ|SS)$", re.IGNORECASE)
_VENUE_PAIR_RE = re.compile(r"^([A-Z0-9_]+):([A-Z0-9-]+)$", re.IGNORECASE)

FOREX_PREFIX = "OANDA:"


class InstrumentClass(str, Enum):
    FOREX = "forex"
    CRYPTO = "crypto"
    EQUITY = "equity"


def classify(symbol: str) -> InstrumentClass:
    """Instrument class of a Finnhub-style symbol.

    OANDA-qualified symbols are forex, any other venue-qualified symbol is
    crypto, and plain tickers are equities or ETFs.
    """
    if symbol.startswith(FOREX_PREFIX):
        return InstrumentClass.FOREX
    if ":" in symbol:
        return InstrumentClass.CRYPTO
    return InstrumentClass.EQUITY


def to_venue_symbol(symbol: str) -> str:
    """Map a dotted regional ticker to its venue-qualified form.

    `SAP.DE` -> `SAP:XETRA`. Symbols without a known suffix come back as-is.
    """
    m = _SUFFIX_RE.search(symbol)
    if not m:
        return symbol
    venue = VENUE_SUFFIXES[m.group(1).upper()]
    return f"{symbol[: m.start()]}:{venue}"


def crypto_fallback(symbol: str) -> str | None:
    """Alternate high-liquidity venue symbol for a known crypto pair, else None."""
    m = _VENUE_PAIR_RE.match(symbol)
    if not m:
        return None
    return CRYPTO_FALLBACKS.get((m.group(1).upper(), m.group(2).upper()))
