"""Error taxonomy for upstream market data failures.

Every error carries a structured `kind` set at the point where the upstream
response is parsed, so callers branch on types rather than message text.
Caller-initiated cancellation is plain `asyncio.CancelledError` and is never
wrapped by anything in this module.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    PAYLOAD = "payload"
    UPSTREAM = "upstream"
    ENTITLEMENT = "entitlement"
    NO_DATA = "no_data"
    RATE_LIMIT = "rate_limit"
    CONFIG = "config"


class MarketDataError(Exception):
    """Base class for all market data failures."""

    kind: ErrorKind = ErrorKind.UPSTREAM

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class TransportError(MarketDataError):
    """Non-2xx response, or an HTML page where JSON was expected."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, message: str, status: int | None = None, html: bool = False) -> None:
        super().__init__(message, status)
        self.html = html


class RateLimitError(TransportError):
    """HTTP 429 from the upstream."""

    kind = ErrorKind.RATE_LIMIT


class PayloadError(MarketDataError):
    """Body could not be decoded as JSON."""

    kind = ErrorKind.PAYLOAD


class UpstreamError(MarketDataError):
    """The provider reported its own error status."""

    kind = ErrorKind.UPSTREAM


class EntitlementError(UpstreamError):
    """The credential's subscription tier lacks access to the endpoint or symbol."""

    kind = ErrorKind.ENTITLEMENT


class NoDataError(MarketDataError):
    """Valid request, empty result."""

    kind = ErrorKind.NO_DATA


class MissingCredentialError(MarketDataError):
    """The active provider has no credential configured."""

    kind = ErrorKind.CONFIG


_ENTITLEMENT_PHRASES = (
    "don't have access",
    "access to this resource",
    "not available with your plan",
    "upgrade your plan",
)


def is_entitlement_message(message: str) -> bool:
    """Whether an upstream error message denies access for the credential's tier."""
    lowered = message.lower()
    return any(phrase in lowered for phrase in _ENTITLEMENT_PHRASES)


def upstream_error(message: str, status: int | None = None) -> MarketDataError:
    """Build the right error for a provider-reported failure.

    An in-band 429 (Twelve Data answers HTTP 200 with `"code": 429`) is a
    RateLimitError, the same as a real HTTP 429.
    """
    if status == 429:
        return RateLimitError(message, status=status)
    if status == 403 or is_entitlement_message(message):
        return EntitlementError(message, status)
    return UpstreamError(message, status)
