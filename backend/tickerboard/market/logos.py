"""Logo URL lookup with a persisted per-symbol cache."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from urllib.parse import urlsplit

from ..store import LOGOS_KEY, KeyValueStore

logger = logging.getLogger(__name__)

LOGO_BY_DOMAIN_URL = "https://logo.clearbit.com/{domain}"

ProfileLookup = Callable[[str], Awaitable[dict]]


def logo_from_profile(profile: dict) -> str | None:
    """Direct logo URL, else one derived from the company website's domain."""
    logo = profile.get("logo")
    if logo:
        return str(logo)
    weburl = profile.get("weburl")
    if not weburl:
        return None
    domain = urlsplit(str(weburl)).hostname
    return LOGO_BY_DOMAIN_URL.format(domain=domain) if domain else None


class LogoResolver:
    """Resolves each symbol's logo at most once and remembers the answer.

    "No logo" and failed lookups are cached as None as well, so a symbol
    never costs more than one profile request.
    """

    def __init__(self, store: KeyValueStore, lookup: ProfileLookup | None = None) -> None:
        self._store = store
        self._lookup = lookup

    def cached(self, symbol: str) -> tuple[bool, str | None]:
        logos = self._store.get(LOGOS_KEY) or {}
        return symbol in logos, logos.get(symbol)

    async def resolve(self, symbol: str) -> str | None:
        known, logo = self.cached(symbol)
        if known or self._lookup is None:
            return logo
        try:
            logo = logo_from_profile(await self._lookup(symbol))
        except Exception as e:
            logger.debug("Logo lookup failed for %s: %s", symbol, e)
            logo = None
        logos = self._store.get(LOGOS_KEY) or {}
        logos[symbol] = logo
        self._store.set(LOGOS_KEY, logos)
        return logo
