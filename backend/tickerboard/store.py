"""Key-value persistence seam for user state."""

from __future__ import annotations

import copy
from typing import Any, Protocol

from .config import Settings

WATCHLIST_KEY = "watchlist"
PREFER_EUR_KEY = "prefer_eur"
VIEW_MODE_KEY = "view_mode"
PROVIDER_KEY = "provider"
API_KEY_KEY = "api_key"
LOGOS_KEY = "logos"


class KeyValueStore(Protocol):
    """Anything that can get/set JSON-compatible values by key."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """Process-local KeyValueStore. Values are deep-copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class Preferences:
    """User preferences persisted in a KeyValueStore, defaulting to Settings."""

    def __init__(self, store: KeyValueStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings
        # Persist the effective provider/credential so later sessions see them
        self._store.set(PROVIDER_KEY, self.provider)
        self._store.set(API_KEY_KEY, self.api_key)

    @property
    def provider(self) -> str:
        return self._store.get(PROVIDER_KEY) or self._settings.provider

    @provider.setter
    def provider(self, value: str) -> None:
        self._store.set(PROVIDER_KEY, value)

    @property
    def api_key(self) -> str:
        stored = self._store.get(API_KEY_KEY)
        return (stored if stored is not None else self._settings.api_key).strip()

    @api_key.setter
    def api_key(self, value: str) -> None:
        self._store.set(API_KEY_KEY, (value or "").strip())

    @property
    def prefer_eur(self) -> bool:
        stored = self._store.get(PREFER_EUR_KEY)
        return self._settings.prefer_eur if stored is None else bool(stored)

    @prefer_eur.setter
    def prefer_eur(self, value: bool) -> None:
        self._store.set(PREFER_EUR_KEY, bool(value))

    @property
    def view_mode(self) -> str:
        return self._store.get(VIEW_MODE_KEY) or self._settings.view_mode

    @view_mode.setter
    def view_mode(self, value: str) -> None:
        self._store.set(VIEW_MODE_KEY, value)

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "has_api_key": bool(self.api_key),
            "prefer_eur": self.prefer_eur,
            "view_mode": self.view_mode,
        }
