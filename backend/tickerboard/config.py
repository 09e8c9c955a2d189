from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Active provider and its credential
    provider: Literal["finnhub", "twelvedata"] = "finnhub"
    api_key: str = ""
    # Credential for the Twelve Data entitlement fallback; empty -> reuse api_key
    twelvedata_api_key: str = ""

    # Polling (seconds)
    refresh_interval: float = 30.0
    rate_limit_cooldown: float = 60.0
    request_timeout: float = 10.0

    # Search / streaming (seconds)
    search_debounce: float = 0.2
    ws_reconnect_delay: float = 3.0
    ws_url: str = "wss://ws.finnhub.io"

    fx_rate_url: str = "https://api.exchangerate.host/latest?base=USD&symbols=EUR"
    default_usd_eur: float = 0.9

    # Display defaults until the user stores their own
    prefer_eur: bool = True
    view_mode: Literal["grid", "list"] = "grid"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="TICKERBOARD_")


@lru_cache
def get_settings() -> Settings:
    return Settings()
