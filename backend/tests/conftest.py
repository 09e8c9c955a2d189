"""Pytest configuration and fixtures."""

import asyncio

import pytest

from tickerboard.config import Settings


@pytest.fixture(scope="session")
def event_loop_policy():
    """Use the default event loop policy for all async tests."""
    return asyncio.DefaultEventLoopPolicy()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        provider="twelvedata",
        api_key="test-key",
        refresh_interval=3600.0,
        search_debounce=0.0,
        ws_reconnect_delay=0.01,
    )
