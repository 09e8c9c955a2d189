"""Resilient JSON fetching: response classification and retry with backoff."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import httpx

from .errors import (
    PayloadError,
    RateLimitError,
    TransportError,
    upstream_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TRIES = 3
DEFAULT_DELAYS: tuple[float, ...] = (0.25, 0.6, 1.2)
FALLBACK_DELAY = 1.2

REQUEST_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-store",
}


def _looks_like_html(content_type: str, body: str) -> bool:
    return "text/html" in content_type or body.lstrip().startswith("<")


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    params: dict[str, Any] | None = None,
) -> Any:
    """GET `url` and return the decoded JSON body.

    Raises:
        RateLimitError: HTTP 429.
        TransportError: any other error status, or an HTML page.
        EntitlementError / UpstreamError: error status with a JSON error body.
        PayloadError: a success status whose body is not JSON.
    """
    resp = await client.get(url, params=params, headers=REQUEST_HEADERS)
    content_type = resp.headers.get("content-type", "")

    if resp.is_error:
        body = resp.text
        status = resp.status_code
        if status == 429:
            raise RateLimitError(f"HTTP {status}", status=status)
        if _looks_like_html(content_type, body):
            raise TransportError(f"HTTP {status} (HTML)", status=status, html=True)
        try:
            payload = json.loads(body)
        except ValueError:
            raise TransportError(f"HTTP {status}", status=status) from None
        message = None
        if isinstance(payload, dict):
            message = payload.get("error") or payload.get("message")
        if message:
            raise upstream_error(str(message), status=status)
        raise TransportError(f"HTTP {status}", status=status)

    if "application/json" not in content_type:
        body = resp.text
        if body.lstrip().startswith("<"):
            raise TransportError("HTML response", status=resp.status_code, html=True)
        try:
            return json.loads(body)
        except ValueError:
            raise PayloadError("Bad JSON", status=resp.status_code) from None

    try:
        return resp.json()
    except ValueError:
        raise PayloadError("Bad JSON", status=resp.status_code) from None


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    tries: int = DEFAULT_TRIES,
    delays: Sequence[float] = DEFAULT_DELAYS,
    fallback_delay: float = FALLBACK_DELAY,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    should_retry: Callable[[Exception], bool] | None = None,
) -> T:
    """Call `fn` up to `tries` times, sleeping between failed attempts.

    `asyncio.CancelledError` is never caught, so cancelling the caller aborts
    both the attempt in flight and any pending backoff. The error from the
    final attempt is the one raised. Errors rejected by `should_retry` are
    raised at once.
    """
    if tries < 1:
        raise ValueError(f"tries must be at least 1, got {tries}")
    last_error: Exception | None = None
    for attempt in range(tries):
        try:
            return await fn()
        except Exception as e:
            if should_retry is not None and not should_retry(e):
                raise
            last_error = e
            if attempt < tries - 1:
                delay = delays[attempt] if attempt < len(delays) else fallback_delay
                logger.debug("Attempt %d/%d failed (%s); retrying in %.2fs", attempt + 1, tries, e, delay)
                await sleep(delay)
    raise last_error
