"""SSE streaming endpoint for the market table."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Callable

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from .cache import MarketTable

logger = logging.getLogger(__name__)

Snapshot = Callable[[], dict]


def create_stream_router(table: MarketTable, snapshot: Snapshot) -> APIRouter:
    """Create the SSE streaming router.

    `snapshot` renders the current table (with display preferences applied);
    it is called only when the table version changed.
    """
    router = APIRouter(prefix="/api/stream", tags=["streaming"])

    @router.get("/market")
    async def stream_market(request: Request) -> StreamingResponse:
        """SSE endpoint for live market records.

        Emits the full snapshot whenever polling or a live tick changed the
        table:

            data: {"AAPL": {"last": 190.5, "change_percent": 0.26, ...}, ...}
        """
        return StreamingResponse(
            _generate_events(table, snapshot, request),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",  # Disable nginx buffering if proxied
            },
        )

    return router


async def _generate_events(
    table: MarketTable,
    snapshot: Snapshot,
    request: Request,
    interval: float = 0.5,
) -> AsyncGenerator[str, None]:
    """Yield SSE-formatted snapshots until the client disconnects."""
    # Tell the client to retry after 1 second if the connection drops
    yield "retry: 1000\n\n"

    last_version = -1
    client_ip = request.client.host if request.client else "unknown"
    logger.info("SSE client connected: %s", client_ip)

    try:
        while True:
            if await request.is_disconnected():
                logger.info("SSE client disconnected: %s", client_ip)
                break

            current_version = table.version
            if current_version != last_version:
                last_version = current_version
                data = snapshot()
                if data:
                    yield f"data: {json.dumps(data)}\n\n"

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.info("SSE stream cancelled for: %s", client_ip)
