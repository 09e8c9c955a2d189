"""HTTP surface for the dashboard.

Run with:
    uvicorn tickerboard.main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from .config import get_settings
from .dashboard import Dashboard
from .market.stream import create_stream_router

logging.basicConfig(level=logging.INFO)

logger = logging.getLogger(__name__)


class WatchEntryIn(BaseModel):
    symbol: str
    name: str = ""
    type: str = ""


class SettingsIn(BaseModel):
    provider: str | None = None
    api_key: str | None = None
    prefer_eur: bool | None = None
    view_mode: str | None = None


def create_app(dashboard: Dashboard | None = None) -> FastAPI:
    dash = dashboard or Dashboard(get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await dash.start()
        logger.info("Dashboard started with %d watched symbols", len(dash.watchlist))
        yield
        await dash.stop()

    app = FastAPI(title="Tickerboard API", version="0.1.0", lifespan=lifespan)
    app.state.dashboard = dash
    app.include_router(create_stream_router(dash.table, dash.snapshot))

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "provider": dash.provider.id, "live": dash.live.state.value}

    @app.get("/api/watchlist")
    async def get_watchlist():
        return {
            "entries": dash.watchlist.to_list(),
            "records": dash.snapshot(),
            "usd_eur": dash.fx.usd_eur,
            "prefs": dash.prefs.to_dict(),
        }

    @app.post("/api/watchlist")
    async def add_to_watchlist(entry: WatchEntryIn):
        if not entry.symbol.strip():
            raise HTTPException(status_code=422, detail="symbol must not be empty")
        added = await dash.add_symbol(entry.symbol, entry.name, entry.type)
        return {"added": added, "entries": dash.watchlist.to_list()}

    @app.delete("/api/watchlist/{symbol:path}")
    async def remove_from_watchlist(symbol: str):
        if not await dash.remove_symbol(symbol):
            raise HTTPException(status_code=404, detail=f"{symbol} is not watched")
        return {"removed": symbol, "entries": dash.watchlist.to_list()}

    @app.get("/api/search")
    async def search(q: str = Query("", max_length=64)):
        results = await dash.search.search(q)
        if results is None:
            # Superseded by a newer query
            return {"query": q, "superseded": True, "results": []}
        return {"query": q, "superseded": False, "results": [r.to_dict() for r in results]}

    @app.post("/api/refresh")
    async def refresh():
        await dash.refresh()
        return {"records": dash.snapshot()}

    @app.put("/api/settings")
    async def update_settings(body: SettingsIn):
        try:
            await dash.update_settings(
                provider=body.provider,
                api_key=body.api_key,
                prefer_eur=body.prefer_eur,
                view_mode=body.view_mode,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from None
        return dash.prefs.to_dict()

    @app.get("/api/notices")
    async def notices():
        return {"notices": [n.to_dict() for n in dash.notifier.notices]}

    return app
