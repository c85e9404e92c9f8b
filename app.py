# app.py
import asyncio
import logging
from typing import Optional

import httpx
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cache import MemoryCache, make_cache
from config import ConfigurationError, Settings
from models import StoredPeerList
from peer_store import PeerStore
from pipeline import CompetitorAnalysis, CompetitorQuery
from symbols import split_tickers

log = logging.getLogger("uvicorn.error")


def create_app(settings: Optional[Settings] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    app = FastAPI(title="Competitor Analysis API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    peer_store = PeerStore(settings.peer_db_path)
    app.state.settings = settings
    app.state.peer_store = peer_store
    app.state.analysis = CompetitorAnalysis(
        settings,
        response_cache=make_cache(settings.cache_backend, settings.db_path),
        description_cache=MemoryCache(),
        peer_store=peer_store,
        transport=transport,
    )

    @app.get("/api/health")
    def health():
        return {"ok": True}

    @app.get("/api/competitors")
    async def api_competitors(
        symbol: Optional[str] = Query(None, description="Ticker to analyze, e.g. NVDA or NVD.F"),
        additionalTickers: Optional[str] = Query(None, description="Comma-separated extra tickers"),
        preferredPeers: Optional[str] = Query(None, description="Comma-separated peers to use as-is"),
        excludePeers: Optional[str] = Query(None, description="Comma-separated peers to drop"),
        validatePeers: bool = Query(False),
    ):
        if not symbol or not symbol.strip():
            return JSONResponse(status_code=400, content={"error": "Symbol is required"})
        query = CompetitorQuery(
            symbol=symbol.strip(),
            additionalTickers=split_tickers(additionalTickers),
            preferredPeers=split_tickers(preferredPeers),
            excludePeers=split_tickers(excludePeers),
            validatePeers=validatePeers,
        )
        try:
            return await app.state.analysis.run(query)
        except ConfigurationError as e:
            return JSONResponse(status_code=500, content={"error": str(e)})
        except Exception as e:
            log.exception("competitor analysis failed for %s", symbol)
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to analyze competitors", "details": str(e) or type(e).__name__},
            )

    @app.get("/api/competitors/incremental")
    async def api_competitors_incremental(peer: Optional[str] = Query(None, description="Ticker to add")):
        if not peer or not peer.strip():
            return JSONResponse(status_code=400, content={"error": "peer is required"})
        try:
            return await app.state.analysis.peer_row(peer.strip().upper())
        except ConfigurationError as e:
            return JSONResponse(status_code=500, content={"error": str(e)})
        except Exception as e:
            log.exception("peer row failed for %s", peer)
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to fetch peer data", "details": str(e) or type(e).__name__},
            )

    @app.get("/api/competitors/manage")
    async def api_manage_list(limit: int = Query(100, ge=0), offset: int = Query(0, ge=0),
                              search: str = Query("")):
        try:
            rows, total = await asyncio.to_thread(peer_store.list_peers, limit, offset, search)
        except Exception as e:
            log.exception("peer list failed")
            return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})
        return {"competitors": rows, "total": total, "limit": limit, "offset": offset}

    @app.post("/api/competitors/manage")
    async def api_manage_upsert(body: StoredPeerList):
        if not body.symbol or not body.name or body.peers is None:
            return JSONResponse(status_code=400, content={"error": "Missing required fields"})
        try:
            row = await asyncio.to_thread(
                peer_store.set_peers, body.symbol, body.peers, body.name, body.sector, body.industry
            )
        except Exception as e:
            log.exception("peer upsert failed for %s", body.symbol)
            return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})
        log.info("Stored %d peers for %s", len(row["peers"]), row["symbol"])
        return {"competitor": row}

    @app.delete("/api/competitors/manage")
    async def api_manage_delete(symbol: Optional[str] = Query(None)):
        if not symbol:
            return JSONResponse(status_code=400, content={"error": "Symbol is required"})
        try:
            await asyncio.to_thread(peer_store.delete_peers, symbol.strip())
        except Exception as e:
            log.exception("peer delete failed for %s", symbol)
            return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})
        return {"message": "Competitor deleted successfully"}

    @app.get("/api/stock/peers")
    async def api_stock_peers(symbol: Optional[str] = Query(None)):
        if not symbol:
            return JSONResponse(status_code=400, content={"error": "Symbol is required"})
        try:
            stored = await asyncio.to_thread(peer_store.get_peers, symbol.strip().upper())
        except Exception as e:
            log.exception("peer lookup failed for %s", symbol)
            return JSONResponse(status_code=500, content={"error": "Internal server error", "details": str(e)})
        if not stored:
            return JSONResponse(status_code=404, content={"error": "No peer data found for symbol"})
        return {"peers": stored.peers}

    return app


app = create_app()
