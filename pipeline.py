# pipeline.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from cache import MemoryCache
from config import Settings
from enrichment import extract_segment_mixes, summarize_descriptions
from fmp_client import FMPClient
from fusion import fetch_universe
from llm_client import TextGenerator
from peer_store import PeerStore
from peers import PeerContext, build_resolver
from symbols import build_universe, normalize_symbol
from tables import assemble_peer_row, assemble_tables

log = logging.getLogger("pipeline")


class CompetitorQuery(BaseModel):
    symbol: str
    additionalTickers: List[str] = []
    preferredPeers: List[str] = []
    excludePeers: List[str] = []
    validatePeers: bool = False

    def cache_key(self) -> str:
        return ":".join([
            self.symbol,
            ",".join(self.additionalTickers),
            ",".join(self.preferredPeers),
            ",".join(self.excludePeers),
            str(self.validatePeers).lower(),
        ])


class CompetitorAnalysis:
    def __init__(self, settings: Settings, response_cache=None, description_cache=None,
                 peer_store: Optional[PeerStore] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.response_cache = response_cache if response_cache is not None else MemoryCache()
        self.description_cache = description_cache if description_cache is not None else MemoryCache()
        self.peer_store = peer_store
        self.transport = transport

    def _fmp(self) -> FMPClient:
        s = self.settings
        return FMPClient(s.require_fmp_key(), s.fmp_base_url, s.request_timeout, transport=self.transport)

    def _llm(self) -> TextGenerator:
        s = self.settings
        return TextGenerator(s.llm_api_key, s.llm_base_url, s.llm_model, s.llm_timeout, transport=self.transport)

    async def run(self, query: CompetitorQuery) -> Dict[str, Any]:
        self.settings.require_fmp_key()
        key = query.cache_key()
        # The sqlite backend blocks, so cache I/O stays off the event loop
        cached = await asyncio.to_thread(self.response_cache.get, key)
        if cached is not None:
            log.info("Returning cached data for %s", query.symbol)
            return cached

        canonical, display = normalize_symbol(query.symbol)
        async with self._fmp() as fmp, self._llm() as llm:
            ctx = PeerContext(canonical, fmp, llm)
            resolver = build_resolver(query.preferredPeers, self.peer_store, self.settings.screen)
            peers = await resolver.resolve(ctx, query.excludePeers, validate=query.validatePeers)
            universe = build_universe(canonical, peers, query.additionalTickers, query.excludePeers)

            bundle = await fetch_universe(fmp, universe)
            descriptions = await summarize_descriptions(
                llm, bundle.profiles, self.description_cache, self.settings.description_cache_ttl
            )
            tables = assemble_tables(bundle, canonical, descriptions)
            await extract_segment_mixes(llm, tables.qualitative, bundle.profiles)

        tables.restore_display_symbol(canonical, display)
        payload = tables.to_response()
        await asyncio.to_thread(self.response_cache.set, key, payload, self.settings.response_cache_ttl)
        return payload

    async def peer_row(self, symbol: str) -> Dict[str, Any]:
        """One peer's company entry and table rows, for adding a column to an existing analysis."""
        self.settings.require_fmp_key()
        canonical, display = normalize_symbol(symbol)
        async with self._fmp() as fmp, self._llm() as llm:
            bundle = await fetch_universe(fmp, [canonical])
            descriptions = await summarize_descriptions(
                llm, bundle.profiles, self.description_cache, self.settings.description_cache_ttl
            )
        return assemble_peer_row(bundle, descriptions, display)
