# peers.py
"""
Peer discovery.

Strategies are tried in order and the first one that returns any tickers wins;
later strategies never run. Each strategy swallows its own upstream failures
so a broken source only means "no contribution".
"""
import asyncio
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence

from config import ScreenConfig
from fmp_client import FMPClient, UpstreamError
from llm_client import TextGenerator
from peer_store import PeerStore
from symbols import base_symbol

log = logging.getLogger("peers")

# Known-good peer sets used when the screens come back empty
FALLBACK_PEERS = {
    "NVDA": ["AMD", "INTC", "AVGO", "QCOM", "MRVL", "MU", "TSM", "ASML"],
    "AAPL": ["MSFT", "GOOGL", "META", "AMZN", "SONY", "DELL", "HPQ", "LOGI"],
    "MSFT": ["GOOGL", "AAPL", "AMZN", "META", "ORCL", "CRM", "ADBE", "IBM"],
    "TSLA": ["GM", "F", "RIVN", "LCID", "NIO", "XPEV", "LI", "TM"],
    "AMZN": ["WMT", "TGT", "COST", "EBAY", "SHOP", "BABA", "JD", "PDD"],
}


def _is_ticker(value: Any, subject: str) -> bool:
    return isinstance(value, str) and 0 < len(value.strip()) <= 5 and value.strip().upper() != subject.upper()


def _dedupe(peers: Iterable[str], subject: str) -> List[str]:
    out: List[str] = []
    for p in peers:
        sym = p.strip().upper()
        if sym and sym != subject.upper() and sym not in out:
            out.append(sym)
    return out


class PeerContext:
    """Per-request inputs shared by the strategies; memoizes the subject's profile."""

    def __init__(self, subject: str, fmp: FMPClient, llm: TextGenerator):
        self.subject = subject
        self.fmp = fmp
        self.llm = llm
        self._profile: Optional[Dict[str, Any]] = None
        self._profile_loaded = False

    async def subject_profile(self) -> Optional[Dict[str, Any]]:
        if not self._profile_loaded:
            self._profile_loaded = True
            try:
                self._profile = await self.fmp.get_profile(self.subject)
            except UpstreamError as e:
                log.warning("profile lookup failed for %s: %s", self.subject, e)
        return self._profile


class PeerStrategy:
    name = "base"

    async def attempt(self, ctx: PeerContext) -> Optional[List[str]]:
        raise NotImplementedError


class PreferredPeersStrategy(PeerStrategy):
    name = "preferred"

    def __init__(self, preferred: Sequence[str]):
        self.preferred = list(preferred)

    async def attempt(self, ctx: PeerContext) -> Optional[List[str]]:
        return list(self.preferred) or None


class StoredPeersStrategy(PeerStrategy):
    name = "stored"

    def __init__(self, store: Optional[PeerStore]):
        self.store = store

    async def attempt(self, ctx: PeerContext) -> Optional[List[str]]:
        if self.store is None:
            return None
        try:
            stored = await asyncio.to_thread(self.store.get_peers, ctx.subject)
        except Exception as e:
            log.warning("stored peer lookup failed for %s: %s", ctx.subject, e)
            return None
        return list(stored.peers) if stored and stored.peers else None


class VendorPeersStrategy(PeerStrategy):
    name = "vendor"

    def __init__(self, limit: int = 10):
        self.limit = limit

    async def attempt(self, ctx: PeerContext) -> Optional[List[str]]:
        try:
            peers = await ctx.fmp.get_stock_peers(ctx.subject)
        except UpstreamError as e:
            log.warning("stock_peers endpoint failed for %s: %s", ctx.subject, e)
            return None
        # Drop other listings of the subject itself (TRMD vs TRMD-A.CO)
        subject_base = base_symbol(ctx.subject).upper()
        peers = [p for p in peers if base_symbol(p).upper() != subject_base]
        return peers[: self.limit] or None


class ScreenerStrategy(PeerStrategy):
    """Industry screen, topped up from a sector screen, ranked by log market-cap distance."""

    name = "screener"

    def __init__(self, config: ScreenConfig):
        self.config = config

    async def _screen(self, ctx: PeerContext, market_cap: float, window, min_volume: int,
                      skip: Sequence[str], keep: int, **filters) -> List[str]:
        try:
            rows = await ctx.fmp.screen(marketCapMoreThan=self.config.market_cap_floor, **filters)
        except UpstreamError as e:
            log.warning("screen %s failed for %s: %s", filters, ctx.subject, e)
            return []
        lo, hi = market_cap * window[0], market_cap * window[1]
        candidates = []
        for row in rows:
            sym = row.get("symbol")
            cap = _num(row.get("marketCap"))
            if not sym or sym == ctx.subject or sym in skip:
                continue
            if not (lo < cap < hi) or _num(row.get("volume")) <= min_volume:
                continue
            candidates.append((abs(math.log(cap / market_cap)), sym))
        candidates.sort(key=lambda c: c[0])
        return [sym for _, sym in candidates[:keep]]

    async def attempt(self, ctx: PeerContext) -> Optional[List[str]]:
        cfg = self.config
        peers: List[str] = []
        profile = await ctx.subject_profile()
        market_cap = _num((profile or {}).get("mktCap") or (profile or {}).get("marketCap"))
        if profile and market_cap > 0:
            industry, sector = profile.get("industry"), profile.get("sector")
            log.info("Finding peers for %s: sector=%s industry=%s marketCap=%s",
                     ctx.subject, sector, industry, market_cap)
            if industry:
                peers += await self._screen(
                    ctx, market_cap, cfg.industry_window, cfg.industry_min_volume, peers,
                    cfg.industry_keep, industry=industry, limit=cfg.industry_fetch_limit,
                )
            if len(peers) < cfg.sector_target and sector:
                peers += await self._screen(
                    ctx, market_cap, cfg.sector_window, cfg.sector_min_volume, peers,
                    cfg.sector_target - len(peers), sector=sector, limit=cfg.sector_fetch_limit,
                )
        if not peers and ctx.subject.upper() in FALLBACK_PEERS:
            peers = list(FALLBACK_PEERS[ctx.subject.upper()])
            log.info("Using fallback peers for %s", ctx.subject)
        return peers or None


class AIDiscoveryStrategy(PeerStrategy):
    name = "ai_discovery"

    SYSTEM = ("You are a financial analyst. Provide only valid stock ticker symbols traded "
              "on major exchanges. Respond with JSON only.")

    def __init__(self, limit: int = 8):
        self.limit = limit

    async def attempt(self, ctx: PeerContext) -> Optional[List[str]]:
        if not ctx.llm.available:
            return None
        profile = await ctx.subject_profile()
        name = (profile or {}).get("companyName") or ctx.subject
        prompt = (
            f"List the top 5-8 publicly traded competitors of {name} ({ctx.subject}). "
            "Consider companies with similar business models, target markets, and products/services. "
            "Only include companies traded on major US exchanges. "
            'Return ONLY ticker symbols in JSON format: {"peers": ["SYMBOL1", "SYMBOL2"]}'
        )
        data = await ctx.llm.complete_json(self.SYSTEM, prompt, max_tokens=100)
        found = (data or {}).get("peers")
        if not isinstance(found, list):
            return None
        peers = [s.strip().upper() for s in found if _is_ticker(s, ctx.subject)]
        return peers[: self.limit] or None


class PeerValidator:
    """Asks the text model to score, extend and prune an existing peer list."""

    SYSTEM = ("You are a financial analyst expert. Analyze competitor relationships based on "
              "business models, markets, and products. Always respond with valid JSON only.")

    def __init__(self, min_score: float = 5.0):
        self.min_score = min_score

    async def validate(self, ctx: PeerContext, peers: List[str]) -> List[str]:
        profile = await ctx.subject_profile() or {}
        name = profile.get("companyName") or ctx.subject
        space = profile.get("industry") or profile.get("sector") or "its industry"
        prompt = f"""Given {name} ({ctx.subject}) which operates in {space}, analyze these potential peer companies and:
1. Rank them by business similarity (1-10 scale)
2. Suggest any missing major competitors
3. Identify any that should be excluded

Current peers: {', '.join(peers)}

Provide response in JSON format:
{{
  "rankings": {{"SYMBOL": score}},
  "suggested": ["SYMBOL1", "SYMBOL2"],
  "exclude": ["SYMBOL3"]
}}"""
        data = await ctx.llm.complete_json(self.SYSTEM, prompt, max_tokens=200)
        if data is None:
            return peers

        refined = list(peers)
        rankings = data.get("rankings")
        if isinstance(rankings, dict):
            # Unranked peers score 0 and are dropped
            refined = [p for p in refined if _num(rankings.get(p)) >= self.min_score]
        suggested = data.get("suggested")
        if isinstance(suggested, list):
            for s in suggested:
                if _is_ticker(s, ctx.subject) and s.strip().upper() not in refined:
                    refined.append(s.strip().upper())
        exclude = data.get("exclude")
        if isinstance(exclude, list):
            dropped = {str(s).strip().upper() for s in exclude}
            refined = [p for p in refined if p not in dropped]
        log.info("Validated peers for %s: %s -> %s", ctx.subject, peers, refined)
        return refined


class PeerResolver:
    def __init__(self, strategies: Sequence[PeerStrategy], validator: Optional[PeerValidator] = None):
        self.strategies = list(strategies)
        self.validator = validator

    async def resolve(self, ctx: PeerContext, excluded: Iterable[str] = (),
                      validate: bool = False) -> List[str]:
        peers: List[str] = []
        for strategy in self.strategies:
            try:
                found = await strategy.attempt(ctx)
            except Exception as e:
                log.warning("peer strategy %s failed for %s: %s", strategy.name, ctx.subject, e)
                found = None
            if found:
                peers = _dedupe(found, ctx.subject)
                log.info("Found %d peers for %s via %s: %s", len(peers), ctx.subject, strategy.name, peers)
                break
        else:
            log.info("No peers found for %s", ctx.subject)

        excluded = {s.upper() for s in excluded}
        peers = [p for p in peers if p not in excluded]

        if validate and self.validator and ctx.llm.available and peers:
            peers = await self.validator.validate(ctx, peers)
        return peers


def build_resolver(preferred: Sequence[str], store: Optional[PeerStore], config: ScreenConfig) -> PeerResolver:
    return PeerResolver(
        [
            PreferredPeersStrategy(preferred),
            StoredPeersStrategy(store),
            VendorPeersStrategy(config.vendor_peer_limit),
            ScreenerStrategy(config),
            AIDiscoveryStrategy(config.ai_peer_limit),
        ],
        PeerValidator(config.validation_min_score),
    )


def _num(x: Any) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0
