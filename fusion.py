# fusion.py
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional

log = logging.getLogger("fusion")

Fetcher = Callable[[str], Awaitable[Any]]


@dataclass
class FetchBundle:
    """Raw per-ticker payloads; every list is positionally aligned to `tickers`."""

    tickers: List[str]
    profiles: List[Optional[dict]]
    key_metrics: List[Optional[dict]]
    ratios: List[Optional[dict]]
    income: List[Optional[list]]
    segments: List[Optional[dict]]


async def _guarded(label: str, symbol: str, fetch: Fetcher) -> Optional[Any]:
    try:
        return await fetch(symbol)
    except Exception as e:
        log.warning("%s fetch degraded for %s: %s", label, symbol, e)
        return None


async def fetch_category(label: str, tickers: List[str], fetch: Fetcher) -> List[Optional[Any]]:
    # gather keeps input order, and _guarded never raises
    return list(await asyncio.gather(*(_guarded(label, sym, fetch) for sym in tickers)))


async def fetch_universe(fmp, tickers: List[str]) -> FetchBundle:
    log.info("Fetching data for %d companies: %s", len(tickers), ", ".join(tickers))
    profiles, key_metrics, ratios, income, segments = await asyncio.gather(
        fetch_category("profile", tickers, fmp.get_profile),
        fetch_category("key-metrics", tickers, fmp.get_key_metrics_ttm),
        fetch_category("ratios", tickers, fmp.get_ratios_ttm),
        fetch_category("income-statement", tickers, fmp.get_income_statements),
        fetch_category("segmentation", tickers, fmp.get_revenue_segmentation),
    )
    return FetchBundle(list(tickers), profiles, key_metrics, ratios, income, segments)
