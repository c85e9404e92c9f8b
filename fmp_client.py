# fmp_client.py
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from config import FMP_BASE
from symbols import base_symbol

log = logging.getLogger("fmp_client")


class UpstreamError(RuntimeError):
    pass


def _maybe_raise_fmp_error(data: Any, path: str):
    if isinstance(data, dict):
        msg = data.get("Error Message") or data.get("error")
        if msg:
            raise UpstreamError(f"FMP {path} error: {msg}")


def _first(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return None


def _has_segment_values(payload: Any) -> bool:
    if not isinstance(payload, list) or not payload:
        return False
    first = payload[0]
    if not isinstance(first, dict) or not first:
        return False
    inner = next(iter(first.values()))
    if not isinstance(inner, dict):
        return True
    return any(isinstance(v, (int, float)) or (isinstance(v, str) and any(c.isdigit() for c in v))
               for v in inner.values())


class FMPClient:
    """Thin async wrapper over the Financial Modeling Prep REST API."""

    def __init__(self, api_key: str, base_url: str = FMP_BASE, timeout: float = 12.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "FMPClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _fetch(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        query = dict(params or {})
        query["apikey"] = self.api_key
        try:
            r = await self._client.get(path, params=query)
        except httpx.HTTPError as e:
            raise UpstreamError(f"FMP {path} request failed: {e!r}") from e
        if r.status_code != 200:
            raise UpstreamError(f"FMP {path} HTTP {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError(f"FMP {path} returned malformed JSON") from e
        _maybe_raise_fmp_error(data, path)
        return data

    async def get_profile(self, symbol: str) -> Optional[Dict[str, Any]]:
        return _first(await self._fetch(f"/api/v3/profile/{symbol}"))

    async def get_stock_peers(self, symbol: str) -> List[str]:
        # Returns [{"symbol": ..., "peersList": [...]}]
        first = _first(await self._fetch("/api/v4/stock_peers", {"symbol": symbol}))
        peers = (first or {}).get("peersList") or []
        return [p for p in peers if isinstance(p, str) and p]

    async def screen(self, **filters: Any) -> List[Dict[str, Any]]:
        data = await self._fetch("/api/v3/stock-screener", filters)
        if not isinstance(data, list):
            raise UpstreamError("FMP stock-screener returned a non-list payload")
        return [row for row in data if isinstance(row, dict)]

    async def get_key_metrics_ttm(self, symbol: str) -> Optional[Dict[str, Any]]:
        return _first(await self._fetch(f"/api/v3/key-metrics-ttm/{symbol}"))

    async def get_ratios_ttm(self, symbol: str) -> Optional[Dict[str, Any]]:
        return _first(await self._fetch(f"/api/v3/ratios-ttm/{symbol}"))

    async def get_income_statements(self, symbol: str, limit: int = 2) -> List[Dict[str, Any]]:
        data = await self._fetch(f"/api/v3/income-statement/{symbol}", {"limit": limit})
        if not isinstance(data, list):
            raise UpstreamError(f"FMP income-statement({symbol}) returned a non-list payload")
        return [row for row in data if isinstance(row, dict)]

    async def _segmentation(self, kind: str, symbol: str) -> Optional[Any]:
        try:
            return await self._fetch(
                f"/api/v4/revenue-{kind}-segmentation",
                {"symbol": symbol, "structure": "flat", "period": "annual"},
            )
        except UpstreamError as e:
            log.warning("%s segmentation degraded for %s: %s", kind, symbol, e)
            return None

    async def get_revenue_segmentation(self, symbol: str) -> Dict[str, Any]:
        product, geographic = await asyncio.gather(
            self._segmentation("product", symbol),
            self._segmentation("geographic", symbol),
        )
        # Listings like KER.PA usually only report under the base ticker
        base = base_symbol(symbol)
        if not _has_segment_values(product) and not _has_segment_values(geographic) and base and base != symbol:
            retry_product, retry_geographic = await asyncio.gather(
                self._segmentation("product", base),
                self._segmentation("geographic", base),
            )
            product = retry_product if retry_product is not None else product
            geographic = retry_geographic if retry_geographic is not None else geographic
        return {"product": product, "geographic": geographic}
