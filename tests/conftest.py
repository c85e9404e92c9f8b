"""Test configuration helpers and fixtures."""

import json
from dataclasses import replace
from typing import Any, Dict, List, Optional

import httpx
import pytest

from config import Settings

FMP_URL = "https://fmp.test"
LLM_URL = "https://llm.test"


class FakeUpstream:
    """Routes FMP and chat-completion requests to canned payloads and records every call."""

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.calls: List[str] = []
        self.llm_replies: List[Any] = []
        self.llm_prompts: List[str] = []

    def route(self, key: str, payload: Any) -> "FakeUpstream":
        self.routes[key] = payload
        return self

    def _lookup(self, request: httpx.Request):
        path = request.url.path
        for k, v in request.url.params.items():
            if k != "apikey" and f"{path}?{k}={v}" in self.routes:
                return self.routes[f"{path}?{k}={v}"]
        return self.routes.get(path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "llm.test":
            body = json.loads(request.content)
            self.llm_prompts.append(body["messages"][-1]["content"])
            reply = self.llm_replies.pop(0) if self.llm_replies else 500
            if isinstance(reply, int):
                return httpx.Response(reply, json={})
            return httpx.Response(200, json={"choices": [{"message": {"content": reply}}]})

        params = {k: v for k, v in request.url.params.items() if k != "apikey"}
        self.calls.append(request.url.path + ("?" + "&".join(f"{k}={v}" for k, v in params.items()) if params else ""))
        entry = self._lookup(request)
        if callable(entry):
            entry = entry(request)
        if entry is None:
            return httpx.Response(404, json={})
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, int):
            return httpx.Response(entry, json={})
        if isinstance(entry, httpx.Response):
            return entry
        return httpx.Response(200, json=entry)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def fmp_calls(self, prefix: str) -> List[str]:
        return [c for c in self.calls if c.startswith(prefix)]


def profile(symbol: str, name: Optional[str] = None, mkt_cap: float = 1e11, sector: str = "Technology",
            industry: str = "Semiconductors", country: str = "US", description: str = "") -> Dict[str, Any]:
    return {
        "symbol": symbol,
        "companyName": name or f"{symbol} Corp",
        "mktCap": mkt_cap,
        "sector": sector,
        "industry": industry,
        "country": country,
        "description": description,
        "exchange": "NASDAQ",
    }


def add_company(upstream: FakeUpstream, symbol: str, market_cap: float = 1e11, gross: float = 0.5,
                revenue=(120.0, 100.0), **profile_kw) -> None:
    upstream.route(f"/api/v3/profile/{symbol}", [profile(symbol, mkt_cap=market_cap, **profile_kw)])
    upstream.route(f"/api/v3/key-metrics-ttm/{symbol}", [{
        "marketCapTTM": market_cap, "netDebtTTM": 1e9, "enterpriseValueTTM": market_cap + 1e9,
    }])
    upstream.route(f"/api/v3/ratios-ttm/{symbol}", [{
        "enterpriseValueMultipleTTM": 20.0, "priceEarningsRatioTTM": 30.0, "priceToSalesRatioTTM": 8.0,
        "priceToBookRatioTTM": 5.0, "dividendYieldTTM": 0.01,
        "returnOnInvestedCapitalTTM": 0.25, "returnOnEquityTTM": 0.3,
    }])
    upstream.route(f"/api/v3/income-statement/{symbol}", [
        {"revenue": revenue[0], "grossProfitRatio": gross, "operatingIncomeRatio": 0.3,
         "netIncomeRatio": 0.2, "ebitdaratio": 0.35},
        {"revenue": revenue[1], "grossProfitRatio": gross, "operatingIncomeRatio": 0.25,
         "netIncomeRatio": 0.18, "ebitdaratio": 0.3},
    ])


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        fmp_api_key="test-key",
        fmp_base_url=FMP_URL,
        llm_api_key=None,
        llm_base_url=LLM_URL,
        db_path=str(tmp_path / "cache.db"),
        peer_db_path=str(tmp_path / "peers.db"),
    )


@pytest.fixture
def llm_settings(settings) -> Settings:
    return replace(settings, llm_api_key="llm-key")
