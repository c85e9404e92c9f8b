import asyncio
import random

import httpx
import pytest

from conftest import FMP_URL, add_company
from fmp_client import FMPClient
from fusion import fetch_category, fetch_universe
from tables import build_performance_records


class TaggingFetcher:
    """Answers every category with the requested ticker, after a random delay."""

    def __init__(self, fail=()):
        self.fail = set(fail)

    async def _tag(self, category, symbol):
        await asyncio.sleep(random.random() / 100)
        if (category, symbol) in self.fail:
            raise RuntimeError(f"{category} blew up for {symbol}")
        return {"tag": symbol, "category": category}

    async def get_profile(self, symbol):
        return await self._tag("profile", symbol)

    async def get_key_metrics_ttm(self, symbol):
        return await self._tag("metrics", symbol)

    async def get_ratios_ttm(self, symbol):
        return await self._tag("ratios", symbol)

    async def get_income_statements(self, symbol):
        return await self._tag("income", symbol)

    async def get_revenue_segmentation(self, symbol):
        return await self._tag("segments", symbol)


def test_every_category_is_aligned_to_the_universe():
    universe = [f"T{i}" for i in range(25)]
    bundle = asyncio.run(fetch_universe(TaggingFetcher(), universe))
    for results in (bundle.profiles, bundle.key_metrics, bundle.ratios, bundle.income, bundle.segments):
        assert len(results) == len(universe)
        assert [r["tag"] for r in results] == universe


def test_failures_become_none_without_touching_siblings():
    fetcher = TaggingFetcher(fail={("income", "B"), ("profile", "C")})
    bundle = asyncio.run(fetch_universe(fetcher, ["A", "B", "C"]))
    assert [r and r["tag"] for r in bundle.income] == ["A", None, "C"]
    assert [r and r["tag"] for r in bundle.profiles] == ["A", "B", None]
    assert all(r is not None for r in bundle.key_metrics)


def test_fetch_category_with_empty_universe():
    assert asyncio.run(fetch_category("profile", [], TaggingFetcher().get_profile)) == []


def test_income_failure_for_one_ticker_yields_zeroed_performance_row(upstream):
    for sym in ("AAA", "BBB", "CCC"):
        add_company(upstream, sym)
    upstream.route("/api/v3/income-statement/BBB", httpx.ReadTimeout("slow upstream"))

    async def run():
        async with FMPClient("k", FMP_URL, transport=upstream.transport) as fmp:
            return await fetch_universe(fmp, ["AAA", "BBB", "CCC"])

    bundle = asyncio.run(run())
    rows = build_performance_records(bundle)

    assert [r.ticker for r in rows] == ["AAA", "BBB", "CCC"]
    assert rows[0].revenueGrowth == 20.0 and rows[0].grossMargin == 50.0
    assert rows[2].revenueGrowth == 20.0 and rows[2].roe == pytest.approx(30.0)
    zeroed = rows[1]
    assert zeroed.company == "BBB Corp"
    assert (zeroed.revenueGrowth, zeroed.grossMargin, zeroed.operatingMargin, zeroed.netMargin,
            zeroed.roic, zeroed.roe) == (0, 0, 0, 0, 0, 0)


def test_segmentation_retries_with_base_symbol(upstream):
    upstream.route("/api/v4/revenue-product-segmentation?symbol=KER", [{"2024-12-31": {"Gucci": 7.6e9}}])
    upstream.route("/api/v4/revenue-geographic-segmentation?symbol=KER.PA", [])

    async def run():
        async with FMPClient("k", FMP_URL, transport=upstream.transport) as fmp:
            return await fmp.get_revenue_segmentation("KER.PA")

    segments = asyncio.run(run())
    assert segments["product"] == [{"2024-12-31": {"Gucci": 7.6e9}}]
    assert segments["geographic"] == []
    assert any("symbol=KER&" in c or c.endswith("symbol=KER") for c in upstream.calls)


def test_vendor_error_envelope_is_an_upstream_failure(upstream):
    upstream.route("/api/v3/key-metrics-ttm/AAA", {"Error Message": "Invalid API KEY."})

    async def run():
        async with FMPClient("k", FMP_URL, transport=upstream.transport) as fmp:
            return await fetch_category("key-metrics", ["AAA"], fmp.get_key_metrics_ttm)

    assert asyncio.run(run()) == [None]
