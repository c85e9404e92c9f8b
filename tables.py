# tables.py
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fusion import FetchBundle
from models import (
    CompetitorsResponse,
    PeerCompany,
    PeerRowResponse,
    PerformanceRecord,
    QualitativeRecord,
    ValuationRecord,
)

log = logging.getLogger("tables")

COUNTRY_NAMES = {
    "US": "United States", "USA": "United States", "CN": "China", "JP": "Japan",
    "DE": "Germany", "GB": "United Kingdom", "UK": "United Kingdom", "FR": "France",
    "IN": "India", "IT": "Italy", "BR": "Brazil", "CA": "Canada", "KR": "South Korea",
    "ES": "Spain", "AU": "Australia", "RU": "Russia", "NL": "Netherlands",
    "CH": "Switzerland", "SE": "Sweden", "SG": "Singapore", "HK": "Hong Kong",
    "TW": "Taiwan", "BE": "Belgium", "DK": "Denmark", "FI": "Finland", "NO": "Norway",
    "IE": "Ireland", "IL": "Israel", "AE": "UAE", "SA": "Saudi Arabia", "MX": "Mexico",
    "ID": "Indonesia", "TH": "Thailand", "MY": "Malaysia", "PH": "Philippines",
    "VN": "Vietnam", "EG": "Egypt", "ZA": "South Africa", "AR": "Argentina",
    "CL": "Chile", "CO": "Colombia", "PE": "Peru", "NZ": "New Zealand", "AT": "Austria",
    "PL": "Poland", "PT": "Portugal", "CZ": "Czech Republic", "HU": "Hungary",
    "RO": "Romania", "GR": "Greece", "TR": "Turkey", "LU": "Luxembourg", "BM": "Bermuda",
    "KY": "Cayman Islands", "VG": "British Virgin Islands", "JE": "Jersey",
    "GG": "Guernsey", "IM": "Isle of Man", "MC": "Monaco", "LI": "Liechtenstein",
    "MT": "Malta", "CY": "Cyprus", "BS": "Bahamas", "BB": "Barbados",
}

REGION_NAMES = {
    "UNITED STATES": "US", "UNITED STATES OF AMERICA": "US", "US": "US", "U.S.": "US",
    "UNITED KINGDOM": "UK", "U.K.": "UK", "JAPA": "Japan", "JAPAN": "Japan",
    "GREATER CHINA": "Greater China", "REST OF ASIA PACIFIC": "Rest of Asia Pacific",
    "ASIA PACIFIC": "Asia Pacific", "APAC": "APAC", "EMEA": "EMEA", "EUROPE": "Europe",
    "AMERICAS": "Americas", "NORTH AMERICA": "North America",
    "SOUTH AMERICA": "South America", "INTERNATIONAL MARKETS": "International",
    "INTERNATIONAL": "International", "NON-US": "Non-US", "NON US": "Non-US",
    "OUTSIDE US & UK": "Outside US & UK",
    "COUNTRIES OTHER THAN US AND UNITED KINGDOM": "Outside US & UK",
}

SEGMENT_NAMES = {
    "dataCenter": "Data Center", "Data Center": "Data Center", "gaming": "Gaming",
    "Gaming": "Gaming", "professionalVisualization": "Pro Visualization",
    "automotive": "Automotive", "Automotive": "Automotive", "oem": "OEM",
    "OEM & IP": "OEM & IP", "cloud": "Cloud", "Cloud": "Cloud", "Google Cloud": "Cloud",
    "enterprise": "Enterprise", "Enterprise": "Enterprise", "consumer": "Consumer",
    "Consumer": "Consumer", "iphone": "iPhone", "iPhone": "iPhone", "mac": "Mac",
    "Mac": "Mac", "ipad": "iPad", "iPad": "iPad", "wearables": "Wearables",
    "Wearables, Home and Accessories": "Wearables & Other", "services": "Services",
    "Services": "Services", "productivity": "Productivity",
    "Productivity and Business Processes": "Productivity",
    "intelligentCloud": "Intelligent Cloud", "Intelligent Cloud": "Cloud",
    "personalComputing": "Personal Computing",
    "More Personal Computing": "Personal Computing", "devices": "Devices",
    "software": "Software", "Google Search & Other": "Search & Other",
    "YouTube Ads": "YouTube", "Google Network": "Network",
    "Google Subscriptions, Platforms, And Devices": "Subscriptions & Devices",
    "Other Bets": "Other Bets", "Family of Apps": "Family of Apps",
    "Reality Labs": "Reality Labs", "Reportable Segment": "Core Business",
    "Communications Segment": "Communications",
    "Online Marketing Services": "Marketing Services",
    "Product and Service, Other": "Other Products",
}

_REGION_NOISE = re.compile(r"\b(Geographical|Geographic|Geography|Regions?|Areas?|Segment)\b", re.I)
_DATE_LIKE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_LEADING_BOILERPLATE = re.compile(r"^(The company |It |They |We |Our company )", re.I)
_ENTITY_SUFFIX = re.compile(
    r",? Inc\.?(?=\W|$)| Corporation\b| Corp\.?(?=\W|$)| Limited\b| Ltd\.?(?=\W|$)"
    r"| LLC\b| L\.L\.C\.| plc\b| N\.V\.",
    re.I,
)
_CITATION = re.compile(r"\[\d+\]")

NO_DESCRIPTION = "Business description not available"


def _num(x: Any) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def _pick(d: Optional[Dict[str, Any]], *keys: str) -> float:
    for key in keys:
        v = _num((d or {}).get(key))
        if v:
            return v
    return 0.0


def _round_pct(share: float) -> int:
    # Half-up, matching how the dashboard has always displayed percentages
    return int(math.floor(share * 100 + 0.5))


def normalize_percentage(value: Any) -> float:
    """Fractions (|x| <= 1) become percent units; larger values pass through."""
    v = _num(value)
    return v * 100 if abs(v) <= 1 else v


def country_name(code: Optional[str]) -> str:
    if not code or code == "N/A":
        return "N/A"
    return COUNTRY_NAMES.get(code.upper(), code)


def shorten_description(text: Optional[str]) -> str:
    text = _LEADING_BOILERPLATE.sub("", text or "")
    text = _ENTITY_SUFFIX.sub("", text)
    text = re.sub(r"\s+", " ", text).strip()
    if len(text) > 120:
        cut = text.rfind(" ", 0, 118)
        return text[: cut if cut > 80 else 117] + "..."
    return text or NO_DESCRIPTION


def clean_generated_description(text: str) -> str:
    return _CITATION.sub("", text).strip()


def _humanize(key: str) -> str:
    label = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", " ", key.replace("_", " "))
    label = re.sub(r"\s+", " ", label).strip()
    return label[:1].upper() + label[1:]


def region_label(key: str) -> str:
    cleaned = re.sub(r"\s+", " ", _REGION_NOISE.sub("", _humanize(key))).strip()
    return REGION_NAMES.get(cleaned.upper(), cleaned or "Other")


def segment_label(key: str) -> str:
    return SEGMENT_NAMES.get(key) or _humanize(key)


def _latest_breakdown(payload: Any) -> Optional[Dict[str, Any]]:
    # [{"2024-09-28": {"iPhone": 2.0e11, ...}}, ...] -> the most recent inner map
    if not isinstance(payload, list) or not payload:
        return None
    first = payload[0]
    if not isinstance(first, dict) or not first:
        return None
    inner = next(iter(first.values()))
    return inner if isinstance(inner, dict) else None


def _mix_value(v: Any) -> float:
    if isinstance(v, bool):
        return 0.0
    if isinstance(v, str):
        v = v.replace("%", "").replace(",", ".", 1)
    return _num(v)


def summarize_mix(payload: Any, label=segment_label) -> str:
    """Top-3 revenue shares plus an Other bucket, e.g. 'US 43%, Europe 26%, Other 31%'."""
    breakdown = _latest_breakdown(payload)
    if not breakdown:
        return "N/A"
    totals: Dict[str, float] = {}
    for key, raw in breakdown.items():
        key = str(key)
        if key.lower() == "date" or "period" in key.lower() or _DATE_LIKE.match(key):
            continue
        value = _mix_value(raw)
        if value <= 0:
            continue
        name = label(key)
        totals[name] = totals.get(name, 0.0) + value
    if not totals:
        return "N/A"

    entries = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    total = sum(v for _, v in entries)
    top = [(name, _round_pct(v / total)) for name, v in entries[:3]]
    parts = [f"{name} {pct}%" for name, pct in top]
    if len(entries) > 3:
        other_pct = _round_pct(sum(v for _, v in entries[3:]) / total)
        # Half-up rounding of four shares can overshoot; the listed total stays within 100 +/- 1
        other_pct = min(other_pct, 101 - sum(pct for _, pct in top))
        if other_pct > 0:
            parts.append(f"Other {other_pct}%")
    return ", ".join(parts)


def build_peer_companies(bundle: FetchBundle, subject: str) -> List[PeerCompany]:
    return [
        PeerCompany(id=p["symbol"], name=p.get("companyName") or p["symbol"], symbol=p["symbol"])
        for p in bundle.profiles
        if p and p.get("symbol") and p["symbol"].upper() != subject.upper()
    ]


def _identity(bundle: FetchBundle, i: int):
    profile = bundle.profiles[i] or {}
    return profile.get("companyName") or bundle.tickers[i], profile.get("sector") or "N/A"


def build_valuation_records(bundle: FetchBundle) -> List[ValuationRecord]:
    records = []
    for i, sym in enumerate(bundle.tickers):
        metrics, ratios = bundle.key_metrics[i], bundle.ratios[i]
        company, sector = _identity(bundle, i)
        market_cap = _pick(metrics, "marketCapTTM", "marketCap")
        net_debt = _pick(metrics, "netDebtTTM", "netDebt")
        ev_ebitda = _pick(ratios, "enterpriseValueMultipleTTM", "evToEBITDATTM")
        pe = _pick(ratios, "priceEarningsRatioTTM", "peRatioTTM")
        ps = _pick(ratios, "priceToSalesRatioTTM")
        dividend_yield = normalize_percentage(
            _pick(ratios, "dividendYieldPercentageTTM", "dividendYieldTTM")
            or _pick(metrics, "dividendYieldTTM", "dividendYieldPercentageTTM")
        )
        if not dividend_yield:
            price = _pick(bundle.profiles[i], "price")
            dps = _pick(metrics, "dividendPerShareTTM")
            if price > 0 and dps > 0:
                dividend_yield = dps / price * 100
        records.append(ValuationRecord(
            ticker=sym, company=company, sector=sector,
            marketCap=market_cap, netDebt=net_debt,
            enterpriseValue=_pick(metrics, "enterpriseValueTTM") or market_cap + net_debt,
            ltmEvToEbitda=ev_ebitda, ltmPeRatio=pe, ltmPriceToSales=ps,
            priceToBook=_pick(ratios, "priceToBookRatioTTM", "ptbRatioTTM"),
            dividendYield=dividend_yield,
            evToEbitda=ev_ebitda, peRatio=pe, priceToSales=ps,
        ))
    return records


def build_performance_records(bundle: FetchBundle) -> List[PerformanceRecord]:
    records = []
    for i, sym in enumerate(bundle.tickers):
        company, sector = _identity(bundle, i)
        statements = bundle.income[i]
        if not statements or len(statements) < 2:
            records.append(PerformanceRecord(ticker=sym, company=company, sector=sector))
            continue
        current, previous = statements[0], statements[1]
        prev_revenue = _num(previous.get("revenue"))
        growth = (_num(current.get("revenue")) - prev_revenue) / prev_revenue * 100 if prev_revenue else 0.0
        ratios = bundle.ratios[i] or {}
        records.append(PerformanceRecord(
            ticker=sym, company=company, sector=sector,
            revenueGrowth=growth,
            grossMargin=_num(current.get("grossProfitRatio")) * 100,
            operatingMargin=_num(current.get("operatingIncomeRatio")) * 100,
            netMargin=_num(current.get("netIncomeRatio")) * 100,
            roic=normalize_percentage(ratios.get("returnOnInvestedCapitalTTM")),
            roe=normalize_percentage(ratios.get("returnOnEquityTTM")),
            ebitdaMargin=_num(current.get("ebitdaratio")) * 100,
        ))
    return records


def build_qualitative_records(bundle: FetchBundle,
                              descriptions: Optional[Dict[str, str]] = None) -> List[QualitativeRecord]:
    descriptions = descriptions or {}
    records = []
    for i, sym in enumerate(bundle.tickers):
        profile = bundle.profiles[i]
        if not profile:
            records.append(QualitativeRecord(
                ticker=sym, company=sym, description="Company information not available",
            ))
            continue
        segments = bundle.segments[i] or {}
        geographic_mix = summarize_mix(segments.get("geographic"), region_label)
        segment_mix = summarize_mix(segments.get("product"), segment_label)
        raw = profile.get("description")
        if descriptions.get(sym):
            description = descriptions[sym]
        elif raw:
            description = shorten_description(raw)
        else:
            description = "No description available"
        records.append(QualitativeRecord(
            ticker=sym,
            company=profile.get("companyName") or sym,
            description=description,
            country=country_name(profile.get("country")),
            geographicMix=geographic_mix,
            segmentMix=segment_mix,
            needsSegmentData=bool(raw) and "N/A" in (geographic_mix, segment_mix),
        ))
    return records


@dataclass
class CompetitorTables:
    peer_companies: List[PeerCompany]
    valuation: List[ValuationRecord]
    performance: List[PerformanceRecord]
    qualitative: List[QualitativeRecord]

    def restore_display_symbol(self, canonical: str, display: str) -> None:
        if canonical == display:
            return
        for record in [*self.valuation, *self.performance, *self.qualitative]:
            if record.ticker == canonical:
                record.ticker = display

    def to_response(self) -> Dict[str, Any]:
        for record in self.qualitative:
            record.needsSegmentData = False
        return CompetitorsResponse(
            peerCompanies=self.peer_companies,
            peerValuationData=self.valuation,
            peerPerformanceData=self.performance,
            peerQualitativeData=self.qualitative,
        ).model_dump()


def assemble_tables(bundle: FetchBundle, subject: str,
                    descriptions: Optional[Dict[str, str]] = None) -> CompetitorTables:
    valuation = [r for r in build_valuation_records(bundle) if r.marketCap > 0]
    # Zero gross margin means the statements carried no usable data
    performance = [r for r in build_performance_records(bundle) if r.grossMargin != 0]
    tables = CompetitorTables(
        peer_companies=build_peer_companies(bundle, subject),
        valuation=valuation,
        performance=performance,
        qualitative=build_qualitative_records(bundle, descriptions),
    )
    log.info("Assembled %d valuation, %d performance, %d qualitative rows for %s",
             len(valuation), len(performance), len(tables.qualitative), subject)
    return tables


def assemble_peer_row(bundle: FetchBundle, descriptions: Optional[Dict[str, str]] = None,
                      display: Optional[str] = None) -> Dict[str, Any]:
    """Rows for a single-ticker bundle; nothing is dropped, so the caller always gets all three."""
    sym = bundle.tickers[0]
    display = display or sym
    company, _ = _identity(bundle, 0)
    valuation = build_valuation_records(bundle)[0]
    performance = build_performance_records(bundle)[0]
    qualitative = build_qualitative_records(bundle, descriptions)[0]
    for record in (valuation, performance, qualitative):
        record.ticker = display
    qualitative.needsSegmentData = False
    return PeerRowResponse(
        peerCompany=PeerCompany(id=display, name=company, symbol=display),
        peerValuationData=valuation,
        peerPerformanceData=performance,
        peerQualitativeData=qualitative,
    ).model_dump()
