# enrichment.py
import logging
from typing import Any, Dict, List, Optional

from llm_client import TextGenerator
from models import QualitativeRecord
from tables import clean_generated_description

log = logging.getLogger("enrichment")

MAX_BATCH = 10
SNIPPET_CHARS = 200

SUMMARY_SYSTEM = ("You are a financial analyst. Create concise company descriptions under 120 "
                  "characters each. Focus on core products/services and key markets. Output valid JSON only.")

MIX_SYSTEM = ("You are a financial analyst. Extract revenue breakdown from company descriptions. "
              "Return valid JSON only.")


async def summarize_descriptions(llm: TextGenerator, profiles: List[Optional[dict]], cache,
                                 ttl_seconds: float) -> Dict[str, str]:
    """Short descriptions keyed by ticker; tickers already in `cache` are not re-sent."""
    out: Dict[str, str] = {}
    pending = []
    for p in profiles:
        if not p or not p.get("symbol"):
            continue
        description = p.get("description")
        if not description or description == "No description available":
            continue
        cached = cache.get(f"desc:{p['symbol']}")
        if cached:
            out[p["symbol"]] = cached
        else:
            pending.append(p)
    pending = pending[:MAX_BATCH]
    if not pending or not llm.available:
        return out

    prompt = ('Process these company descriptions into concise summaries (under 120 chars each). '
              'Format as JSON: {"SYMBOL": "description"}\n\n'
              + "\n\n".join(f"{p['symbol']}: {p['description'][:SNIPPET_CHARS]}" for p in pending))
    data = await llm.complete_json(SUMMARY_SYSTEM, prompt, max_tokens=500)
    if data is None:
        return out
    requested = {p["symbol"] for p in pending}
    for sym, text in data.items():
        if sym in requested and isinstance(text, str) and text.strip():
            out[sym] = clean_generated_description(text)
            cache.set(f"desc:{sym}", out[sym], ttl_seconds)
    log.info("Summarized %d descriptions", len(out))
    return out


def _joined(values: Any) -> Optional[str]:
    if not isinstance(values, list):
        return None
    items = [str(v).strip() for v in values if isinstance(v, str) and v.strip()]
    return ", ".join(items[:3]) or None


async def extract_segment_mixes(llm: TextGenerator, records: List[QualitativeRecord],
                                profiles: List[Optional[dict]]) -> None:
    """Fill "N/A" geographic/segment mixes from descriptions. Best effort, mutates `records`."""
    flagged = [r for r in records if r.needsSegmentData]
    if not flagged or not llm.available:
        return
    descriptions = {p["symbol"]: p.get("description") or "" for p in profiles if p and p.get("symbol")}
    companies = "\n\n".join(f"{r.ticker}: {descriptions.get(r.ticker, '')[:SNIPPET_CHARS]}" for r in flagged)
    prompt = f"""Extract revenue breakdown for these companies. Return JSON format:
{{
  "SYMBOL1": {{"geographic": ["US 40%", "Europe 30%", "Asia 20%"], "segments": ["Cloud 50%", "Software 30%", "Hardware 20%"]}},
  "SYMBOL2": {{"geographic": ["Japan 90%", "Other 10%"], "segments": ["Gaming 60%", "Network 40%"]}}
}}

Companies:
{companies}

Keep region/segment names short. Always include percentages. Focus on major regions/segments only (top 3-4). Use empty arrays if not available."""
    log.info("Extracting segment data for %d companies", len(flagged))
    data = await llm.complete_json(MIX_SYSTEM, prompt, max_tokens=500)
    if data is None:
        return
    for record in flagged:
        entry = data.get(record.ticker)
        if not isinstance(entry, dict):
            continue
        geographic, segments = _joined(entry.get("geographic")), _joined(entry.get("segments"))
        if geographic and record.geographicMix == "N/A":
            record.geographicMix = geographic
        if segments and record.segmentMix == "N/A":
            record.segmentMix = segments
