# symbols.py
import logging
import re
from typing import Iterable, List, Tuple

log = logging.getLogger("symbols")

# Foreign-exchange share classes -> primary US listing
FOREIGN_SYMBOLS = {
    "NVD.F": "NVDA",
    "MSF.F": "MSFT",
    "APC.F": "AAPL",
    "AMZ.F": "AMZN",
    "AMD.F": "AMD",
    "TL0.F": "TSLA",
    "GOO.F": "GOOGL",
    "FB2A.F": "META",
}

_SUFFIX = re.compile(r"[.\-]")


def normalize_symbol(raw: str) -> Tuple[str, str]:
    """Return (canonical, display) for a user-supplied ticker."""
    mapped = FOREIGN_SYMBOLS.get(raw.upper())
    if mapped:
        log.info("Mapped foreign symbol %s to %s", raw, mapped)
        return mapped, raw
    return raw, raw


def base_symbol(symbol: str) -> str:
    return _SUFFIX.split(symbol, 1)[0]


def split_tickers(value) -> List[str]:
    if not value:
        return []
    return [s.strip().upper() for s in value.split(",") if s.strip()]


def build_universe(subject: str, peers: Iterable[str], extra: Iterable[str],
                   excluded: Iterable[str]) -> List[str]:
    excluded = set(excluded)
    universe: List[str] = []
    for sym in [subject, *peers, *extra]:
        if sym in universe:
            continue
        # The analyzed company itself is never excludable
        if sym in excluded and sym != subject:
            continue
        universe.append(sym)
    return universe
