# config.py
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv(), override=False)

FMP_BASE = "https://financialmodelingprep.com"
PERPLEXITY_BASE = "https://api.perplexity.ai"


class ConfigurationError(RuntimeError):
    pass


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class ScreenConfig:
    """Tuning knobs for the industry/sector peer screens and AI peer passes."""

    market_cap_floor: int = 100_000_000
    industry_window: Tuple[float, float] = (0.1, 10.0)
    industry_min_volume: int = 100_000
    industry_keep: int = 10
    industry_fetch_limit: int = 50
    sector_window: Tuple[float, float] = (0.2, 5.0)
    sector_min_volume: int = 50_000
    sector_target: int = 8
    sector_fetch_limit: int = 30
    vendor_peer_limit: int = 10
    ai_peer_limit: int = 8
    validation_min_score: float = 5.0


@dataclass(frozen=True)
class Settings:
    fmp_api_key: Optional[str] = None
    fmp_base_url: str = FMP_BASE
    llm_api_key: Optional[str] = None
    llm_base_url: str = PERPLEXITY_BASE
    llm_model: str = "sonar"
    request_timeout: float = 12.0
    llm_timeout: float = 30.0
    response_cache_ttl: int = 300
    description_cache_ttl: int = 86400
    cache_backend: str = "memory"
    db_path: str = "cache.db"
    peer_db_path: str = "peers.db"
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    screen: ScreenConfig = field(default_factory=ScreenConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            fmp_api_key=os.getenv("FMP_API_KEY") or None,
            fmp_base_url=os.getenv("FMP_BASE_URL", FMP_BASE),
            llm_api_key=os.getenv("PERPLEXITY_API_KEY") or None,
            llm_base_url=os.getenv("PERPLEXITY_BASE_URL", PERPLEXITY_BASE),
            llm_model=os.getenv("PERPLEXITY_MODEL", "sonar"),
            request_timeout=_float_env("REQUEST_TIMEOUT_SECONDS", 12.0),
            llm_timeout=_float_env("LLM_TIMEOUT_SECONDS", 30.0),
            response_cache_ttl=_int_env("RESPONSE_CACHE_TTL_SECONDS", 300),
            description_cache_ttl=_int_env("DESCRIPTION_CACHE_TTL_SECONDS", 86400),
            cache_backend=os.getenv("CACHE_BACKEND", "memory").lower(),
            db_path=os.getenv("DB_PATH", "cache.db"),
            peer_db_path=os.getenv("PEER_DB_PATH", "peers.db"),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", "*").split(","),
        )

    def require_fmp_key(self) -> str:
        if not self.fmp_api_key:
            # Fail fast before any upstream work
            raise ConfigurationError("FMP API key not configured")
        return self.fmp_api_key
