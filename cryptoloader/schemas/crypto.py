"""Symbol records, per-source results and loader configuration."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNRANKED_PRIORITY = 9999999


class CryptoDataSource(str, Enum):
    """Providers a symbol record can originate from."""

    COINGECKO = "coingecko"
    COINPAPRIKA = "coinpaprika"
    COINCAP = "coincap"
    COINMARKETCAP = "coinmarketcap"
    SOSOVALUE = "sosovalue"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    def __str__(self) -> str:
        return self.value


_DISPLAY_NAMES = {
    CryptoDataSource.COINGECKO: "CoinGecko",
    CryptoDataSource.COINPAPRIKA: "CoinPaprika",
    CryptoDataSource.COINCAP: "CoinCap",
    CryptoDataSource.COINMARKETCAP: "CoinMarketCap",
    CryptoDataSource.SOSOVALUE: "SosoValue",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CryptoSymbol(BaseModel):
    """A normalized symbol record as reported by one provider."""

    symbol: str
    name: str
    base_currency: Optional[str] = None
    quote_currency: Optional[str] = None
    market_cap_rank: Optional[int] = Field(default=None, gt=0)
    source: CryptoDataSource
    source_id: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    additional_data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = UNRANKED_PRIORITY

    @field_validator("symbol")
    @classmethod
    def _uppercase_symbol(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("market_cap_rank", mode="before")
    @classmethod
    def _drop_invalid_rank(cls, value: Any) -> Optional[int]:
        # Upstreams report 0 or garbage for unranked assets.
        if value in (None, ""):
            return None
        try:
            rank = int(value)
        except (TypeError, ValueError):
            return None
        return rank if rank > 0 else None


class SourceResult(BaseModel):
    """Outcome of one provider within a single loader run."""

    model_config = ConfigDict(frozen=True)

    symbols_fetched: int = 0
    errors: List[str] = Field(default_factory=list)
    rate_limited: bool = False
    response_time_ms: int = 0
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return not self.errors


class CryptoLoaderResult(BaseModel):
    """Aggregate of one load_all_symbols run."""

    symbols_loaded: int = 0
    symbols_failed: int = 0
    symbols_skipped: int = 0
    source_results: Dict[CryptoDataSource, SourceResult] = Field(default_factory=dict)
    processing_time_ms: int = 0
    symbols: List[CryptoSymbol] = Field(default_factory=list)

    @property
    def all_sources_failed(self) -> bool:
        """True when no provider returned data; callers surface this as a hard failure."""
        if not self.source_results:
            return True
        return all(not result.succeeded for result in self.source_results.values())

    def summary(self) -> Dict[str, Any]:
        """JSON-friendly breakdown without the symbol payload."""
        return {
            "symbols_loaded": self.symbols_loaded,
            "symbols_failed": self.symbols_failed,
            "symbols_skipped": self.symbols_skipped,
            "processing_time_ms": self.processing_time_ms,
            "source_results": {
                source.value: result.model_dump() for source, result in self.source_results.items()
            },
        }


class CryptoLoaderConfig(BaseModel):
    max_concurrent_requests: int = Field(default=10, ge=1)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=1000, ge=0)
    rate_limit_delay_ms: int = Field(default=200, ge=0)
    rate_limit_overrides: Dict[CryptoDataSource, int] = Field(default_factory=dict)
    max_rate_limit_backoff_ms: int = 60_000
    request_timeout_seconds: float = 30.0
    sources: List[CryptoDataSource] = Field(default_factory=lambda: list(CryptoDataSource))
    batch_size: int = Field(default=250, ge=1)
    max_concurrent_batches: int = Field(default=5, ge=1)
    continue_on_error: bool = True
    api_keys: Dict[CryptoDataSource, str] = Field(default_factory=dict)

    def rate_limit_delay_for(self, source: CryptoDataSource, provider_minimum_ms: int) -> int:
        """Configured spacing for a source, never below what the provider declares."""
        configured = self.rate_limit_overrides.get(source, self.rate_limit_delay_ms)
        return max(provider_minimum_ms, configured)


class MappingConfig(BaseModel):
    api_keys: Dict[CryptoDataSource, str] = Field(default_factory=dict)
    rate_limit_delay_ms: int = Field(default=1000, ge=0)
    request_timeout_seconds: float = 30.0
