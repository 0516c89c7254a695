from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from cryptoloader.schemas.crypto import CryptoDataSource


class HealthResponse(BaseModel):
    database: str
    last_etl_status: str | None


class StatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    run_id: str
    source_name: str
    status: str
    records_processed: int
    error_message: str | None = None
    meta: Optional[Dict[str, Any]] = None
    started_at: datetime
    ended_at: datetime | None


class SymbolETLRequest(BaseModel):
    # None runs every configured source
    sources: Optional[List[CryptoDataSource]] = None


class SymbolETLResponse(BaseModel):
    success: bool
    records_processed: int
    symbols_loaded: int = 0
    symbols_failed: int = 0
    symbols_skipped: int = 0
    invalid: int = 0
    processing_time_ms: int = 0
    source_results: Dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class MappingDiscoveryResponse(BaseModel):
    success: bool
    source: str
    discovered: int = 0
    error: str | None = None


class MappingInitRequest(BaseModel):
    symbols: List[str] = Field(min_length=1)
    source: CryptoDataSource = CryptoDataSource.COINGECKO


class MappingInitResponse(BaseModel):
    success: bool
    source: str
    requested: int
    initialized: int


class MappingStatsResponse(BaseModel):
    total_symbols: int
    mapped: Dict[str, int]
    unmapped: Dict[str, int]


class SymbolsSummary(BaseModel):
    total: int
    active: int
    by_primary_source: Dict[str, int]
