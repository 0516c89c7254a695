"""Shared fakes for loader, mapping and ETL tests"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from cryptoloader.core.errors import RepositoryError
from cryptoloader.ingestion.base import CryptoDataProvider
from cryptoloader.schemas.crypto import CryptoDataSource, CryptoLoaderConfig, CryptoSymbol
from cryptoloader.services.mapping_repository import MappingRepository, SymbolRef


class FakeProvider(CryptoDataProvider):
    """Provider that replays a script of results/exceptions, one per call"""

    def __init__(self, source: CryptoDataSource, outcomes: List[Any], hold_seconds: float = 0.0, tracker=None):
        super().__init__()
        self.source = source
        self.outcomes = list(outcomes)
        self.calls = 0
        self.hold_seconds = hold_seconds
        self.tracker = tracker

    def rate_limit_delay(self) -> int:
        return 0

    async def fetch_symbols(self, client) -> List[CryptoSymbol]:
        self.calls += 1
        if self.tracker is not None:
            self.tracker.enter()
        try:
            if self.hold_seconds:
                await asyncio.sleep(self.hold_seconds)
            outcome = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            if self.tracker is not None:
                self.tracker.exit()


class InFlightTracker:
    def __init__(self) -> None:
        self.current = 0
        self.peak = 0

    def enter(self) -> None:
        self.current += 1
        self.peak = max(self.peak, self.current)

    def exit(self) -> None:
        self.current -= 1


class InMemoryMappingRepository(MappingRepository):
    def __init__(self, symbols: Optional[Dict[str, int]] = None) -> None:
        self.symbols = dict(symbols or {})
        self.mappings: Dict[tuple, str] = {}
        self.upserts: List[Dict[str, Any]] = []
        self.fail_lookup = False
        self.fail_upsert = False

    def get_api_id(self, sid, source):
        if self.fail_lookup:
            raise RepositoryError("lookup down")
        return self.mappings.get((sid, source))

    def upsert_api_mapping(self, sid, source, api_id, api_slug=None, api_symbol=None, is_active=True):
        self.upserts.append(
            {"sid": sid, "source": source, "api_id": api_id, "api_slug": api_slug, "api_symbol": api_symbol}
        )
        if self.fail_upsert:
            raise RepositoryError("write down")
        self.mappings[(sid, source)] = api_id

    def get_symbols_needing_mapping(self, source):
        return [
            SymbolRef(sid=sid, symbol=ticker, name=ticker.title())
            for ticker, sid in self.symbols.items()
            if (sid, source) not in self.mappings
        ]

    def find_symbol_id(self, ticker):
        return self.symbols.get(ticker.upper())

    def get_mapping_stats(self):
        mapped = {s.value: sum(1 for (_, src) in self.mappings if src == s) for s in CryptoDataSource}
        total = len(self.symbols)
        return {
            "total_symbols": total,
            "mapped": mapped,
            "unmapped": {k: total - v for k, v in mapped.items()},
        }


@pytest.fixture
def make_symbol():
    def _make(symbol: str, source: CryptoDataSource = CryptoDataSource.COINGECKO, **kwargs) -> CryptoSymbol:
        fields = {"name": symbol.title(), "source_id": f"{source.value}-{symbol.lower()}"}
        fields.update(kwargs)
        return CryptoSymbol(symbol=symbol, source=source, **fields)

    return _make


@pytest.fixture
def make_provider():
    return FakeProvider


@pytest.fixture
def tracker():
    return InFlightTracker()


@pytest.fixture
def fast_config():
    """Loader config with every delay disabled"""
    return CryptoLoaderConfig(retry_attempts=3, retry_delay_ms=0, rate_limit_delay_ms=0)


@pytest.fixture
def mapping_repo():
    return InMemoryMappingRepository({"BTC": 1, "ETH": 2, "SOL": 3})
