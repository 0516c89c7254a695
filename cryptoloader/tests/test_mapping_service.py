"""Cache-then-discover mapping resolution"""

import time

import httpx
import pytest

from cryptoloader.core.errors import InvalidResponse, RateLimitExceeded, SourceUnavailable
from cryptoloader.schemas.crypto import CryptoDataSource, MappingConfig
from cryptoloader.services.mapping_service import CryptoMappingService

GECKO = CryptoDataSource.COINGECKO
PAPRIKA = CryptoDataSource.COINPAPRIKA

GECKO_LIST = [
    {"id": "bitcoin", "symbol": "btc", "name": "Bitcoin"},
    {"id": "ethereum", "symbol": "eth", "name": "Ethereum"},
    {"id": "solana", "symbol": "sol", "name": "Solana"},
]


class CountingHandler:
    """MockTransport handler that serves a fixed listing and counts requests"""

    def __init__(self, listing=None, statuses=None):
        self.listing = listing if listing is not None else GECKO_LIST
        self.statuses = list(statuses or [])
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json=self.listing)


def service_with(handler, delay_ms=0, api_keys=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = MappingConfig(rate_limit_delay_ms=delay_ms, api_keys=api_keys or {})
    return CryptoMappingService(config, client=client)


class TestGetMappingId:
    """Single symbol resolution"""

    @pytest.mark.asyncio
    async def test_cache_hit_short_circuits(self, mapping_repo):
        """An existing mapping is returned without any HTTP call"""
        mapping_repo.mappings[(1, GECKO)] = "bitcoin"
        handler = CountingHandler()

        result = await service_with(handler).get_mapping_id(mapping_repo, 1, "BTC", GECKO)

        assert result == ("bitcoin", False)
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_discovery_persists_once(self, mapping_repo):
        handler = CountingHandler()

        result = await service_with(handler).get_mapping_id(mapping_repo, 2, "ETH", GECKO)

        assert result == ("ethereum", True)
        assert len(handler.requests) == 1
        assert len(mapping_repo.upserts) == 1
        assert mapping_repo.upserts[0]["api_id"] == "ethereum"
        assert mapping_repo.upserts[0]["sid"] == 2

    @pytest.mark.asyncio
    async def test_miss(self, mapping_repo):
        result = await service_with(CountingHandler()).get_mapping_id(mapping_repo, 9, "NOPE", GECKO)
        assert result == (None, True)
        assert mapping_repo.upserts == []

    @pytest.mark.asyncio
    async def test_discovery_errors_propagate(self, mapping_repo):
        with pytest.raises(InvalidResponse):
            await service_with(CountingHandler(statuses=[500])).get_mapping_id(mapping_repo, 1, "BTC", GECKO)
        with pytest.raises(RateLimitExceeded):
            await service_with(CountingHandler(statuses=[429])).get_mapping_id(mapping_repo, 1, "BTC", GECKO)

    @pytest.mark.asyncio
    async def test_upsert_failure_still_returns_id(self, mapping_repo):
        mapping_repo.fail_upsert = True
        result = await service_with(CountingHandler()).get_mapping_id(mapping_repo, 1, "BTC", GECKO)
        assert result == ("bitcoin", True)

    @pytest.mark.asyncio
    async def test_lookup_failure_treated_as_miss(self, mapping_repo):
        mapping_repo.fail_lookup = True
        handler = CountingHandler()
        result = await service_with(handler).get_mapping_id(mapping_repo, 1, "BTC", GECKO)
        assert result == ("bitcoin", True)
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_first_match_wins_on_duplicate_symbols(self, mapping_repo):
        """Listing order decides between assets sharing a ticker; no ranking is applied"""
        listing = [
            {"id": "ethereum-wormhole", "symbol": "eth", "name": "Ethereum (Wormhole)"},
            {"id": "ethereum", "symbol": "eth", "name": "Ethereum"},
        ]
        result = await service_with(CountingHandler(listing)).get_mapping_id(mapping_repo, 2, "eth", GECKO)
        assert result == ("ethereum-wormhole", True)

    @pytest.mark.asyncio
    async def test_coinpaprika_matches_upper_case(self, mapping_repo):
        listing = [{"id": "btc-bitcoin", "symbol": "BTC", "name": "Bitcoin"}]
        handler = CountingHandler(listing)
        result = await service_with(handler).get_mapping_id(mapping_repo, 1, "btc", PAPRIKA)
        assert result == ("btc-bitcoin", True)
        assert handler.requests[0].url.host == "api.coinpaprika.com"

    @pytest.mark.asyncio
    async def test_coinpaprika_skips_non_object_entries(self, mapping_repo):
        listing = [None, ["BTC"], {"id": "btc-bitcoin", "symbol": "BTC", "name": "Bitcoin"}]
        result = await service_with(CountingHandler(listing)).get_mapping_id(mapping_repo, 1, "BTC", PAPRIKA)
        assert result == ("btc-bitcoin", True)

    @pytest.mark.asyncio
    async def test_listing_case_is_not_normalized(self, mapping_repo):
        """Only the query ticker is case-folded; an upper-case CoinGecko entry is not matched"""
        listing = [{"id": "bitcoin", "symbol": "BTC", "name": "Bitcoin"}]
        result = await service_with(CountingHandler(listing)).get_mapping_id(mapping_repo, 1, "BTC", GECKO)
        assert result == (None, True)

    @pytest.mark.asyncio
    async def test_coingecko_pro_key(self, mapping_repo):
        handler = CountingHandler()
        service = service_with(handler, api_keys={GECKO: "CG-pro"})
        await service.get_mapping_id(mapping_repo, 1, "BTC", GECKO)
        assert handler.requests[0].url.host == "pro-api.coingecko.com"
        assert handler.requests[0].url.params["x_cg_pro_api_key"] == "CG-pro"

    @pytest.mark.asyncio
    async def test_unsupported_source(self, mapping_repo):
        with pytest.raises(SourceUnavailable):
            await service_with(CountingHandler()).get_mapping_id(mapping_repo, 1, "BTC", CryptoDataSource.COINCAP)


class TestDiscoverMissingMappings:
    """Bulk discovery"""

    @pytest.mark.asyncio
    async def test_counts_new_mappings_only(self, mapping_repo):
        mapping_repo.symbols["NOPE"] = 4
        count = await service_with(CountingHandler()).discover_missing_mappings(mapping_repo, GECKO)
        assert count == 3
        assert set(mapping_repo.mappings.values()) == {"bitcoin", "ethereum", "solana"}

    @pytest.mark.asyncio
    async def test_continues_after_failure(self, mapping_repo):
        handler = CountingHandler(statuses=[500])
        count = await service_with(handler).discover_missing_mappings(mapping_repo, GECKO)
        assert count == 2
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    async def test_paces_api_calls(self, mapping_repo):
        """N calls take at least (N-1) * delay"""
        delay_ms = 50
        started = time.monotonic()
        await service_with(CountingHandler(statuses=[429]), delay_ms=delay_ms).discover_missing_mappings(
            mapping_repo, GECKO
        )
        elapsed_ms = (time.monotonic() - started) * 1000
        assert elapsed_ms >= (len(mapping_repo.symbols) - 1) * delay_ms

    @pytest.mark.asyncio
    async def test_listing_with_null_and_scalar_entries(self, mapping_repo):
        """Non-object listing entries are ignored and every symbol is still resolved"""
        handler = CountingHandler([None, 42, "btc", *GECKO_LIST])

        count = await service_with(handler).discover_missing_mappings(mapping_repo, GECKO)

        assert count == 3
        assert len(handler.requests) == 3
        assert set(mapping_repo.mappings.values()) == {"bitcoin", "ethereum", "solana"}

    @pytest.mark.asyncio
    async def test_already_mapped_symbols_are_skipped(self, mapping_repo):
        mapping_repo.mappings[(1, GECKO)] = "bitcoin"
        handler = CountingHandler()
        count = await service_with(handler).discover_missing_mappings(mapping_repo, GECKO)
        assert count == 2
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_unsupported_source(self, mapping_repo):
        with pytest.raises(SourceUnavailable):
            await service_with(CountingHandler()).discover_missing_mappings(mapping_repo, CryptoDataSource.SOSOVALUE)


class TestInitializeMappings:
    @pytest.mark.asyncio
    async def test_unknown_ticker_skipped(self, mapping_repo):
        handler = CountingHandler()
        count = await service_with(handler).initialize_mappings_for_symbols(mapping_repo, ["btc", "XYZ", "eth"])
        assert count == 2
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_cached_symbols_not_counted(self, mapping_repo):
        mapping_repo.mappings[(1, GECKO)] = "bitcoin"
        handler = CountingHandler()
        count = await service_with(handler).initialize_mappings_for_symbols(mapping_repo, ["BTC"])
        assert count == 0
        assert handler.requests == []
