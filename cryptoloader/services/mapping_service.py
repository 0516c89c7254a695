"""Cache-then-discover resolution of provider ids for stored symbols."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Sequence, Tuple

import httpx

from cryptoloader.core.errors import CryptoLoaderError, RateLimitExceeded, SourceUnavailable
from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import CryptoDataSource, MappingConfig
from cryptoloader.services.discovery import DiscoveredMapping, discover_coingecko_id, discover_coinpaprika_id
from cryptoloader.services.mapping_repository import MappingRepository

log = get_logger("mapping_service")

DISCOVERABLE_SOURCES = (CryptoDataSource.COINGECKO, CryptoDataSource.COINPAPRIKA)


class CryptoMappingService:
    """Resolves the id a provider uses for one of our symbols.

    Lookups hit the repository first; only a miss triggers a live scan of the
    provider's coin list, and any hit found that way is written back.

    Usage:
        service = CryptoMappingService(settings.mapping_config())
        api_id, called_api = await service.get_mapping_id(repo, sid, "BTC", CryptoDataSource.COINGECKO)
        found = await service.discover_missing_mappings(repo, CryptoDataSource.COINPAPRIKA)
    """

    def __init__(self, config: MappingConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.config.request_timeout_seconds) as client:
            yield client

    # =========================================================================
    # SINGLE LOOKUP
    # =========================================================================
    async def get_mapping_id(
        self,
        repo: MappingRepository,
        sid: int,
        ticker: str,
        source: CryptoDataSource,
    ) -> Tuple[Optional[str], bool]:
        """Return ``(api_id, api_call_made)`` for one symbol.

        ``(None, True)`` means the provider has no coin with that ticker.
        Discovery errors propagate; a failed write-back does not.
        """
        async with self._http_client() as client:
            return await self._get_mapping_id(client, repo, sid, ticker, source)

    async def _get_mapping_id(
        self,
        client: httpx.AsyncClient,
        repo: MappingRepository,
        sid: int,
        ticker: str,
        source: CryptoDataSource,
    ) -> Tuple[Optional[str], bool]:
        try:
            cached = repo.get_api_id(sid, source)
        except Exception as exc:  # noqa: BLE001
            log.warning(f"Mapping lookup failed for {ticker} ({source.value}), treating as miss: {exc}")
            cached = None

        if cached is not None:
            log.debug(f"Found existing {source.display_name} mapping: {ticker} -> {cached}")
            return cached, False

        log.info(f"Discovering {source.display_name} id for {ticker}")
        found = await self._discover(client, ticker, source)
        if found is None:
            log.warning(f"No {source.display_name} id found for {ticker}")
            return None, True

        log.info(f"Discovered {source.display_name} id: {ticker} -> {found.api_id}")
        try:
            repo.upsert_api_mapping(
                sid,
                source,
                found.api_id,
                api_slug=found.api_slug,
                api_symbol=found.api_symbol,
                is_active=True,
            )
        except Exception as exc:  # noqa: BLE001
            log.error(f"Failed to store discovered mapping {ticker} -> {found.api_id}: {exc}")

        return found.api_id, True

    async def _discover(
        self, client: httpx.AsyncClient, ticker: str, source: CryptoDataSource
    ) -> Optional[DiscoveredMapping]:
        if source == CryptoDataSource.COINGECKO:
            return await discover_coingecko_id(client, ticker, self.config.api_keys.get(source))
        if source == CryptoDataSource.COINPAPRIKA:
            return await discover_coinpaprika_id(client, ticker)
        raise SourceUnavailable(str(source))

    # =========================================================================
    # BULK
    # =========================================================================
    async def discover_missing_mappings(self, repo: MappingRepository, source: CryptoDataSource) -> int:
        """Discover ids for every symbol without a mapping for ``source``.

        Returns the number of newly discovered mappings. Individual failures
        are logged and skipped.
        """
        self._ensure_discoverable(source)
        missing = repo.get_symbols_needing_mapping(source)
        log.info(f"Discovering {len(missing)} missing {source.display_name} mappings")

        pairs = [(ref.sid, ref.symbol) for ref in missing]
        discovered = await self._discover_many(repo, pairs, source)

        log.info(f"Discovered {discovered} new {source.display_name} mappings")
        return discovered

    async def initialize_mappings_for_symbols(
        self,
        repo: MappingRepository,
        tickers: Sequence[str],
        source: CryptoDataSource = CryptoDataSource.COINGECKO,
    ) -> int:
        """Resolve mappings for an explicit ticker list (operator command)."""
        self._ensure_discoverable(source)

        pairs: List[Tuple[int, str]] = []
        for ticker in tickers:
            normalized = ticker.strip().upper()
            if not normalized:
                continue
            try:
                sid = repo.find_symbol_id(normalized)
            except Exception as exc:  # noqa: BLE001
                log.error(f"Symbol lookup failed for {normalized}: {exc}")
                continue
            if sid is None:
                log.warning(f"Symbol {normalized} not found in database")
                continue
            log.debug(f"Found symbol {normalized} with SID {sid}")
            pairs.append((sid, normalized))

        initialized = await self._discover_many(repo, pairs, source)
        log.info(f"Initialized {initialized}/{len(tickers)} {source.display_name} mappings")
        return initialized

    async def _discover_many(
        self,
        repo: MappingRepository,
        pairs: Sequence[Tuple[int, str]],
        source: CryptoDataSource,
    ) -> int:
        discovered = missed = failed = rate_limited = 0
        delay_s = self.config.rate_limit_delay_ms / 1000

        async with self._http_client() as client:
            for position, (sid, ticker) in enumerate(pairs, start=1):
                api_call_made = False
                try:
                    api_id, api_call_made = await self._get_mapping_id(client, repo, sid, ticker, source)
                    if api_call_made:
                        if api_id is None:
                            missed += 1
                        else:
                            discovered += 1
                except RateLimitExceeded as exc:
                    api_call_made = True
                    rate_limited += 1
                    log.warning(f"Rate limited while discovering {ticker}: {exc}")
                except CryptoLoaderError as exc:
                    api_call_made = True
                    failed += 1
                    log.error(f"Discovery failed for {ticker}: {exc}")

                # Errors and misses consumed the upstream budget too.
                if api_call_made and position < len(pairs) and delay_s > 0:
                    await asyncio.sleep(delay_s)

        log.info(
            f"{source.display_name} discovery breakdown: discovered={discovered} missed={missed} "
            f"failed={failed} rate_limited={rate_limited}"
        )
        return discovered

    @staticmethod
    def _ensure_discoverable(source: CryptoDataSource) -> None:
        if source not in DISCOVERABLE_SOURCES:
            raise SourceUnavailable(str(source))
