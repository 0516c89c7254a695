"""Concurrent orchestration of all configured providers."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, List, Optional, Tuple

import httpx

from cryptoloader.core.errors import CryptoLoaderError, RateLimitExceeded, SourceUnavailable
from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.crypto import CryptoDataSource, CryptoLoaderConfig, CryptoLoaderResult, CryptoSymbol, SourceResult
from .base import CryptoDataProvider
from .dedup import deduplicate
from .registry import build_providers

log = get_logger("ingestion.runner")

USER_AGENT = "cryptoloader/1.0"


class _FetchOutcome:
    """Per-task result slot; merged single-threaded after the join."""

    __slots__ = ("symbols", "error", "rate_limited", "attempts")

    def __init__(self) -> None:
        self.symbols: List[CryptoSymbol] = []
        self.error: Optional[Exception] = None
        self.rate_limited = False
        self.attempts = 0


class CryptoSymbolLoader:
    """Runs every configured provider concurrently and reconciles the results.

    Usage:
        loader = CryptoSymbolLoader(settings.crypto_loader_config())
        result = await loader.load_all_symbols()
        btc_only = await loader.load_from_source(CryptoDataSource.COINGECKO)
    """

    def __init__(
        self,
        config: CryptoLoaderConfig,
        providers: Optional[Dict[CryptoDataSource, CryptoDataProvider]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.providers = providers if providers is not None else build_providers(config)
        self._client = client

    def restricted_to(self, sources: Iterable[CryptoDataSource]) -> "CryptoSymbolLoader":
        """A loader over a subset of this one's providers, sharing its client."""
        wanted = list(sources)
        missing = [source for source in wanted if source not in self.providers]
        if missing:
            raise SourceUnavailable(", ".join(str(source) for source in missing))
        return CryptoSymbolLoader(
            self.config,
            providers={source: self.providers[source] for source in wanted},
            client=self._client,
        )

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(
            timeout=self.config.request_timeout_seconds,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            yield client

    # =========================================================================
    # PUBLIC API
    # =========================================================================
    async def load_all_symbols(self) -> CryptoLoaderResult:
        """Fetch from all providers, tolerate partial failure, deduplicate."""
        started = time.monotonic()
        semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)
        sources = list(self.providers.keys())

        log.info(f"Loading symbols from {len(sources)} sources: {', '.join(s.value for s in sources)}")

        async with self._http_client() as client:
            outcomes = await asyncio.gather(
                *(self._run_provider(source, self.providers[source], client, semaphore) for source in sources),
                return_exceptions=True,
            )

        all_symbols: List[CryptoSymbol] = []
        source_results: Dict[CryptoDataSource, SourceResult] = {}
        failed = 0

        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, BaseException):
                # _run_provider captures provider errors; this is a bug in the task itself.
                log.error(f"Task for {source.value} crashed: {outcome!r}")
                source_results[source] = SourceResult(errors=[f"Unexpected error: {outcome}"])
                failed += 1
                continue

            symbols, result = outcome
            source_results[source] = result
            if result.errors:
                failed += 1
            all_symbols.extend(symbols)

        unique = deduplicate(all_symbols)
        skipped = len(all_symbols) - len(unique)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        log.info(
            f"Symbol load finished in {elapsed_ms}ms: fetched={len(all_symbols)} unique={len(unique)} "
            f"duplicates={skipped} failed_sources={failed}"
        )

        return CryptoLoaderResult(
            symbols_loaded=len(unique),
            symbols_failed=failed,
            symbols_skipped=skipped,
            source_results=source_results,
            processing_time_ms=elapsed_ms,
            symbols=unique,
        )

    async def load_from_source(self, source: CryptoDataSource) -> List[CryptoSymbol]:
        """Fetch a single configured source (no deduplication)."""
        provider = self.providers.get(source)
        if provider is None:
            raise SourceUnavailable(str(source))

        async with self._http_client() as client:
            outcome = await self._fetch_with_retry(provider, client)
            await self._pace(source, provider)

        if outcome.error is not None:
            raise outcome.error
        return outcome.symbols

    # =========================================================================
    # TASKS
    # =========================================================================
    async def _run_provider(
        self,
        source: CryptoDataSource,
        provider: CryptoDataProvider,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
    ) -> Tuple[List[CryptoSymbol], SourceResult]:
        async with semaphore:
            started = time.monotonic()
            outcome = await self._fetch_with_retry(provider, client)
            response_time_ms = int((time.monotonic() - started) * 1000)
            # Provider spacing applies after failures too; the permit is held until it elapses.
            await self._pace(source, provider)

        errors: List[str] = []
        if outcome.error is not None:
            errors.append(str(outcome.error))
            log.error(f"{provider.source_name()} failed after {outcome.attempts} attempt(s): {outcome.error}")
        else:
            log.info(f"{provider.source_name()}: {len(outcome.symbols)} symbols in {response_time_ms}ms")

        result = SourceResult(
            symbols_fetched=len(outcome.symbols),
            errors=errors,
            rate_limited=outcome.rate_limited,
            response_time_ms=response_time_ms,
            attempts=outcome.attempts,
        )
        return outcome.symbols, result

    async def _fetch_with_retry(self, provider: CryptoDataProvider, client: httpx.AsyncClient) -> _FetchOutcome:
        outcome = _FetchOutcome()
        max_attempts = max(1, self.config.retry_attempts)

        for attempt in range(1, max_attempts + 1):
            outcome.attempts = attempt
            try:
                outcome.symbols = await provider.fetch_symbols(client)
                outcome.error = None
                return outcome
            except CryptoLoaderError as exc:
                outcome.error = exc
                if isinstance(exc, RateLimitExceeded):
                    outcome.rate_limited = True
                if not exc.retryable:
                    log.warning(f"{provider.source_name()}: non-retryable error, giving up: {exc}")
                    return outcome
            except Exception as exc:  # noqa: BLE001
                # Unclassified provider bug; isolate it like any other failure.
                log.exception(f"{provider.source_name()}: unexpected error during fetch")
                outcome.error = exc
                return outcome

            if attempt < max_attempts:
                delay_ms = self._backoff_ms(outcome.error, attempt)
                log.warning(
                    f"{provider.source_name()} attempt {attempt}/{max_attempts} failed: {outcome.error}; "
                    f"retrying in {delay_ms}ms"
                )
                await asyncio.sleep(delay_ms / 1000)

        return outcome

    def _backoff_ms(self, error: Optional[Exception], attempt: int) -> int:
        base = self.config.retry_delay_ms
        if isinstance(error, RateLimitExceeded):
            delay = base * (2**attempt)
            if error.retry_after is not None:
                delay = max(delay, int(error.retry_after * 1000))
            return min(delay, self.config.max_rate_limit_backoff_ms)
        return base * attempt

    async def _pace(self, source: CryptoDataSource, provider: CryptoDataProvider) -> None:
        delay_ms = self.config.rate_limit_delay_for(source, provider.rate_limit_delay())
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
