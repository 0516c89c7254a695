"""Symbol ETL and mapping jobs, recorded as ETL runs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from cryptoloader.core.config import settings
from cryptoloader.core.logging import get_logger
from cryptoloader.ingestion.runner import CryptoSymbolLoader
from cryptoloader.models.runs import ETLRun
from cryptoloader.schemas.crypto import CryptoDataSource, CryptoLoaderConfig
from cryptoloader.services.batch_processor import BatchConfig, BatchProcessor
from cryptoloader.services.mapping_repository import MappingRepository, SqlMappingRepository
from cryptoloader.services.mapping_service import CryptoMappingService
from cryptoloader.services.symbol_repository import SymbolRepository
from cryptoloader.services.validation import validate_symbol

log = get_logger("etl_service")

SYMBOLS_RUN = "symbols"


class ETLService:
    """Runs symbol loads and mapping discovery against one DB session.

    Responsibilities:
    - Load and reconcile symbols from every configured provider
    - Validate records before they reach the symbols table
    - Upsert symbols and their provider ids
    - Discover missing provider mappings
    - Track every job as an ETLRun
    """

    def __init__(
        self,
        db: Session,
        loader: Optional[CryptoSymbolLoader] = None,
        symbol_repo: Optional[SymbolRepository] = None,
        mapping_repo: Optional[MappingRepository] = None,
        mapping_service: Optional[CryptoMappingService] = None,
        config: Optional[CryptoLoaderConfig] = None,
    ):
        self.db = db
        self.config = config or (loader.config if loader else settings.crypto_loader_config())
        self.loader = loader or CryptoSymbolLoader(self.config)
        self.symbol_repo = symbol_repo or SymbolRepository(db, chunk_size=self.config.batch_size)
        self.mapping_repo = mapping_repo or SqlMappingRepository(db)
        self.mapping_service = mapping_service or CryptoMappingService(settings.mapping_config())

    # -------------------------------------------------------------------------
    # Symbols
    # -------------------------------------------------------------------------
    async def load_symbols(self, sources: Optional[Sequence[CryptoDataSource]] = None) -> Dict[str, Any]:
        """Fetch, reconcile, validate and persist the symbol universe."""
        loader = self.loader.restricted_to(sources) if sources else self.loader
        run = self._start_run(SYMBOLS_RUN)

        try:
            result = await loader.load_all_symbols()
            summary = result.summary()

            if result.all_sources_failed:
                log.error("Symbol ETL failed: no source returned data")
                self._finish_run(run, "failure", 0, meta=summary, error="All sources failed")
                return {"success": False, "records_processed": 0, "invalid": 0, **summary}

            processor = BatchProcessor(
                BatchConfig(
                    batch_size=self.config.batch_size,
                    max_concurrent_batches=self.config.max_concurrent_batches,
                    continue_on_error=self.config.continue_on_error,
                )
            )
            validated = await processor.process_batches(result.symbols, validate_symbol)
            if validated.failure_count:
                log.warning(f"{validated.failure_count} symbols failed validation and were skipped")

            written = self.symbol_repo.upsert_symbols(validated.values())
            summary["invalid"] = validated.failure_count
            self._finish_run(run, "success", written, meta=summary)

            log.info(f"Symbol ETL finished | processed={written} invalid={validated.failure_count}")
            return {"success": True, "records_processed": written, **summary}

        except Exception as exc:  # noqa: BLE001
            self._fail_run(run, exc)
            log.error(f"Symbol ETL failed: {exc}")
            raise

    async def preview_source(self, source: CryptoDataSource, limit: int = 20) -> Dict[str, Any]:
        """Fetch one source without writing anything."""
        symbols = await self.loader.load_from_source(source)
        return {
            "source": source.value,
            "total": len(symbols),
            "symbols": [s.model_dump(mode="json") for s in symbols[:limit]],
        }

    # -------------------------------------------------------------------------
    # Mappings
    # -------------------------------------------------------------------------
    async def discover_mappings(self, source: CryptoDataSource) -> Dict[str, Any]:
        run = self._start_run(f"mappings:{source.value}")
        try:
            discovered = await self.mapping_service.discover_missing_mappings(self.mapping_repo, source)
        except Exception as exc:  # noqa: BLE001
            self._fail_run(run, exc)
            log.error(f"Mapping discovery failed for {source.value}: {exc}")
            raise

        self._finish_run(run, "success", discovered, meta={"source": source.value, "discovered": discovered})
        return {"success": True, "source": source.value, "discovered": discovered}

    async def initialize_mappings(
        self, tickers: List[str], source: CryptoDataSource = CryptoDataSource.COINGECKO
    ) -> Dict[str, Any]:
        initialized = await self.mapping_service.initialize_mappings_for_symbols(self.mapping_repo, tickers, source)
        return {"success": True, "source": source.value, "requested": len(tickers), "initialized": initialized}

    def mapping_stats(self) -> Dict[str, Any]:
        return self.mapping_repo.get_mapping_stats()

    # -------------------------------------------------------------------------
    # Run bookkeeping
    # -------------------------------------------------------------------------
    def _start_run(self, name: str) -> ETLRun:
        run = ETLRun(source_name=name, status="running", records_processed=0)
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        return run

    def _finish_run(
        self,
        run: ETLRun,
        status: str,
        records: int,
        meta: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        run.status = status
        run.records_processed = records
        run.meta = meta
        run.error_message = error
        run.ended_at = datetime.now(timezone.utc)
        self.db.commit()

    def _fail_run(self, run: ETLRun, exc: Exception) -> None:
        self.db.rollback()
        run.status = "failure"
        run.error_message = str(exc)
        run.ended_at = datetime.now(timezone.utc)
        self.db.add(run)
        self.db.commit()
