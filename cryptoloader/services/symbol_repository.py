"""Idempotent persistence of reconciled symbols."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from cryptoloader.core.logging import get_logger
from cryptoloader.models.symbols import CRYPTO_SEC_TYPE, Symbol
from cryptoloader.schemas.crypto import UNRANKED_PRIORITY, CryptoSymbol
from cryptoloader.services.mapping_repository import build_mapping_upsert

log = get_logger("symbol_repository")

DEFAULT_CHUNK_SIZE = 250


class SymbolRepository:
    """Writes symbols by ticker, then records each provider id in crypto_api_map.

    Does not commit; the caller owns the transaction.
    """

    def __init__(self, db: Session, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.db = db
        self.chunk_size = chunk_size

    def upsert_symbols(self, symbols: Sequence[CryptoSymbol]) -> int:
        if not symbols:
            return 0

        # One row per ticker per statement; ON CONFLICT rejects duplicates in a single VALUES list.
        unique: Dict[str, CryptoSymbol] = {}
        for record in symbols:
            unique[record.symbol] = record
        records = list(unique.values())

        written = 0
        for start in range(0, len(records), self.chunk_size):
            chunk = records[start : start + self.chunk_size]
            sids = self._upsert_chunk(chunk)
            self._record_mappings(chunk, sids)
            written += len(chunk)
            log.debug(f"Upserted symbols {start + 1}-{start + len(chunk)} of {len(records)}")

        log.info(f"Upserted {written} symbols")
        return written

    def _upsert_chunk(self, chunk: List[CryptoSymbol]) -> Dict[str, int]:
        stmt = insert(Symbol).values([self._row(record) for record in chunk])
        stmt = stmt.on_conflict_do_update(
            index_elements=[Symbol.symbol],
            set_={
                "name": stmt.excluded.name,
                "priority": stmt.excluded.priority,
                "market_cap_rank": stmt.excluded.market_cap_rank,
                "base_currency": stmt.excluded.base_currency,
                "quote_currency": stmt.excluded.quote_currency,
                "primary_source": stmt.excluded.primary_source,
                "is_active": stmt.excluded.is_active,
                "additional_data": stmt.excluded.additional_data,
                "updated_at": datetime.now(timezone.utc),
            },
        ).returning(Symbol.sid, Symbol.symbol)

        return {row.symbol: row.sid for row in self.db.execute(stmt)}

    def _record_mappings(self, chunk: List[CryptoSymbol], sids: Dict[str, int]) -> None:
        for record in chunk:
            sid = sids.get(record.symbol)
            if sid is None:
                log.warning(f"No sid returned for {record.symbol}; skipping mapping")
                continue
            self.db.execute(
                build_mapping_upsert(
                    sid,
                    record.source,
                    record.source_id,
                    api_slug=record.additional_data.get("slug"),
                    api_symbol=record.symbol,
                    is_active=record.is_active,
                    rank=record.market_cap_rank,
                )
            )

    @staticmethod
    def _row(record: CryptoSymbol) -> Dict[str, Any]:
        return {
            "symbol": record.symbol,
            "name": record.name,
            "sec_type": CRYPTO_SEC_TYPE,
            "priority": record.market_cap_rank or UNRANKED_PRIORITY,
            "market_cap_rank": record.market_cap_rank,
            "base_currency": record.base_currency,
            "quote_currency": record.quote_currency,
            "primary_source": record.source.value,
            "is_active": record.is_active,
            "additional_data": record.additional_data or None,
        }
