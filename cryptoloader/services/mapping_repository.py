"""Persistence contract for provider id mappings, plus its PostgreSQL implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cryptoloader.core.errors import RepositoryError
from cryptoloader.core.logging import get_logger
from cryptoloader.models.api_map import CryptoApiMap
from cryptoloader.models.symbols import CRYPTO_SEC_TYPE, Symbol
from cryptoloader.schemas.crypto import CryptoDataSource

log = get_logger("mapping_repository")


class SymbolRef(NamedTuple):
    sid: int
    symbol: str
    name: str


class MappingRepository(ABC):
    """What the mapping service needs from storage."""

    @abstractmethod
    def get_api_id(self, sid: int, source: CryptoDataSource) -> Optional[str]:
        ...

    @abstractmethod
    def upsert_api_mapping(
        self,
        sid: int,
        source: CryptoDataSource,
        api_id: str,
        api_slug: Optional[str] = None,
        api_symbol: Optional[str] = None,
        is_active: bool = True,
    ) -> None:
        ...

    @abstractmethod
    def get_symbols_needing_mapping(self, source: CryptoDataSource) -> List[SymbolRef]:
        """Active crypto symbols that have no mapping row for ``source``."""

    @abstractmethod
    def find_symbol_id(self, ticker: str) -> Optional[int]:
        ...

    @abstractmethod
    def get_mapping_stats(self) -> Dict[str, Any]:
        ...


class SqlMappingRepository(MappingRepository):
    """MappingRepository over the crypto_api_map table.

    Writes are committed immediately so a crash mid-discovery keeps every
    mapping found so far.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_api_id(self, sid: int, source: CryptoDataSource) -> Optional[str]:
        stmt = select(CryptoApiMap.api_id).where(
            CryptoApiMap.sid == sid,
            CryptoApiMap.api_source == source.value,
            CryptoApiMap.is_active.is_(True),
        )
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Mapping lookup failed for sid={sid}: {exc}", source.value) from exc

    def upsert_api_mapping(
        self,
        sid: int,
        source: CryptoDataSource,
        api_id: str,
        api_slug: Optional[str] = None,
        api_symbol: Optional[str] = None,
        is_active: bool = True,
    ) -> None:
        try:
            self.db.execute(build_mapping_upsert(sid, source, api_id, api_slug, api_symbol, is_active))
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise RepositoryError(f"Mapping upsert failed for sid={sid}: {exc}", source.value) from exc

    def get_symbols_needing_mapping(self, source: CryptoDataSource) -> List[SymbolRef]:
        stmt = (
            select(Symbol.sid, Symbol.symbol, Symbol.name)
            .outerjoin(
                CryptoApiMap,
                and_(CryptoApiMap.sid == Symbol.sid, CryptoApiMap.api_source == source.value),
            )
            .where(
                Symbol.sec_type == CRYPTO_SEC_TYPE,
                Symbol.is_active.is_(True),
                CryptoApiMap.sid.is_(None),
            )
            .order_by(Symbol.priority, Symbol.symbol)
        )
        try:
            rows = self.db.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Query for unmapped symbols failed: {exc}", source.value) from exc
        return [SymbolRef(sid=row.sid, symbol=row.symbol, name=row.name) for row in rows]

    def find_symbol_id(self, ticker: str) -> Optional[int]:
        stmt = select(Symbol.sid).where(
            Symbol.symbol == ticker.strip().upper(),
            Symbol.sec_type == CRYPTO_SEC_TYPE,
        )
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Symbol lookup failed for {ticker}: {exc}") from exc

    def get_mapping_stats(self) -> Dict[str, Any]:
        try:
            total_symbols = self.db.execute(
                select(func.count()).select_from(Symbol).where(Symbol.sec_type == CRYPTO_SEC_TYPE)
            ).scalar_one()
            per_source = self.db.execute(
                select(CryptoApiMap.api_source, func.count())
                .where(CryptoApiMap.is_active.is_(True))
                .group_by(CryptoApiMap.api_source)
            ).all()
        except SQLAlchemyError as exc:
            raise RepositoryError(f"Mapping stats query failed: {exc}") from exc

        counts = dict(per_source)
        mapped = {source.value: counts.get(source.value, 0) for source in CryptoDataSource}
        return {
            "total_symbols": total_symbols,
            "mapped": mapped,
            "unmapped": {source: max(total_symbols - count, 0) for source, count in mapped.items()},
        }


def build_mapping_upsert(
    sid: int,
    source: CryptoDataSource,
    api_id: str,
    api_slug: Optional[str] = None,
    api_symbol: Optional[str] = None,
    is_active: bool = True,
    rank: Optional[int] = None,
):
    """INSERT ... ON CONFLICT (sid, api_source) DO UPDATE for one mapping row."""
    now = datetime.now(timezone.utc)
    stmt = insert(CryptoApiMap).values(
        sid=sid,
        api_source=source.value,
        api_id=api_id,
        api_slug=api_slug,
        api_symbol=api_symbol,
        rank=rank,
        is_active=is_active,
        last_verified=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=[CryptoApiMap.sid, CryptoApiMap.api_source],
        set_={
            "api_id": stmt.excluded.api_id,
            "api_slug": func.coalesce(stmt.excluded.api_slug, CryptoApiMap.api_slug),
            "api_symbol": func.coalesce(stmt.excluded.api_symbol, CryptoApiMap.api_symbol),
            "rank": func.coalesce(stmt.excluded.rank, CryptoApiMap.rank),
            "is_active": stmt.excluded.is_active,
            "last_verified": stmt.excluded.last_verified,
            "updated_at": now,
        },
    )
