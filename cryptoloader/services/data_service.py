"""Data Service - read-only queries behind the stats endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from cryptoloader.models.runs import ETLRun
from cryptoloader.models.symbols import Symbol


class DataService:
    """Handles query operations for observability - reads from DB only, no writes."""

    def __init__(self, db: Session):
        self.db = db

    def get_etl_runs(
        self,
        source: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 10,
    ) -> List[ETLRun]:
        """Get recent runs with optional filtering."""
        stmt = select(ETLRun)

        if source:
            stmt = stmt.where(ETLRun.source_name == source)
        if status:
            stmt = stmt.where(ETLRun.status == status)

        stmt = stmt.order_by(ETLRun.started_at.desc()).limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def get_last_run(self) -> Optional[ETLRun]:
        stmt = select(ETLRun).order_by(ETLRun.started_at.desc()).limit(1)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_symbols_summary(self) -> Dict[str, Any]:
        """Symbol counts by winning source, plus active/total."""
        total = self.db.execute(select(func.count()).select_from(Symbol)).scalar() or 0
        active = self.db.execute(
            select(func.count()).select_from(Symbol).where(Symbol.is_active.is_(True))
        ).scalar() or 0
        by_source = self.db.execute(
            select(Symbol.primary_source, func.count()).group_by(Symbol.primary_source)
        ).all()

        return {
            "total": total,
            "active": active,
            "by_primary_source": {source: count for source, count in by_source},
        }
