"""Stats routes - ETL observability and mapping coverage."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from cryptoloader.api.deps import get_db, get_etl_service
from cryptoloader.core.errors import RepositoryError
from cryptoloader.schemas.api import MappingStatsResponse, StatsResponse, SymbolsSummary
from cryptoloader.services.data_service import DataService
from cryptoloader.services.etl_service import ETLService

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=list[StatsResponse])
def get_etl_stats(
    source: Optional[str] = Query(None, description="Filter by run name (symbols, mappings:coingecko, ...)"),
    status: Optional[str] = Query(None, description="Filter by status (running, success, failure)"),
    limit: int = Query(10, ge=1, le=50, description="Number of runs to return"),
    db: Session = Depends(get_db),
):
    """
    Get recent ETL run statistics.

    Symbol runs carry the per-source breakdown (fetched, errors,
    rate limiting, attempts) in ``meta``.
    """
    service = DataService(db)
    runs = service.get_etl_runs(source=source, status=status, limit=limit)

    return [
        StatsResponse(
            run_id=str(run.run_id),
            source_name=run.source_name,
            status=run.status,
            records_processed=run.records_processed,
            error_message=run.error_message,
            meta=run.meta,
            started_at=run.started_at,
            ended_at=run.ended_at,
        )
        for run in runs
    ]


@router.get("/symbols", response_model=SymbolsSummary)
def get_symbols_summary(db: Session = Depends(get_db)):
    """Symbol counts, split by the provider whose record won reconciliation."""
    return SymbolsSummary(**DataService(db).get_symbols_summary())


@router.get("/mappings", response_model=MappingStatsResponse)
def get_mapping_stats(service: ETLService = Depends(get_etl_service)):
    """Mapped and unmapped symbol counts per provider."""
    try:
        return MappingStatsResponse(**service.mapping_stats())
    except RepositoryError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
