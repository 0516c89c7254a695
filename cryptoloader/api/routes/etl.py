"""ETL routes - Trigger symbol loads and mapping jobs."""

from fastapi import APIRouter, Depends, HTTPException

from cryptoloader.api.deps import get_etl_service
from cryptoloader.core.errors import CryptoLoaderError, SourceUnavailable
from cryptoloader.core.logging import get_logger
from cryptoloader.schemas.api import (
    MappingDiscoveryResponse,
    MappingInitRequest,
    MappingInitResponse,
    SymbolETLRequest,
    SymbolETLResponse,
)
from cryptoloader.schemas.crypto import CryptoDataSource
from cryptoloader.services.etl_service import ETLService

router = APIRouter(prefix="/etl", tags=["etl"])
log = get_logger("etl_routes")


@router.post("/symbols", response_model=SymbolETLResponse)
async def trigger_symbol_etl(
    request: SymbolETLRequest | None = None,
    service: ETLService = Depends(get_etl_service),
):
    """
    Load symbols from all configured providers (or the requested subset).

    Providers run concurrently; failing ones are reported per source in
    ``source_results`` while the rest are reconciled and persisted.
    ``success`` is false only when no provider returned data.
    """
    sources = request.sources if request else None
    log.info(f"Symbol ETL triggered for sources: {sources or 'all'}")

    try:
        result = await service.load_symbols(sources)
    except SourceUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:  # noqa: BLE001
        log.error(f"Symbol ETL failed: {exc}")
        return SymbolETLResponse(success=False, records_processed=0, error=str(exc))

    return SymbolETLResponse(**result)


@router.post("/mappings/{source}/discover", response_model=MappingDiscoveryResponse)
async def discover_mappings(
    source: CryptoDataSource,
    service: ETLService = Depends(get_etl_service),
):
    """
    Discover provider ids for every symbol that has no mapping for ``source``.

    Only coingecko and coinpaprika expose a discovery listing.
    """
    log.info(f"Mapping discovery triggered for {source.value}")
    try:
        result = await service.discover_mappings(source)
    except SourceUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except CryptoLoaderError as exc:
        return MappingDiscoveryResponse(success=False, source=source.value, error=str(exc))

    return MappingDiscoveryResponse(**result)


@router.post("/mappings/initialize", response_model=MappingInitResponse)
async def initialize_mappings(
    request: MappingInitRequest,
    service: ETLService = Depends(get_etl_service),
):
    """Resolve mappings for an explicit list of tickers."""
    try:
        result = await service.initialize_mappings(request.symbols, request.source)
    except SourceUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return MappingInitResponse(**result)
