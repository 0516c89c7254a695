from pathlib import Path
from contextlib import asynccontextmanager
import asyncio
from typing import Optional

from alembic import command
from alembic.config import Config
from fastapi import FastAPI

from cryptoloader.api.routes import etl, health, stats
from cryptoloader.core.config import settings
from cryptoloader.core.db import SessionLocal
from cryptoloader.core.logging import get_logger
from cryptoloader.services.etl_service import ETLService


log = get_logger("app")

# Background task handle
_etl_task: Optional[asyncio.Task] = None


def run_migrations() -> None:
    """Execute Alembic migrations programmatically on startup."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    log.info("Running Alembic migrations to head")
    command.upgrade(alembic_cfg, "head")
    log.info("Alembic migrations applied")


async def run_symbol_etl() -> None:
    """Load and persist the symbol universe from every configured source."""
    log.info("Starting scheduled symbol ETL...")
    db = SessionLocal()
    try:
        result = await ETLService(db).load_symbols()

        for source, outcome in result.get("source_results", {}).items():
            if outcome.get("errors"):
                log.error(f"Symbol ETL {source}: failed - {outcome['errors'][0]}")
            else:
                log.info(f"Symbol ETL {source}: fetched {outcome.get('symbols_fetched', 0)} symbols")

        log.info(f"Symbol ETL completed: processed={result.get('records_processed', 0)}")
    except Exception as exc:
        log.exception(f"Symbol ETL failed: {exc}")
    finally:
        db.close()


async def scheduled_etl_task() -> None:
    """Background task that runs the symbol ETL at the configured interval."""
    interval = settings.ETL_INTERVAL_SECONDS
    log.info(f"Scheduled ETL task started (interval: {interval}s)")

    # Run immediately on startup
    await run_symbol_etl()

    while True:
        try:
            await asyncio.sleep(interval)
            await run_symbol_etl()
        except asyncio.CancelledError:
            log.info("Scheduled ETL task cancelled")
            break


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _etl_task

    log.info(f"Starting application in {settings.ENV.upper()} mode")
    if settings.is_production:
        log.info("Production mode: Debug disabled, docs disabled, stricter logging")
    else:
        log.info("Development mode: Debug enabled, docs available")

    log.info(f"Enabled sources: {', '.join(s.value for s in settings.enabled_sources) or 'none'}")

    try:
        run_migrations()
    except Exception:
        log.exception("Failed to apply migrations on startup")
        raise

    if settings.ETL_ENABLED:
        log.info("Starting scheduled ETL background task...")
        _etl_task = asyncio.create_task(scheduled_etl_task())
    else:
        log.info("Scheduled ETL is disabled (ETL_ENABLED=false)")

    yield

    log.info("Shutting down services...")
    if _etl_task:
        log.info("Cancelling scheduled ETL task...")
        _etl_task.cancel()
        try:
            await _etl_task
        except asyncio.CancelledError:
            pass
        _etl_task = None

    log.info("Application shutdown complete")


app = FastAPI(
    title="Crypto Symbol Loader",
    description="Multi-source cryptocurrency symbol acquisition, reconciliation and id mapping",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    debug=settings.debug_enabled,
)


app.include_router(etl.router)
app.include_router(health.router)
app.include_router(stats.router)
