from cryptoloader.api.routes.etl import router as etl_router
from cryptoloader.api.routes.health import router as health_router
from cryptoloader.api.routes.stats import router as stats_router

__all__ = ["etl_router", "health_router", "stats_router"]
