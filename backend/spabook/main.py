# backend/spabook/main.py
from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION
from .database import get_db_pool_status
from .errors import register_error_handlers
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes import prometheus
from .routes.v1 import bookings as bookings_v1

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        f"Starting {API_TITLE} v{API_VERSION} "
        f"(environment={settings.environment}, uncovered_window_policy={settings.uncovered_window_policy})"
    )
    yield
    logger.info(f"Shutting down {API_TITLE}")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    lifespan=app_lifespan,
)

# Register unified error envelope handlers
register_error_handlers(app)

app.add_middleware(PrometheusMiddleware)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")

app.include_router(api_v1)
app.include_router(prometheus.router)


@app.get("/health")
def health_check() -> Dict[str, Any]:
    """Liveness probe with connection pool stats."""
    return {
        "status": "healthy",
        "version": API_VERSION,
        "environment": settings.environment,
        "db_pool": get_db_pool_status(),
    }
