import sys
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from inventory_backend.app.api import inventory
from inventory_backend.app.api.deps import get_session
from inventory_backend.app.core.database import async_session, engine
from inventory_backend.app.core.logging import setup_logging, get_logger
from inventory_backend.app.core.metrics import (
    PrometheusMiddleware,
    PrometheusInventoryObserver,
    get_metrics_response,
)
from inventory_backend.app.core.settings import get_settings
from inventory_backend.app.services.inventory import InventoryService
from inventory_backend.app.services.locks import KeyedLockCoordinator
from inventory_backend.app.services.reservations import ReservationService
from inventory_backend.app.services.sweeper import ExpirySweeper

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

# Use JSON format in production
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)

logger = get_logger(__name__)

logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
    reservation_ttl_minutes=settings.RESERVATION_TTL_MINUTES,
    sweep_interval_seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
)

observer = PrometheusInventoryObserver()
sku_locks = KeyedLockCoordinator("sku", timeout=settings.LOCK_TIMEOUT_SECONDS)
reservation_locks = KeyedLockCoordinator("reservation", timeout=settings.LOCK_TIMEOUT_SECONDS)

inventory_service = InventoryService(async_session, sku_locks, observer)
reservation_service = ReservationService(
    async_session,
    sku_locks,
    reservation_locks,
    observer,
    ttl=timedelta(minutes=settings.RESERVATION_TTL_MINUTES),
)
sweeper = ExpirySweeper(
    reservation_service,
    inventory_service,
    interval=settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    - Startup: start the reservation expiry sweeper
    - Shutdown: stop the sweeper, dispose of the connection pool
    """
    logger.info("Application starting up", version="1.0.0")
    if settings.EXPIRY_SWEEP_ENABLED:
        app.state.sweeper.start()
    yield
    await app.state.sweeper.stop()
    logger.info("Application shutting down")
    await engine.dispose()


app = FastAPI(title="Inventory Service", lifespan=lifespan)
app.state.inventory_service = inventory_service
app.state.reservation_service = reservation_service
app.state.sweeper = sweeper

ALLOWED_ORIGINS = settings.allowed_origins_list
if not ALLOWED_ORIGINS:
    if settings.is_production:
        logger.error("ALLOWED_ORIGINS must be set in production environment")
        raise ValueError("ALLOWED_ORIGINS environment variable is required in production")
    ALLOWED_ORIGINS = ["*"]
    logger.warning("CORS: Allowing all origins (development mode). Set ALLOWED_ORIGINS in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(PrometheusMiddleware)

app.include_router(inventory.router, prefix="/api/v1/inventory", tags=["inventory"])


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring and orchestration.
    Checks database connectivity and whether the sweeper is alive.
    """
    health_status = {
        "status": "healthy",
        "version": "1.0.0",
        "checks": {
            "database": "ok",
            "expiry_sweeper": "running" if app.state.sweeper.running else "stopped",
        }
    }

    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    return health_status


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return get_metrics_response()
