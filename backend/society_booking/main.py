"""
Society Amenity Booking API - application entry point.

Residents reserve shared resources (pool, gym, hall, garden, guest parking);
administrators approve, reject and report. The booking core guarantees no
double booking under concurrent requests; see services/admission_controller.py.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from society_booking.api.middleware import RequestLoggingMiddleware
from society_booking.api.router import api_router
from society_booking.core.config import get_settings
from society_booking.core.exceptions import BookingError, booking_error_handler
from society_booking.core.logging import get_logger, setup_logging
from society_booking.core.metrics import metrics_endpoint
from society_booking.db.session import engine
from society_booking.infrastructure.redis_client import close_redis, get_redis
from society_booking.services.cache_service import get_cache_stats
from society_booking.services.strategy_factory import build_admission_strategy

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        admission_strategy=settings.ADMISSION_STRATEGY,
        auto_confirm=settings.RESERVATION_AUTO_CONFIRM,
    )

    if await get_redis() is None:
        logger.warning("redis_unavailable", message="Catalog cache off; redis gate fails open")

    gate = await build_admission_strategy(settings)
    app.state.admission_strategy = gate
    logger.info("admission_gate_ready", strategy=gate.name)

    try:
        yield
    finally:
        await gate.close()
        await close_redis()
        await engine.dispose()
        logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Amenity and guest-parking reservations with double-booking prevention",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict to the resident app origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)
app.add_exception_handler(BookingError, booking_error_handler)
app.include_router(api_router)


async def _database_status() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health_database_unavailable", error=str(e))
        return "unavailable"
    return "ok"


@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness plus dependency status for load balancers."""
    database = await _database_status()
    return {
        "status": "healthy" if database == "ok" else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "admission_strategy": settings.ADMISSION_STRATEGY,
        "database": database,
        "cache": await get_cache_stats(),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {"service": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/docs"}
