"""
Box Office Inventory API - Main Application Entry Point

Inventory hold & pricing engine for limited-capacity ticket sales:
- Oversell-proof reservations via guarded ledger updates
- Time-boxed holds returned to the pool by a background expiry sweeper
- Cart pricing with price tiers, promo codes and platform fees
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boxoffice.api.errors import register_exception_handlers
from boxoffice.api.middleware import RequestLoggingMiddleware
from boxoffice.api.router import api_router
from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger, setup_logging
from boxoffice.core.metrics import metrics_endpoint
from boxoffice.db.session import SessionLocal, engine
from boxoffice.services.cache_service import close_redis, get_cache_stats, get_redis
from boxoffice.services.expiry_sweeper import ExpirySweeper

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Availability reads go straight to the database")

    sweeper = ExpirySweeper(
        SessionLocal,
        interval_seconds=settings.SWEEPER_INTERVAL_SECONDS,
        batch_size=settings.SWEEPER_BATCH_SIZE,
    )
    app.state.sweeper = sweeper
    if settings.SWEEPER_ENABLED:
        sweeper.start()

    yield

    await sweeper.stop()
    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Ticket inventory holds, expiry and cart pricing without overselling",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    sweeper = getattr(app.state, "sweeper", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
        "sweeper": "running" if sweeper and sweeper.running else "stopped",
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
