"""
Main FastAPI application for the weather station dashboard.

This module contains the FastAPI application instance, its lifespan
(database tables and background scheduler) and the root endpoints.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from stationdash import __version__
from stationdash.columnar import reset_connection
from stationdash.config import settings
from stationdash.database import create_tables
from stationdash.routers.data import router as data_router
from stationdash.routers.forecast import router as forecast_router
from stationdash.routers.realtime import router as realtime_router
from stationdash.routers.statistics import router as statistics_router
from stationdash.services.scheduler import build_default_jobs, scheduler
from stationdash.utils.logging_config import setup_logging, get_logger

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Creates the forecast tables and starts the background scheduler on
    startup; stops the scheduler on shutdown.
    """
    logger.info("=" * 60)
    logger.info(f"{settings.SERVER_NAME} - Application starting up")
    logger.info(f"Environment: {'Development' if settings.DEBUG else 'Production'}")
    logger.info(f"Raw data: {settings.RAW_DATA_DIR} | Store: {settings.DATA_STORE_DIR}")
    logger.info(f"Database: {settings.SQLALCHEMY_DATABASE_URI.split('://')[0]}")
    logger.info("=" * 60)

    await create_tables()

    if settings.SCHEDULER_ENABLED:
        if not scheduler.jobs:
            for job in build_default_jobs():
                scheduler.add_job(job)
        scheduler.start()
    else:
        logger.info("Background scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    await scheduler.stop()
    reset_connection()
    logger.info("=" * 60)
    logger.info(f"{settings.SERVER_NAME} - Application shutting down")
    logger.info("=" * 60)


app = FastAPI(
    title=settings.SERVER_NAME,
    description="Statistics, forecasts and live readings of a home weather station",
    version=__version__,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Set up CORS
if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.get("/")
@limiter.limit(f"{settings.RATE_LIMIT_REQUESTS}/{settings.RATE_LIMIT_WINDOW}seconds")
async def root(request: Request):
    """
    Root endpoint returning API information.
    """
    return {
        "message": f"Welcome to {settings.SERVER_NAME}",
        "version": __version__,
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
@limiter.limit("60/minute")
async def health_check(request: Request):
    """
    Health check endpoint.

    Rate limit: 60 requests per minute
    """
    return {
        "status": "healthy",
        "scheduler": "running" if scheduler.is_running() else "stopped",
    }


# Include routers
app.include_router(statistics_router, prefix=settings.API_PREFIX)
app.include_router(data_router, prefix=settings.API_PREFIX)
app.include_router(forecast_router, prefix=settings.API_PREFIX)
app.include_router(realtime_router, prefix=settings.API_PREFIX)
