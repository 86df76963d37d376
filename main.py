# main.py
"""
HybridX API - Main Application.

FastAPI app with MongoDB backend for HYROX and running training.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import sentry_sdk
from pymongo.errors import PyMongoError
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from database import Database
from settings import settings
from hybridx.middleware.db_middleware import LazyDatabaseMiddleware
from hybridx.middleware.security_headers import SecurityHeadersMiddleware
from hybridx.utils.errors import ExternalServiceError, HybridXException

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            ),
        ],
    )
    logger.info(f"Sentry initialized ({settings.SENTRY_ENVIRONMENT})")
else:
    logger.warning("Sentry DSN not configured - error tracking disabled")

# Import routers
from hybridx.routes import (
    profile,
    programs,
    strava,
    subscription,
    webhooks,
    workouts
)
from hybridx.services.autosave import get_notes_autosave


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting HybridX API...")
    # Falls back to lazy initialization on the first request
    try:
        await Database.connect_db(settings.DATABASE_URL, settings.DATABASE_NAME)
        logger.info("Database initialized successfully")
    except PyMongoError as e:
        logger.warning(f"Failed to initialize database at startup: {e}")
        logger.warning("Database will be initialized lazily on first request")

    yield

    # Pending notes must reach the store before the connection goes away
    await get_notes_autosave().flush_all()
    await Database.close_db()
    logger.info("HybridX API shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="HybridX API",
    version="1.0.0",
    description="HYROX and running training programs, sessions and subscriptions",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Lazy database connection middleware
app.add_middleware(LazyDatabaseMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.exception_handler(HybridXException)
async def hybridx_exception_handler(request: Request, exc: HybridXException) -> JSONResponse:
    """Render application errors as JSON with their status code."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")
    content = {
        "error": type(exc).__name__,
        "message": exc.message,
        "detail": exc.detail,
    }
    if isinstance(exc, ExternalServiceError):
        content["provider"] = exc.provider
        content["reconnect_required"] = exc.reconnect_required
    return JSONResponse(status_code=exc.status_code, content=content)


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint - fast response without database dependency."""
    return {
        "status": "ok",
        "environment": settings.ENV,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0"
    }


@app.get("/health/detailed")
async def health_check_detailed():
    """Detailed health check with MongoDB and Redis connectivity."""
    from hybridx.services.cache import get_cache_service

    mongo_ok = await Database.ping()
    redis_ok = await get_cache_service().healthcheck()
    return {
        "status": "ok" if mongo_ok else "degraded",
        "database": "mongodb",
        "database_connected": mongo_ok,
        "redis_connected": redis_ok,
        "environment": settings.ENV,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0"
    }


# Include routers
app.include_router(profile.router, prefix="/profile", tags=["Profile"])
app.include_router(workouts.router, prefix="/workouts", tags=["Workouts"])
app.include_router(programs.router, prefix="/programs", tags=["Programs"])
app.include_router(subscription.router, prefix="/subscription", tags=["Subscription"])
app.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(strava.router, prefix="/strava", tags=["Strava"])


# Root endpoint
@app.get("/")
async def root():
    """API root endpoint."""
    return {
        "message": "HybridX API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health"
    }
