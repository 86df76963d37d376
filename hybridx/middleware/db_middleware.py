# hybridx/middleware/db_middleware.py
"""
Lazy Database Connection Middleware.

Connects to MongoDB on the first request when startup could not. Health
checks never wait on the database.
"""

import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from database import Database
from settings import settings

logger = logging.getLogger(__name__)

SKIP_PATHS = ("/health", "/health/detailed")


class LazyDatabaseMiddleware(BaseHTTPMiddleware):
    """Ensures the database connection before a request is handled."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path not in SKIP_PATHS and not Database._initialized:
            logger.info("Lazy initializing MongoDB connection...")
            if not await Database.ensure_connected(settings.DATABASE_URL, settings.DATABASE_NAME):
                # Repositories raise PersistenceError for the request
                logger.error("MongoDB unavailable, handling request without a connection")

        return await call_next(request)
