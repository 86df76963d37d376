"""
HybridX API - Redis Cache Service.

Short-lived key-value storage (OAuth state nonces). Lazy-initializes so the
app starts without Redis, and a circuit breaker stops hammering a Redis
that keeps failing. Cache failures degrade to a miss, never to an error.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

CACHE_ERRORS = (RedisError, OSError, TypeError, ValueError)


class CacheService:
    """
    Redis cache service with TTL support.

    Includes circuit breaker pattern for resilience.
    """

    def __init__(self, redis_url: str, circuit_threshold: int = 5, circuit_timeout: int = 60):
        """Initialize Redis cache client (lazy connection)."""
        self._redis_url = redis_url
        self._client: Optional[redis.Redis] = None
        self._circuit_open_until: Optional[datetime] = None
        self._failure_count = 0
        self._circuit_threshold = circuit_threshold
        self._circuit_timeout = circuit_timeout

    def _is_circuit_open(self) -> bool:
        if self._circuit_open_until:
            if datetime.now() < self._circuit_open_until:
                return True
            # Timeout expired, allow a retry
            self._circuit_open_until = None
            self._failure_count = 0
        return False

    def _record_failure(self, operation: str, error: Exception) -> None:
        self._failure_count += 1
        logger.debug(f"Cache {operation} error: {error}")
        if self._failure_count >= self._circuit_threshold:
            self._circuit_open_until = datetime.now() + timedelta(seconds=self._circuit_timeout)
            logger.warning(
                f"Circuit breaker OPEN for {self._circuit_timeout}s after {self._failure_count} failures"
            )

    def _record_success(self) -> None:
        if self._failure_count > 0:
            self._failure_count = 0
            logger.info("Circuit breaker reset after successful operation")

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        """Cached value for ``key``, or None on miss or failure."""
        if self._is_circuit_open():
            return None
        try:
            value = await self.client.get(key)
        except CACHE_ERRORS as e:
            self._record_failure("get", e)
            return None
        self._record_success()
        if value is None:
            return None
        try:
            return json.loads(value)
        except ValueError:
            logger.warning(f"Failed to decode cached value for key: {key}")
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int = 3600) -> bool:
        if self._is_circuit_open():
            return False
        try:
            await self.client.setex(key, ttl_seconds, json.dumps(value))
        except CACHE_ERRORS as e:
            self._record_failure("set", e)
            return False
        self._record_success()
        return True

    async def pop(self, key: str) -> Optional[Any]:
        """Read and delete ``key`` in one round trip (one-time tokens)."""
        if self._is_circuit_open():
            return None
        try:
            pipeline = self.client.pipeline()
            pipeline.get(key)
            pipeline.delete(key)
            value, _ = await pipeline.execute()
        except CACHE_ERRORS as e:
            self._record_failure("pop", e)
            return None
        self._record_success()
        return json.loads(value) if value is not None else None

    async def delete(self, key: str) -> bool:
        if self._is_circuit_open():
            return False
        try:
            await self.client.delete(key)
        except CACHE_ERRORS as e:
            self._record_failure("delete", e)
            return False
        return True

    async def healthcheck(self) -> bool:
        """Check Redis connection health."""
        try:
            await self.client.ping()
        except CACHE_ERRORS as e:
            self._record_failure("ping", e)
            return False
        self._record_success()
        return True


_cache_service: Optional[CacheService] = None


def get_cache_service() -> CacheService:
    """Global cache instance, created on first use."""
    global _cache_service
    if _cache_service is None:
        from settings import settings
        _cache_service = CacheService(settings.REDIS_URL)
    return _cache_service
