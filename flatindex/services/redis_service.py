"""Redis service for distributed locks.

This module provides a centralized Redis client for rebuild locks (one
rebuild per index across API workers and arq workers).

Redis is optional for single-process deployments; callers check
``is_connected`` and degrade when it is unavailable.
"""

import logging
import uuid
from typing import Any, Optional

import redis.asyncio as aioredis

from ..config import settings

logger = logging.getLogger(__name__)

# Delete the key only if it still holds our token
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisService:
    """
    Async Redis service.

    Features:
    - Connection pooling with automatic reconnection
    - Token-checked locks (SET NX EX + compare-and-delete)
    """

    def __init__(self) -> None:
        """Initialize the Redis service (not connected yet)."""
        self._redis: Optional[aioredis.Redis] = None

    async def connect(self) -> None:
        """Initialize Redis connection with connection pooling."""
        self._redis = await aioredis.from_url(
            settings.redis_url,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout,
            retry_on_timeout=settings.redis_retry_on_timeout,
            decode_responses=True,
        )
        # Test connection
        await self._redis.ping()
        logger.info("Redis connected successfully")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._redis:
            await self._redis.close()
            self._redis = None
        logger.info("Redis disconnected")

    @property
    def client(self) -> aioredis.Redis:
        """Get Redis client instance."""
        if self._redis is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._redis

    @property
    def is_connected(self) -> bool:
        """Check if Redis is connected."""
        return self._redis is not None

    # =========================================================================
    # Lock Methods
    # =========================================================================

    async def acquire_lock(self, key: str, ttl: int) -> Optional[str]:
        """
        Try to take a lock without waiting.

        Args:
            key: The lock key
            ttl: Lock expiry in seconds

        Returns:
            The owner token, or None if the lock is held elsewhere
        """
        token = uuid.uuid4().hex
        acquired = await self.client.set(key, token, nx=True, ex=ttl)
        return token if acquired else None

    async def release_lock(self, key: str, token: str) -> bool:
        """
        Release a lock if it is still owned by ``token``.

        Returns:
            True if the lock was released
        """
        released = await self.client.eval(_RELEASE_LOCK_SCRIPT, 1, key, token)
        return bool(released)

    # =========================================================================
    # Health Check
    # =========================================================================

    async def health_check(self) -> dict[str, Any]:
        """
        Get Redis health status and stats.

        Returns:
            Dictionary with connection status and memory info
        """
        try:
            if not self.is_connected:
                return {"status": "disconnected"}

            info = await self.client.info("memory")
            return {
                "status": "healthy",
                "used_memory_human": info.get("used_memory_human", "unknown"),
            }
        except Exception as e:
            return {"status": "error", "error": str(e)}


# Global singleton instance
redis_service = RedisService()


# Export for use in other modules
__all__ = [
    "RedisService",
    "redis_service",
]
