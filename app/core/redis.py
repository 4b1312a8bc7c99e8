"""
Redis Connection Manager
Shared Redis connection for the durable (RQ) job dispatch mode.
"""

import logging
from typing import Optional
from functools import lru_cache

from redis import Redis, ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError

from app.core.config import settings

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Lazily pooled Redis connection.

    Only the RQ dispatcher and the worker script touch Redis; the default
    in-process mode never opens a connection.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    def get_connection(self) -> Redis:
        if self._pool is None:
            self._pool = ConnectionPool.from_url(
                self.url,
                max_connections=10,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                decode_responses=False  # RQ needs bytes
            )
            logger.info(f"[Redis] Created connection pool for {mask_redis_url(self.url)}")

        if self._client is None:
            self._client = Redis(connection_pool=self._pool)

        return self._client

    def health_check(self) -> dict:
        """
        Ping Redis.

        Returns:
            dict with connected flag, server version or error text
        """
        try:
            client = self.get_connection()
            info = client.info("server")
            return {
                "status": "healthy" if client.ping() else "unhealthy",
                "connected": True,
                "redis_version": info.get("redis_version", "unknown"),
                "url": mask_redis_url(self.url),
            }
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"[Redis] Health check failed: {e}")
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
                "url": mask_redis_url(self.url),
            }

    def close(self):
        if self._pool:
            self._pool.disconnect()
            self._pool = None
            self._client = None
            logger.info("[Redis] Connection pool closed")


def mask_redis_url(url: str) -> str:
    """redis://:password@host:port -> redis://***@host:port"""
    if "@" in url:
        return f"redis://***@{url.split('@')[-1]}"
    return url


@lru_cache()
def get_redis_manager() -> RedisManager:
    return RedisManager()


def get_redis() -> Redis:
    """Get a Redis connection (convenience function)."""
    return get_redis_manager().get_connection()


def redis_health_check() -> dict:
    return get_redis_manager().health_check()


class Queues:
    """Queue names used by the RQ dispatcher and workers."""
    TRAINING = "training"
    GENERATION = "generation"
    DEFAULT = "default"

    ALL = [TRAINING, GENERATION, DEFAULT]


# Export all
__all__ = [
    "RedisManager",
    "mask_redis_url",
    "get_redis_manager",
    "get_redis",
    "redis_health_check",
    "Queues",
]
