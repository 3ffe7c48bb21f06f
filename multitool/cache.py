"""
Redis cache layer: async Redis connection pool with typed helpers.

Provides:
    • RedisConfig → redis-py BlockingConnectionPool mapping
    • Pool factory that verifies connectivity before returning
    • Shareable pool handle with pinned-connection checkouts
    • TTL-aware get/set/delete

Usage:
    from multitool.config import RedisConfig
    from multitool.cache import create_redis_pool

    cache = await create_redis_pool(RedisConfig(host="127.0.0.1"))

    await cache.set("session:42", "alive", ttl=3600)
    value = await cache.get("session:42")

    # Any other command through a checked-out connection
    async with cache.connection() as conn:
        await conn.incr("counter", 1)

    await cache.close()
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from redis.asyncio import BlockingConnectionPool, Redis

from multitool.config import RedisConfig
from multitool.errors import PoolConnectionError

logger = logging.getLogger(__name__)


def build_pool_options(config: RedisConfig) -> Dict[str, Any]:
    """Map pool bounds and timeouts onto BlockingConnectionPool keyword arguments."""
    return {
        "max_connections": config.pool_max_size,
        "timeout": config.acquire_timeout,
        "socket_connect_timeout": config.connect_timeout,
        "decode_responses": True,
    }


class RedisPool:
    """
    Shared handle over one blocking connection pool.

    ``client`` checks a connection out per command. ``connection()`` pins
    one connection to the caller for a sequence of commands.
    """

    def __init__(self, client: Redis, config: RedisConfig):
        self.client = client
        self.config = config

    @property
    def connection_pool(self) -> BlockingConnectionPool:
        return self.client.connection_pool

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Redis]:
        """Check out one connection; released back to the pool on exit."""
        async with self.client.client() as conn:
            yield conn

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store ``value`` under ``key``; ``ttl`` in seconds, None = never expires."""
        if ttl is not None:
            await self.client.set(key, value, ex=ttl)
        else:
            await self.client.set(key, value)

    async def get(self, key: str) -> Optional[str]:
        """Value for ``key``, or None when it does not exist."""
        return await self.client.get(key)

    async def delete(self, key: str) -> bool:
        """Delete a key. True if it existed."""
        return bool(await self.client.delete(key))

    async def ping(self) -> None:
        await self.client.ping()

    def status(self) -> Dict[str, Any]:
        """Pool bounds and current usage."""
        pool = self.connection_pool
        info: Dict[str, Any] = {
            "target": self.config.redacted_dsn(),
            "min_size": self.config.pool_min_size,
            "max_size": self.config.pool_max_size,
        }
        in_use = getattr(pool, "_in_use_connections", None)
        if in_use is not None:
            info["checked_out"] = len(in_use)
        return info

    async def close(self) -> None:
        """Close the client and disconnect every pooled connection."""
        await self.client.aclose()
        await self.connection_pool.disconnect()
        logger.info("Redis pool closed: %s", self.config.redacted_dsn())

    async def __aenter__(self) -> "RedisPool":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


async def _warm_up(client: Redis, count: int) -> None:
    """Hold ``count`` pinned connections at once and PING through each."""
    async with AsyncExitStack() as stack:
        for _ in range(count):
            conn = await stack.enter_async_context(client.client())
            await conn.ping()


async def create_redis_pool(config: RedisConfig) -> RedisPool:
    """
    Build a Redis pool from ``config`` and verify it can connect.

    Raises PoolConnectionError if the server is unreachable, rejects the
    credentials, or the warm-up exceeds ``config.connect_timeout``. The pool
    is disconnected before raising, including when the caller cancels.
    No retries.
    """
    target = config.redacted_dsn()
    try:
        pool = BlockingConnectionPool.from_url(config.dsn(), **build_pool_options(config))
        client = Redis(connection_pool=pool)
    except Exception as e:
        logger.warning("Redis pool rejected its configuration: %s (%s)", target, e)
        raise PoolConnectionError("redis", str(e), target=target) from e

    try:
        await asyncio.wait_for(
            _warm_up(client, max(config.pool_min_size, 1)),
            timeout=config.connect_timeout,
        )
    except asyncio.TimeoutError as e:
        await pool.disconnect()
        logger.warning("Redis warm-up timed out after %.1fs: %s", config.connect_timeout, target)
        raise PoolConnectionError(
            "redis",
            f"timed out after {config.connect_timeout}s",
            target=target,
        ) from e
    except Exception as e:
        await pool.disconnect()
        logger.warning("Redis unavailable: %s (%s)", target, e)
        raise PoolConnectionError("redis", str(e), target=target) from e
    except BaseException:
        await pool.disconnect()
        raise

    logger.info(
        "Redis pool ready: %s (min=%d, max=%d)",
        target, config.pool_min_size, config.pool_max_size,
    )
    return RedisPool(client, config)
