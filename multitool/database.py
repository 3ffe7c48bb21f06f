"""
Database layer: async PostgreSQL pool via SQLAlchemy 2.0 + asyncpg.

Provides:
    • DatabaseConfig → SQLAlchemy engine option mapping
    • Pool factory that opens the minimum connections up front
    • Shareable pool handle with connection and session checkouts

Usage:
    from multitool.config import DatabaseConfig
    from multitool.database import create_database_pool

    pool = await create_database_pool(DatabaseConfig(database="orders"))

    async with pool.connection() as conn:
        await conn.execute(text("SELECT 1"))

    async with pool.session() as session:
        session.add(Order(id=1))

    await pool.close()
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Dict

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from multitool.config import DatabaseConfig
from multitool.errors import PoolConnectionError

logger = logging.getLogger(__name__)

ASYNC_DRIVER = "postgresql+asyncpg"


# ── Option mapping ──

def build_database_url(config: DatabaseConfig) -> URL:
    """SQLAlchemy URL for the asyncpg driver."""
    url = make_url(config.dsn())
    if url.drivername in ("postgresql", "postgres"):
        url = url.set(drivername=ASYNC_DRIVER)
    return url


def build_engine_options(config: DatabaseConfig) -> Dict[str, Any]:
    """
    Map pool bounds and timeouts onto create_async_engine() keyword arguments.

    SQLAlchemy's queue pool keeps ``pool_size`` connections and opens up to
    ``max_overflow`` more on demand; a pool_size of 0 means unbounded there,
    so it never drops below 1.
    """
    pool_size = max(config.pool_min_size, 1)
    return {
        "pool_size": pool_size,
        "max_overflow": config.pool_max_size - pool_size,
        "pool_timeout": config.acquire_timeout,
        "pool_recycle": config.max_lifetime,
        "echo": config.echo,
        "connect_args": {"timeout": config.connect_timeout},
    }


# ── Pool handle ──

class DatabasePool:
    """
    Shared handle over one engine and its connection pool.

    Safe to share between tasks; every checkout is exclusive to the caller
    until its context exits.
    """

    def __init__(self, engine: AsyncEngine, config: DatabaseConfig):
        self.engine = engine
        self.config = config
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """Check out one connection; returned to the pool on exit."""
        async with self.engine.connect() as conn:
            yield conn

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield an ORM session that commits on success, rolls back on error."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> None:
        async with self.connection() as conn:
            await conn.execute(text("SELECT 1"))

    def status(self) -> Dict[str, Any]:
        """Pool bounds and current usage."""
        pool = self.engine.pool
        info: Dict[str, Any] = {
            "target": self.config.redacted_dsn(),
            "min_size": self.config.pool_min_size,
            "max_size": self.config.pool_max_size,
        }
        for key, attr in (("pool_size", "size"), ("checked_out", "checkedout"), ("idle", "checkedin")):
            getter = getattr(pool, attr, None)
            if callable(getter):
                info[key] = getter()
        return info

    async def close(self) -> None:
        """Dispose engine connections."""
        await self.engine.dispose()
        logger.info("Database pool closed: %s", self.config.redacted_dsn())

    async def __aenter__(self) -> "DatabasePool":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


# ── Factory ──

async def _warm_up(engine: AsyncEngine, count: int) -> None:
    """Open ``count`` connections at once, then hand them back to the pool."""
    async with AsyncExitStack() as stack:
        for _ in range(count):
            conn = await stack.enter_async_context(engine.connect())
            await conn.execute(text("SELECT 1"))


async def create_database_pool(config: DatabaseConfig) -> DatabasePool:
    """
    Build a PostgreSQL pool from ``config`` and verify it can connect.

    Raises PoolConnectionError if the server is unreachable, rejects the
    login, or the warm-up exceeds ``config.connect_timeout``. The engine is
    disposed before raising, including when the caller cancels. No retries.
    """
    target = config.redacted_dsn()
    try:
        engine = create_async_engine(build_database_url(config), **build_engine_options(config))
    except Exception as e:
        logger.warning("Database pool rejected its configuration: %s (%s)", target, e)
        raise PoolConnectionError("database", str(e), target=target) from e

    try:
        await asyncio.wait_for(
            _warm_up(engine, max(config.pool_min_size, 1)),
            timeout=config.connect_timeout,
        )
    except asyncio.TimeoutError as e:
        await engine.dispose()
        logger.warning("Database warm-up timed out after %.1fs: %s", config.connect_timeout, target)
        raise PoolConnectionError(
            "database",
            f"timed out after {config.connect_timeout}s",
            target=target,
        ) from e
    except Exception as e:
        await engine.dispose()
        logger.warning("Database unavailable: %s (%s)", target, e)
        raise PoolConnectionError("database", str(e), target=target) from e
    except BaseException:
        await engine.dispose()
        raise

    logger.info(
        "Database pool ready: %s (min=%d, max=%d)",
        target, config.pool_min_size, config.pool_max_size,
    )
    return DatabasePool(engine, config)
