"""Async database connection and session management.

Two engines are configured:
- ``engine``: primary store holding source documents, the queue ledger and
  index definitions.
- ``search_engine``: the search store holding flattened documents. It points
  at the primary database unless SEARCH_DB_URL is set.
"""

import asyncio
import logging
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict[str, Any]:
    """Pool options for a connection URL (SQLite pools take no sizing)."""
    options: dict[str, Any] = {"echo": settings.sql_echo, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=15,  # Fail fast - let clients retry rather than hang
            pool_recycle=3600,
        )
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

if settings.search_database_url == settings.database_url:
    search_engine = engine
else:
    search_engine = create_async_engine(
        settings.search_database_url, **_engine_options(settings.search_database_url)
    )

# Create async session factories
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

search_session_maker = async_sessionmaker(
    search_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Declarative base for ORM models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Async dependency injection for FastAPI.

    Auto-commits on success, rollbacks on exception.

    Usage:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Item))
            return result.scalars().all()
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_database() -> str:
    """Run a trivial query against the primary database."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "healthy"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        return "unavailable"


async def warmup_connection_pool(pool_size: int = None) -> None:
    """
    Pre-warm the database connection pool at startup.

    Creating connections upfront keeps the first indexing passes from
    paying connection setup cost during a burst of writes.

    Args:
        pool_size: Number of connections to warm up. Defaults to settings.db_pool_size.
    """
    target_size = pool_size or settings.db_pool_size
    logger.info(f"Warming up connection pool with {target_size} connections...")

    async def create_connection(i: int):
        """Create a single connection to warm the pool."""
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.debug(f"  Connection {i + 1}/{target_size} warmed")
        except Exception as e:
            logger.warning(f"  Connection {i + 1} warmup failed: {e}")

    # Create connections concurrently in small batches
    batch_size = 10
    for batch_start in range(0, target_size, batch_size):
        batch_end = min(batch_start + batch_size, target_size)
        tasks = [create_connection(i) for i in range(batch_start, batch_end)]
        await asyncio.gather(*tasks)

    logger.info(f"Connection pool warmup complete ({target_size} connections)")
