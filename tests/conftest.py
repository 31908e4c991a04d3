"""Shared pytest fixtures for flatindex tests."""

import os
import sys
from typing import AsyncGenerator
from unittest.mock import MagicMock

# Point the application engines at SQLite before any flatindex import
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from flatindex.database import Base
from flatindex.services.index_registry import IndexRegistry, SourceRef
from flatindex.services.reconciler import Reconciler
from flatindex.services.search_store import SearchStore


CRM_DB = "crm"
CUSTOMERS = "customers"
ORDERS = "orders"


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite engine with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'flatindex.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """A session for arranging and asserting state. Commit after writes."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def search_store(session_maker) -> SearchStore:
    return SearchStore(session_maker)


@pytest.fixture
def registry(search_store) -> IndexRegistry:
    return IndexRegistry(search_store)


@pytest.fixture
def redis_stub() -> MagicMock:
    """Redis service double that reports no connection."""
    redis = MagicMock()
    redis.is_connected = False
    return redis


@pytest.fixture
def reconciler(session_maker, search_store, registry, redis_stub) -> Reconciler:
    return Reconciler(
        session_maker=session_maker,
        search_store=search_store,
        registry=registry,
        redis=redis_stub,
    )


@pytest_asyncio.fixture
async def customer_index(db_session, registry):
    """Index 'customers' -> search index 'customers-v1' monitoring crm.customers and crm.orders."""
    definition = await registry.create_index(
        db_session,
        name="customers",
        search_index="customers-v1",
        sources=[SourceRef(CRM_DB, CUSTOMERS), SourceRef(CRM_DB, ORDERS)],
    )
    await db_session.commit()
    return definition
