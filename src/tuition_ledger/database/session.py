"""Engines and sessions for the ledger snapshot store."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.asyncio import create_async_engine as sa_create_async_engine
from sqlalchemy.pool import StaticPool

from ..config import get_database_url
from .models import Base

logger = logging.getLogger(__name__)


def create_async_engine(
    database_url: Optional[str] = None,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> AsyncEngine:
    """
    Create the engine for the ledger database.

    SQLite gets one shared connection, so an in-memory ledger lives as long
    as the engine rather than a single session.

    Args:
        database_url: Database connection URL. If None, uses get_database_url().
        echo: If True, log all SQL statements.
        pool_size: Pooled connections for server databases.
        max_overflow: Extra connections allowed beyond pool_size.

    Returns:
        AsyncEngine instance.
    """
    url = database_url or get_database_url()
    if url.startswith("sqlite"):
        return sa_create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return sa_create_async_engine(url, echo=echo, pool_size=pool_size, max_overflow=max_overflow)


@asynccontextmanager
async def _unit_of_work(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """
    Owns one engine and hands out sessions that commit on success.

    Example:
        database = DatabaseManager("sqlite+aiosqlite:///./ledger.db")
        await database.initialize()

        async with database.session() as session:
            await LedgerRepository(session).save_snapshot(snapshot)

        await database.shutdown()
    """

    def __init__(self, database_url: Optional[str] = None, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_initialized(self) -> bool:
        return self._session_factory is not None

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized. Call initialize() first.")
        return self._session_factory

    async def initialize(self, create_tables: bool = True) -> None:
        """Open the engine and, by default, create the ledger tables."""
        self._engine = create_async_engine(self.database_url, echo=self.echo)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        if create_tables:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Ledger database ready ({self._engine.url.get_backend_name()})")

    async def shutdown(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.info("Ledger database closed")
        self._engine = None
        self._session_factory = None

    def session(self) -> AsyncContextManager[AsyncSession]:
        """Session that commits on success and rolls back on error.

        Raises:
            RuntimeError: If initialize() has not been called.
        """
        return _unit_of_work(self.session_factory)


# Process-wide store behind init_db(), get_db() and get_db_context()
_default: Optional[DatabaseManager] = None


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Session factory of the process-wide store.

    Raises:
        RuntimeError: If init_db() has not been called.
    """
    if _default is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _default.session_factory


async def init_db(
    database_url: Optional[str] = None,
    echo: bool = False,
    create_tables: bool = True,
) -> None:
    """Open the process-wide store, replacing any previous one."""
    global _default
    await close_db()
    manager = DatabaseManager(database_url, echo=echo)
    await manager.initialize(create_tables=create_tables)
    _default = manager


async def close_db() -> None:
    global _default
    if _default is not None:
        await _default.shutdown()
        _default = None


def get_db_context() -> AsyncContextManager[AsyncSession]:
    """
    Session from the process-wide store, outside FastAPI dependency injection.

    Example:
        async with get_db_context() as db:
            snapshot = await LedgerRepository(db).load_snapshot()
    """
    return _unit_of_work(get_async_session_factory())


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session from the process-wide store."""
    async with get_db_context() as session:
        yield session
