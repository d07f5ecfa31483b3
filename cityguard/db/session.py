"""
Async engine and unit-of-work handling for the SQL stores.
"""
from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from sqlalchemy import event, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .exceptions import ConnectionError, DatabaseError, IntegrityError
from .models.base import Base

logger = logging.getLogger("cityguard.db")


def engine_options(database_url: str, echo_sql: bool = False) -> Dict[str, Any]:
    """Engine keyword arguments suited to the database behind ``database_url``."""
    options: Dict[str, Any] = {"echo": echo_sql, "pool_pre_ping": True}
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if is_memory_sqlite(url):
            # every session has to see the same in-memory database
            options["poolclass"] = StaticPool
    else:
        options["pool_recycle"] = 300
    return options


def is_memory_sqlite(url: URL) -> bool:
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def begin_immediate(engine: AsyncEngine) -> None:
    """Make every transaction on a SQLite file take the write lock at BEGIN.

    The driver otherwise defers BEGIN to the first write, and a reader that
    later writes fails with "database is locked" instead of waiting its turn.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _driver_autocommit(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Owns the async engine; hands out sessions that commit on success.

    Args:
        database_url: Async SQLAlchemy URL, e.g. ``sqlite+aiosqlite:///./cityguard.db``
        echo_sql: Log every statement
        **engine_kwargs: Overrides for ``create_async_engine``
    """

    def __init__(self, database_url: str, echo_sql: bool = False, **engine_kwargs: Any) -> None:
        if not database_url:
            raise ValueError("Database URL is required")
        self.url = make_url(database_url)
        options = engine_options(database_url, echo_sql)
        options.update(engine_kwargs)
        try:
            self.engine = create_async_engine(self.url, **options)
        except (SQLAlchemyError, ImportError, ValueError) as e:
            raise ConnectionError(
                f"Could not create database engine: {e}",
                context={"database_url": self.url.render_as_string(hide_password=True)},
                original_exception=e,
            ) from e
        if self.url.get_backend_name() == "sqlite" and not is_memory_sqlite(self.url):
            begin_immediate(self.engine)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        logger.info(f"Database engine ready ({self.url.get_backend_name()})")

    async def create_tables(self) -> None:
        """Create every table registered on :class:`Base` that does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured")

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database health check failed: {e}")
            return False
        return True

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """One transaction. SQLAlchemy errors leave as :mod:`.exceptions` types."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except SAIntegrityError as e:
                await session.rollback()
                raise IntegrityError(f"Constraint violated: {e.orig}", original_exception=e) from e
            except OperationalError as e:
                await session.rollback()
                logger.error(f"Database unavailable: {e}")
                raise ConnectionError(f"Database unavailable: {e}", original_exception=e) from e
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database error: {e}")
                raise DatabaseError(f"Database operation failed: {e}", original_exception=e) from e

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info("Database connections closed")
