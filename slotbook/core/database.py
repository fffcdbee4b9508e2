import logging
from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from slotbook.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def configure_sqlite(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    Without this two racing commits can both hold a read lock and one of them
    fails with "database is locked" instead of waiting its turn.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        engine = create_async_engine(url)
        configure_sqlite(engine)
    else:
        engine = create_async_engine(url, pool_pre_ping=True)
    logger.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the engine on first use so importing models needs no driver."""
    return create_engine_for(settings.DATABASE_URL)


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding one session per request."""
    async with get_session_factory()() as session:
        yield session
