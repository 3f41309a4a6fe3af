"""Async engine and session handling.

Production runs on PostgreSQL (asyncpg). The test suite may run on SQLite
(aiosqlite), which needs explicit BEGIN handling for the SAVEPOINTs the
transaction store relies on.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ledgerlink.config import settings
from ledgerlink.logger import get_logger

logger = get_logger(__name__)

POSTGRES_POOL_OPTIONS: dict[str, Any] = {
    "pool_pre_ping": True,
    "pool_size": 10,
    "max_overflow": 20,
    "pool_recycle": 3600,
}


class Base(DeclarativeBase):
    pass


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """Make pysqlite emit BEGIN itself so nested transactions work."""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs: Any) -> AsyncEngine:
    if url.startswith("sqlite"):
        async_engine = create_async_engine(url, echo=settings.debug, **kwargs)
        enable_sqlite_savepoints(async_engine)
        return async_engine

    # Caller-supplied pool settings (e.g. NullPool in tests) win.
    options = {} if "poolclass" in kwargs else dict(POSTGRES_POOL_OPTIONS)
    options.update(kwargs)
    return create_async_engine(url, echo=settings.debug, **options)


engine = build_engine(settings.database_url)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

_test_session_maker: async_sessionmaker[AsyncSession] | None = None


def set_test_session_maker(
    maker: async_sessionmaker[AsyncSession] | None,
) -> async_sessionmaker[AsyncSession] | None:
    """Route get_db to ``maker`` (None restores the default); returns the previous one."""
    global _test_session_maker
    previous, _test_session_maker = _test_session_maker, maker
    return previous


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with (_test_session_maker or async_session_maker)() as session:
        yield session


async def init_db() -> None:
    """Schema is owned by Alembic (``alembic upgrade head``); only report the target."""
    logger.info("Database ready", dialect=engine.dialect.name, schema="managed by migrations")
