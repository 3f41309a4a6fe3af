"""Shared fixtures: one schema per session, one rolled-back transaction per test.

Set ``DATABASE_URL`` to run against PostgreSQL; otherwise a throwaway SQLite
file in the temp directory is used.
"""

import asyncio
import logging
import os
import sys
import tempfile
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
import structlog
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

os.environ["ENVIRONMENT"] = "testing"

from ledgerlink.database import Base, build_engine  # noqa: E402
from ledgerlink.logger import SHARED_PROCESSORS, get_logger  # noqa: E402

logger = get_logger(__name__)


def get_test_db_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if url:
        return url.replace("localhost", "127.0.0.1")
    db_file = Path(tempfile.gettempdir()) / f"ledgerlink_test_{os.getpid()}.db"
    return f"sqlite+aiosqlite:///{db_file}"


TEST_DATABASE_URL = get_test_db_url()
IS_SQLITE = TEST_DATABASE_URL.startswith("sqlite")


@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Human-readable, uncached structlog output so capsys/caplog see every line."""
    structlog.configure(
        processors=[*SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
            foreign_pre_chain=SHARED_PROCESSORS,
        )
    )
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


async def ensure_postgres_database(db_url: str) -> None:
    """Create the Postgres test database if it does not exist yet."""
    url = make_url(db_url)
    admin_engine = create_async_engine(url.set(database="postgres"), isolation_level="AUTOCOMMIT")
    try:
        async with admin_engine.connect() as conn:
            exists = await conn.scalar(
                text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": url.database}
            )
            if not exists:
                await conn.execute(text(f'CREATE DATABASE "{url.database}"'))
    except SQLAlchemyError as e:
        logger.error("Test database setup failed", database=url.database, error=str(e))
        raise RuntimeError(f"Cannot proceed without test database: {e}") from e
    finally:
        await admin_engine.dispose()


async def _reset_schema(engine: AsyncEngine) -> None:
    from ledgerlink import models  # noqa: F401

    async with engine.begin() as conn:
        if not IS_SQLITE:
            await conn.execute(text("DROP SCHEMA public CASCADE"))
            await conn.execute(text("CREATE SCHEMA public"))
        await conn.run_sync(Base.metadata.create_all)


def _remove_sqlite_file() -> None:
    if IS_SQLITE:
        Path(make_url(TEST_DATABASE_URL).database).unlink(missing_ok=True)


@pytest_asyncio.fixture(scope="session")
async def db_engine():
    if IS_SQLITE:
        _remove_sqlite_file()
    else:
        await ensure_postgres_database(TEST_DATABASE_URL)

    engine = build_engine(TEST_DATABASE_URL, poolclass=NullPool)
    await _reset_schema(engine)

    yield engine

    try:
        await asyncio.wait_for(engine.dispose(), timeout=10.0)
    except asyncio.TimeoutError:
        logger.error("Engine disposal timed out - connections may be leaked")
    _remove_sqlite_file()


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_database_connection(db_engine):
    """Point the app's get_db dependency at the test engine."""
    from ledgerlink import database

    previous = database.set_test_session_maker(
        async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    )
    yield
    database.set_test_session_maker(previous)


@pytest_asyncio.fixture(scope="function")
async def db(db_engine, request):
    """Test session inside a transaction that is rolled back afterwards.

    The session joins the outer transaction in ``create_savepoint`` mode, so
    service code that commits (detection runs commit per decision) only
    releases a SAVEPOINT and nothing leaks between tests.
    """
    test_name = request.node.name
    connection = await db_engine.connect()
    transaction = await connection.begin()
    session = AsyncSession(
        bind=connection,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )

    yield session

    await session.close()
    try:
        await transaction.rollback()
    except SQLAlchemyError as e:
        logger.error(
            "CRITICAL: Transaction rollback failed - test isolation compromised",
            test_name=test_name,
            error=str(e),
        )
        raise
    finally:
        await connection.close()


@pytest.fixture
def user_id():
    """Owner id for service-level tests; no users row is needed."""
    return uuid4()


@pytest_asyncio.fixture(scope="function")
async def test_user(db_engine):
    """Committed user so the API can resolve the token subject."""
    from ledgerlink.models import User

    async with AsyncSession(db_engine, expire_on_commit=False) as user_session:
        user = User(email=f"test-{uuid4()}@example.com")
        user_session.add(user)
        await user_session.commit()
        await user_session.refresh(user)

    yield user

    async with AsyncSession(db_engine, expire_on_commit=False) as cleanup_session:
        await cleanup_session.execute(delete(User).where(User.id == user.id))
        await cleanup_session.commit()


@pytest_asyncio.fixture(scope="function")
async def committed_session(db_engine):
    """Session that commits for real, for seeding data the API must see."""
    async with AsyncSession(db_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine, test_user):
    """Authenticated async client for the app."""
    from ledgerlink.main import app
    from ledgerlink.security import create_access_token

    token = create_access_token(data={"sub": str(test_user.id)})
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {token}"},
    ) as client_instance:
        yield client_instance


@pytest_asyncio.fixture(scope="function")
async def public_client(db_engine):
    """Async client without auth headers."""
    from ledgerlink.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client_instance:
        yield client_instance
