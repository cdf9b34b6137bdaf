"""
Async engine and session factory.

Every admission attempt runs in one transaction. The engine is tuned per
backend so that waiting on another transaction is bounded by
LEDGER_TIMEOUT_SECONDS:

  - PostgreSQL (asyncpg): lock_timeout / statement_timeout server settings
    plus the driver command timeout.
  - SQLite (aiosqlite): busy timeout, and transactions start with
    BEGIN IMMEDIATE so writers queue on the database lock instead of
    deadlocking on a SHARED -> RESERVED upgrade.
"""

from typing import AsyncGenerator, Optional

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ticketing.core.config import get_settings

settings = get_settings()


def _enable_immediate_transactions(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        # Let the "begin" hook below emit BEGIN instead of the driver.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: str, timeout: Optional[float] = None, **kwargs) -> AsyncEngine:
    """Create an async engine whose lock waits give up after `timeout` seconds."""
    timeout = timeout or settings.LEDGER_TIMEOUT_SECONDS
    backend = make_url(url).get_backend_name()

    if backend == "sqlite":
        kwargs.setdefault("poolclass", NullPool)
        engine = create_async_engine(url, connect_args={"timeout": timeout}, **kwargs)
        _enable_immediate_transactions(engine)
        return engine

    timeout_ms = str(int(timeout * 1000))
    kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
    kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
    kwargs.setdefault("pool_timeout", settings.DB_POOL_TIMEOUT)
    kwargs.setdefault("pool_recycle", settings.DB_POOL_RECYCLE)
    return create_async_engine(
        url,
        pool_pre_ping=True,
        connect_args={
            "command_timeout": timeout,
            "server_settings": {
                "lock_timeout": timeout_ms,
                "statement_timeout": timeout_ms,
            },
        },
        **kwargs,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG)
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session per request; services own their commits."""
    async with AsyncSessionLocal() as session:
        yield session
