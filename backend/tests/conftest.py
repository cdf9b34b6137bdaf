"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite file, so concurrent sessions really contend
on one database the way app workers contend on PostgreSQL. Redis is
disabled; listings fall through to the database.
"""

import os
import sqlite3

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from contextlib import asynccontextmanager, contextmanager
from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketing.main import app
from ticketing.db.base import Base
from ticketing.db.session import create_engine, create_session_factory, get_db
from ticketing.core.security import hash_password
from ticketing.models.user import User
from ticketing.models.event import Event
from ticketing.services.auth_service import issue_token


@pytest.fixture
def database_path(tmp_path):
    return tmp_path / "ticketing.db"


@pytest_asyncio.fixture
async def session_factory(database_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh database file with all tables; one factory per test."""
    engine = create_engine(f"sqlite+aiosqlite:///{database_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield create_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@asynccontextmanager
async def _client_for(factory: async_sessionmaker[AsyncSession]):
    async def override_get_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own test-database session."""
    async with _client_for(session_factory) as ac:
        yield ac


@pytest_asyncio.fixture
async def impatient_session_factory(
    session_factory, database_path
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Sessions on the same database that give up on a held lock after 0.2s."""
    engine = create_engine(f"sqlite+aiosqlite:///{database_path}", timeout=0.2)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def impatient_client(impatient_session_factory) -> AsyncGenerator[AsyncClient, None]:
    async with _client_for(impatient_session_factory) as ac:
        yield ac


@pytest.fixture
def write_lock(database_path):
    """
    Hold the database write lock from an outside connection:

        with write_lock():
            ...  # every app transaction waits, then times out
    """

    @contextmanager
    def hold():
        conn = sqlite3.connect(database_path, isolation_level=None)
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield
        finally:
            conn.close()

    return hold


async def _add_user(db: AsyncSession, email: str, name: str, role: str) -> User:
    user = User(
        email=email,
        name=name,
        role=role,
        hashed_password=hash_password("testpassword123"),
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "test@example.com", "Test User", "user")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "other@example.com", "Other User", "user")


@pytest_asyncio.fixture
async def organizer(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "organizer@example.com", "Olga Organizer", "organizer")


@pytest_asyncio.fixture
async def other_organizer(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "promoter@example.com", "Pat Promoter", "organizer")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _add_user(db_session, "admin@example.com", "Ada Admin", "admin")


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_token(user)}"}


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token."""
    return bearer(test_user)


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict:
    return bearer(other_user)


@pytest_asyncio.fixture
async def organizer_headers(organizer: User) -> dict:
    return bearer(organizer)


@pytest_asyncio.fixture
async def other_organizer_headers(other_organizer: User) -> dict:
    return bearer(other_organizer)


@pytest_asyncio.fixture
async def admin_headers(admin: User) -> dict:
    return bearer(admin)


async def make_event(db: AsyncSession, created_by: int, **overrides) -> Event:
    fields = dict(
        name="Test Concert",
        type="Concert",
        category="Rock",
        date=datetime.now(timezone.utc) + timedelta(days=30),
        time="19:30",
        venue="Test Venue",
        ticket_price=120.0,
        capacity=100,
        description="A test event",
        status="active",
        created_by=created_by,
        updated_by=created_by,
        version=1,
    )
    fields.update(overrides)
    event = Event(**fields)
    db.add(event)
    await db.commit()
    return event


@pytest_asyncio.fixture
async def event_factory(db_session: AsyncSession, organizer: User):
    """Create extra events: `await event_factory(capacity=5, status="draft")`."""

    async def factory(**overrides) -> Event:
        return await make_event(db_session, organizer.id, **overrides)

    return factory


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession, organizer: User) -> Event:
    """Active event: 100 tickets at 120.00."""
    return await make_event(db_session, organizer.id)


@pytest_asyncio.fixture
async def cancelled_event(db_session: AsyncSession, organizer: User) -> Event:
    return await make_event(
        db_session, organizer.id, name="Called Off", status="cancelled", capacity=50
    )
