"""
Shared test fixtures for the Brew-Me-In API tests.

Provides database session management, a fake Redis, test clients, and user
fixtures. Tests run against SQLite (aiosqlite) and fakeredis, so neither
Postgres nor Redis is needed.
"""

from collections.abc import AsyncGenerator
from datetime import timedelta
from typing import Any

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.api_key import generate_api_key, get_key_prefix
from app.config import settings
from app.database import Base, create_engine, create_session_factory, get_db
from app.main import app
from app.middleware.rate_limit import reset_limiter

# Import models so they're registered with Base.metadata before table creation
from app.models.poke import POKE_PENDING, Poke
from app.models.user import APIKey, User, UserInterest, UserRole
from app.redis_client import redis_client, set_redis_client
from app.services.spam import ProfanityFilter
from app.timeutils import utcnow

TEST_DATABASE_URL = settings.test_database_url

# Unpooled so connections are never shared across per-test event loops
test_engine = create_engine(TEST_DATABASE_URL, pooled=False)
TestSessionLocal = create_session_factory(test_engine)


# --- Isolation Fixtures ---


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    """Reset the per-IP slowapi limiter before each test."""
    reset_limiter()
    yield


@pytest.fixture(autouse=True)
def reset_profanity_filter():
    """Give every test the default word list."""
    app.state.profanity_filter = ProfanityFilter(settings.profanity_word_list)
    yield


@pytest_asyncio.fixture(autouse=True)
async def fake_redis() -> AsyncGenerator[FakeRedis, None]:
    """Swap the shared Redis client for an in-memory fake."""
    original = redis_client.client
    client = FakeRedis(decode_responses=True)
    set_redis_client(client)
    try:
        yield client
    finally:
        set_redis_client(original)
        await client.flushall()
        await client.aclose()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create tables before each test function, drop after.
    Provides isolated database state per test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client configured for testing.
    Overrides database dependency with test session.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=True,
    ) as client:
        yield client

    app.dependency_overrides.clear()


# --- Authentication Helper Fixtures ---


@pytest.fixture
def auth_headers():
    """Factory fixture for creating X-API-Key headers."""

    def _auth_headers(api_key: str) -> dict[str, str]:
        return {"X-API-Key": api_key}

    return _auth_headers


# --- User Fixtures ---


async def create_user(
    db_session: AsyncSession,
    username: str,
    roles: list[str] | None = None,
    tier: str = "free",
    interests: list[str] | None = None,
    poke_enabled: bool = True,
) -> dict[str, Any]:
    """Create a user with roles, interests and an API key in the database."""
    user = User(
        username=username,
        display_name=username.title(),
        tier=tier,
        poke_enabled=poke_enabled,
    )
    db_session.add(user)
    await db_session.flush()

    for role in roles or []:
        db_session.add(UserRole(user_id=user.id, role=role))
    for interest in interests or []:
        db_session.add(UserInterest(user_id=user.id, interest=interest))

    plaintext_key, key_hash = generate_api_key()
    db_session.add(
        APIKey(
            user_id=user.id,
            key_hash=key_hash,
            key_prefix=get_key_prefix(plaintext_key),
            name="Test key",
        )
    )

    await db_session.commit()

    return {
        "user_id": str(user.id),
        "id": user.id,
        "username": user.username,
        "api_key": plaintext_key,
        "roles": roles or [],
        "user": user,
    }


async def create_poke(
    db_session: AsyncSession,
    from_user: dict[str, Any],
    to_user: dict[str, Any],
    *,
    status: str = POKE_PENDING,
    interest: str = "coffee",
    age: timedelta = timedelta(0),
    ttl: timedelta = timedelta(hours=24),
) -> Poke:
    """Insert a poke directly, created ``age`` ago and expiring ``ttl`` after creation."""
    created_at = utcnow() - age
    poke = Poke(
        from_user_id=from_user["id"],
        to_user_id=to_user["id"],
        shared_interest=interest,
        status=status,
        created_at=created_at,
        expires_at=created_at + ttl,
    )
    db_session.add(poke)
    await db_session.commit()
    return poke


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> dict[str, Any]:
    """Standard free-tier user who likes coffee and jazz."""
    return await create_user(db_session, "testuser", interests=["coffee", "jazz"])


@pytest_asyncio.fixture
async def second_user(db_session: AsyncSession) -> dict[str, Any]:
    """A second user for poke and ownership scenarios."""
    return await create_user(db_session, "seconduser", interests=["coffee", "books"])


@pytest_asyncio.fixture
async def test_admin(db_session: AsyncSession) -> dict[str, Any]:
    """Create an admin user."""
    return await create_user(db_session, "adminuser", roles=["admin"])


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory fixture wrapping ``create_user`` for the test session."""

    async def _make_user(username: str, **kwargs: Any) -> dict[str, Any]:
        return await create_user(db_session, username, **kwargs)

    return _make_user


@pytest.fixture
def make_poke(db_session: AsyncSession):
    """Factory fixture wrapping ``create_poke`` for the test session."""

    async def _make_poke(from_user: dict, to_user: dict, **kwargs: Any) -> Poke:
        return await create_poke(db_session, from_user, to_user, **kwargs)

    return _make_poke
