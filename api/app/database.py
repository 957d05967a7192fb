"""Database engine, sessions and schema migrations.

Deployments run on PostgreSQL through asyncpg. The test suite binds the same
models to SQLite through aiosqlite, so dialect-specific statements are built
with ``upsert_insert``.
"""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from alembic.command import upgrade
from alembic.config import Config
from app.config import settings

API_ROOT = Path(__file__).resolve().parents[1]

Base = declarative_base()


def create_engine(url: str, *, pooled: bool = True) -> AsyncEngine:
    """Async engine for ``url``. Unpooled engines open a connection per checkout."""
    if pooled:
        return create_async_engine(url, echo=False, pool_pre_ping=True)
    return create_async_engine(url, echo=False, poolclass=NullPool)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine(settings.database_url)
AsyncSessionLocal = create_session_factory(engine)


def upsert_insert(session: AsyncSession, table):
    """INSERT supporting ``on_conflict_do_update`` on the session's dialect."""
    if session.bind.dialect.name == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


def _alembic_config(db_url: str) -> Config:
    config = Config(str(API_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(API_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", db_url)
    # Keep the application's logging setup
    config.attributes["configure_logger"] = False
    return config


async def init_db(db_url: str | None = None) -> None:
    """Upgrade the schema to the latest Alembic revision."""
    config = _alembic_config(db_url or settings.database_url)
    # env.py runs its own event loop, so migrate from a worker thread
    await asyncio.to_thread(upgrade, config, "head")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that provides a database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
