"""Async engine and session factory setup."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from celestial_proxy.storage.models import Base


def create_engine(url: str) -> AsyncEngine:
    """Create an async engine for ``url``.

    In-memory SQLite databases live and die with their connection, so they are
    pinned to a single shared one.
    """
    if url.startswith("sqlite") and ":memory:" in url:
        return create_async_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_database(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping(engine: AsyncEngine) -> bool:
    """Run a trivial query; True if the database answered."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True
