"""
Database connection module.
Provides async SQLAlchemy engine and session factory.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from candle_replay.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,  # Disabled for cleaner logs
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False
    )


engine: AsyncEngine = build_engine(settings.database_url)

# Session factory
async_session_factory = build_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None):
    """Initialize database tables."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(bind: Optional[AsyncEngine] = None):
    """Close database connections."""
    await (bind or engine).dispose()
