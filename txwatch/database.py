"""Database configuration and session management."""
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from txwatch.config import get_settings

settings = get_settings()

# Async engine for application use
engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,
)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_models(db_engine: AsyncEngine = engine) -> None:
    """Create missing tables."""
    # Register models on the metadata
    import txwatch.models  # noqa: F401

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping(db_engine: AsyncEngine = engine) -> None:
    """Round-trip a trivial query; raises when the store is unreachable."""
    async with db_engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
