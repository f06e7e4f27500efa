"""
Database configuration and session management.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from invoice_service.config import get_settings

settings = get_settings()


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine with the service's pool defaults."""
    options = {"echo": settings.debug, "pool_pre_ping": True}
    options.update(kwargs)
    return create_async_engine(database_url, **options)


# Create async engine
engine = build_engine(settings.database_url, pool_size=5, max_overflow=10)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Commits when the request handler returns, rolls back if it raised.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    Transactional scope for code running outside a request (Celery tasks).

    Usage:
        async with session_scope(maker) as session:
            ...
    """
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
