"""
Async engine and session factory.

Sessions are handed to request handlers through the ``get_db`` dependency.
Services that own a transaction boundary (admission, lifecycle) commit
themselves; everything else is committed here when the request succeeds.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from society_booking.core.config import get_settings

settings = get_settings()


def build_engine(url: str, **overrides) -> AsyncEngine:
    """Create an engine, applying pool settings only where the dialect pools connections."""
    kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
        )
    kwargs.update(overrides)
    return create_async_engine(url, **kwargs)


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
