"""Database engine and async session factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from rpm_billing.config import get_settings
from rpm_billing.core.models import Base

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    return get_settings().database_url


@lru_cache
def _get_engine() -> AsyncEngine:
    url = get_database_url()
    if url.startswith("sqlite"):
        # aiosqlite runs on a single connection thread; pool sizing does not apply
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        echo=False,
    )


@lru_cache
def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(_get_engine(), class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async session.

    Commits when the request succeeds. The only write is the 99453
    confirmation; report requests commit an empty transaction.
    """
    async with _get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create all billing tables (dev and tests; production uses migrations)."""
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Billing tables ensured at %s", engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    """Dispose the engine's connection pool and drop cached factories."""
    if _get_engine.cache_info().currsize == 0:
        return
    await _get_engine().dispose()
    _get_session_factory.cache_clear()
    _get_engine.cache_clear()
    logger.info("Database connections closed")
