"""
Database engine and session management.
Uses SQLAlchemy 2.0 with async support; one engine per configured store.
"""

from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)
from sqlalchemy.engine import make_url

from .config import Settings, DatabaseConfig, settings as default_settings
from .logging import get_logger

logger = get_logger(__name__)


def create_engine(url: str, config: Optional[Settings] = None) -> AsyncEngine:
    """Create an async engine for one store URL."""
    config = config or default_settings
    async_url = DatabaseConfig.get_database_url(url)

    logger.info(
        "Creating database engine",
        url=make_url(async_url).render_as_string(hide_password=True)
    )

    return create_async_engine(
        async_url,
        **DatabaseConfig.get_engine_config(async_url, config),
        echo=config.debug
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    session_maker: async_sessionmaker[AsyncSession]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Get an async database session with automatic commit/rollback.

    Usage:
        async with session_scope(maker) as session:
            # Use session here
            pass
    """
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def health_check(engine: AsyncEngine) -> bool:
    """Check database connectivity."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return False
