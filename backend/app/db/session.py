"""
Database session configuration.

One async engine per process (asyncpg against PostgreSQL). Settlement
creation relies on the engine's isolation level together with the
open-settlement unique index, so the level is set explicitly from settings.
"""

import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings

logger = logging.getLogger("crowdfund.db")

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
    isolation_level=settings.db_isolation_level,
)

# Services commit explicitly; objects stay readable after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Settlement and reconciliation services own their commit/rollback. Anything
    still pending when a request fails is rolled back here before the session
    is closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            logger.debug("Rolling back request session after error")
            await session.rollback()
            raise
