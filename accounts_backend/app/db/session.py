"""
Database session configuration.

This module handles database engine creation, session management and the
unit-of-work helper used by every settlement.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from accounts_backend.app.core.config import settings

logger = logging.getLogger("accounts.db")


def _engine_kwargs() -> dict:
    kwargs = {"echo": settings.db_echo, "future": True}
    # SQLite pools do not accept sizing arguments
    if not settings.database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow
    return kwargs


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_kwargs())

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block as one unit of work on ``db``.

    Commits when the block exits normally. Any exception rolls back every
    write made inside the block and is re-raised unchanged.
    """
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        logger.debug("Transaction rolled back")
        raise
