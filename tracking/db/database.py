"""
Database configuration and async session management
"""
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from tracking.common.config import Settings, get_settings

# Declarative base for models
Base = declarative_base()


def create_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create the async engine.

    The pool is bounded (pool_size + max_overflow). When it is exhausted a
    request waits up to db_pool_timeout seconds for a connection instead
    of failing straight away.
    """
    settings = settings or get_settings()

    options = {
        "echo": settings.db_echo,
        "pool_pre_ping": True,  # Verify connections before using
    }
    if not settings.database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
        )

    return create_async_engine(settings.database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create the session factory used by the repositories."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Records are returned to callers after commit
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Create all tables.
    Only for development and tests - use migrations in production.
    """
    # Import models to register them with Base
    from tracking.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(engine: AsyncEngine) -> None:
    """
    Drop all tables.
    WARNING: Use only in development/testing!
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
