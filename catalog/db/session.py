"""
Database engine and session management.

The API and the Celery workers use separate engines so a busy worker pool
cannot starve request handlers of connections.
"""

import json
from typing import Any, AsyncGenerator, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from catalog.core.config import settings
from catalog.core.logging import logger
from catalog.models.base import Base


def _json_serializer(value: Any) -> str:
    # Keep Arabic metadata readable in the database so LIKE search matches it
    return json.dumps(value, ensure_ascii=False)


def _engine_options(pool_size: int, max_overflow: int) -> Dict[str, Any]:
    db_url = settings.get_database_url()
    options: Dict[str, Any] = {
        "echo": settings.database_echo,
        "json_serializer": _json_serializer,
    }
    if db_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    if settings.testing:
        options["poolclass"] = NullPool
    elif not db_url.startswith("sqlite"):
        options.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=10,
        )
    return options


def create_engine_for(pool_size: int, max_overflow: int) -> AsyncEngine:
    return create_async_engine(settings.get_database_url(), **_engine_options(pool_size, max_overflow))


engine = create_engine_for(settings.database_pool_size, settings.database_max_overflow)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Smaller pool for Celery workers
worker_engine = create_engine_for(pool_size=5, max_overflow=5)

WorkerSessionLocal = async_sessionmaker(
    worker_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Create tables if they don't exist."""
    logger.info("Initializing database", url=settings.get_database_url().split("@")[-1])
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized successfully")


async def close_db() -> None:
    await engine.dispose()
    await worker_engine.dispose()
    logger.info("Database engines disposed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    Yields:
        Database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def check_database_connection() -> bool:
    """
    Check if database connection is working.

    Returns:
        True if connection is successful, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("Database connection check failed", error=str(e))
        return False
