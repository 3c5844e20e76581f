"""Async engine and sessions for the settings store."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from app.config import Settings, settings

logger = logging.getLogger(__name__)


def create_engine(config: Settings = settings) -> AsyncEngine:
    """Create the async engine.

    Connections time out quickly so that an unreachable database surfaces as a
    store failure instead of stalling every request that reads settings.
    """
    engine_kwargs = {
        "echo": config.app_debug,
        "connect_args": {
            "timeout": config.database_connect_timeout,
            "command_timeout": config.database_command_timeout,
        },
    }

    if config.is_development:
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update(
            pool_size=config.database_pool_size,
            max_overflow=config.database_max_overflow,
            pool_pre_ping=True,
        )

    return create_async_engine(config.async_database_url, **engine_kwargs)


engine = create_engine()

async_session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Session scope that commits on success and rolls back on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.warning("Rolling back settings session after error")
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency wrapping ``get_db_context``."""
    async with get_db_context() as session:
        yield session


async def close_db() -> None:
    await engine.dispose()
