"""Async engine, request-scoped sessions and write transactions."""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from authgate.config import settings

logger = structlog.get_logger(__name__)

ASYNCPG_SCHEMES = ("postgresql://", "postgres://")


def async_database_url(url: str) -> str:
    """Route a plain PostgreSQL URL through asyncpg. Other URLs are returned unchanged."""
    for scheme in ASYNCPG_SCHEMES:
        if url.startswith(scheme):
            return "postgresql+asyncpg://" + url[len(scheme) :]
    return url


DATABASE_URL = async_database_url(settings.database_url)

engine: AsyncEngine = create_async_engine(
    DATABASE_URL,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Commit the statements executed inside the block, or roll all of them back.

    Every service write goes through this, so a failed statement never leaves
    the session holding a broken transaction for the next call.
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield one session per request.

    Work left uncommitted by a failed request is rolled back before the
    connection returns to the pool.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            if session.in_transaction():
                await session.rollback()
                logger.info("db_session_rolled_back", error_type=type(e).__name__)
            raise


async def check_database_connection() -> bool:
    """Return True if the database answers a trivial query."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("database_unreachable", error=str(e))
        return False
    return True
