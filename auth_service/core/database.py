"""
Database configuration and session management
"""

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from auth_service.config import settings
from auth_service.core.errors import StoreUnavailableError
from auth_service.core.logging import get_logger

logger = get_logger(__name__)


def _engine_options(url: str) -> dict[str, Any]:
    """Pool options; SQLite (tests, local runs) uses its own pool class."""
    if url.startswith("sqlite"):
        return {"echo": settings.DB_ECHO}
    return {
        "echo": settings.DB_ECHO,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,  # Verify connections before using
        "pool_recycle": 3600,
        "pool_timeout": settings.DB_TIMEOUT_SECONDS,
    }


# Create async engine
engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    Usage in FastAPI:
        @router.get("/me")
        async def me(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_async_session() -> AsyncSession:
    """
    Get a standalone async database session for scripts and maintenance jobs.

    Note: Caller is responsible for committing/rolling back.
    """
    return AsyncSessionLocal()


@asynccontextmanager
async def store_call(timeout: float | None = None) -> AsyncIterator[None]:
    """
    Bound a block of database work in time and normalize its failures.

    Any SQLAlchemy error, connection error or timeout inside the block is
    re-raised as StoreUnavailableError. A timed-out call is never assumed to
    have succeeded. IntegrityError passes through unchanged: a constraint
    violation is an answer from a healthy store (e.g. a duplicate email).

    Usage:
        async with store_call():
            result = await db.execute(select(Users).where(...))
    """
    try:
        async with asyncio.timeout(timeout if timeout is not None else settings.DB_TIMEOUT_SECONDS):
            yield
    except IntegrityError:
        raise
    except (SQLAlchemyError, OSError) as exc:
        # TimeoutError is an OSError subclass
        raise StoreUnavailableError(f"{type(exc).__name__}: {exc}") from exc


def utc_now() -> datetime:
    """
    Current UTC time as a naive datetime.

    DATETIME columns are timezone-naive in MySQL and SQLite, so all stored
    and compared timestamps are naive UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)


async def rollback_quietly(db: AsyncSession) -> None:
    """
    Roll back after a failed store call.

    The connection may already be gone; a failing rollback is logged and
    the original error stays the one reported.
    """
    try:
        await db.rollback()
    except SQLAlchemyError:
        logger.warning("rollback_failed", exc_info=True)
