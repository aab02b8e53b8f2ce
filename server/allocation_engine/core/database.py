"""Database configuration, async session management and the unit of work."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings
from .exceptions import TransactionConflictError

logger = logging.getLogger(__name__)

# SQLSTATE codes PostgreSQL reports for serialization failures and deadlocks
CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    pool_pre_ping=True,
    # Use StaticPool for SQLite in-memory databases (if needed for testing)
    poolclass=StaticPool if "sqlite" in settings.database_url else None,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
)

# Create async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function that yields database sessions.

    Yields:
        AsyncSession: Database session
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# Alias for FastAPI dependency injection
get_db = get_async_session


def is_transaction_conflict(exc: DBAPIError) -> bool:
    """Return True when the driver error is a retryable transaction-level conflict."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in CONFLICT_SQLSTATES:
        return True

    message = str(orig or exc).lower()
    return "database is locked" in message or "deadlock detected" in message


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block of work as one atomic transaction.

    Commits when the block exits cleanly. Any exception rolls back every write
    made since the last commit, capacity counters included. Store-level
    conflicts are re-raised as TransactionConflictError so callers can retry.
    """
    try:
        yield session
        await session.commit()
    except DBAPIError as exc:
        await session.rollback()
        if is_transaction_conflict(exc):
            logger.warning(
                "Transaction aborted by the store",
                extra={"error": str(exc.orig)}
            )
            raise TransactionConflictError(detail=str(exc.orig)) from exc
        raise
    except Exception:
        await session.rollback()
        raise


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
