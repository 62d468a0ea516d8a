"""
Async database engine and session management.

One AsyncSession is borrowed per logical operation. Every statement issued on
it shares one transaction until the caller commits or rolls back.
"""

import logging
from typing import Any

from sqlalchemy import Float, cast
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from foliotrack.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def _engine_options(url: str) -> dict[str, Any]:
    options: dict[str, Any] = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
    return options


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend."""
    return create_async_engine(url, **_engine_options(url))


engine: AsyncEngine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


def dialect_name(session: AsyncSession) -> str:
    """Name of the SQL dialect the session is bound to (postgresql, sqlite)."""
    return session.get_bind().dialect.name


def upsert(session: AsyncSession, model: Any):
    """
    Dialect-specific INSERT supporting ``on_conflict_do_update``.

    PostgreSQL in production, SQLite for tests and local runs.
    """
    name = dialect_name(session)
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported on dialect {name}")


def exact_divide(session: AsyncSession, numerator: Any, denominator: Any):
    """
    Division that never truncates.

    SQLite stores whole-number NUMERIC values as INTEGER and would floor the
    quotient; PostgreSQL numeric division is already exact.
    """
    if dialect_name(session) == "sqlite":
        return cast(numerator, Float) / denominator
    return numerator / denominator


async def close_db() -> None:
    """Dispose of the connection pool."""
    await engine.dispose()
    logger.info("Database engine disposed")
