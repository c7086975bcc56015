"""
Database Session Management - Async SQLAlchemy over asyncpg.

Supabase hands out ``postgres://`` / ``postgresql://`` URLs; they are mapped
onto the asyncpg driver here so the same DATABASE_URL works for the app,
alembic and the scripts. Connections may go through Supabase's pgbouncer
pooler in transaction mode, which cannot keep prepared statements.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from namegen.config import settings

ASYNC_DRIVER = "postgresql+asyncpg"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def async_database_url(url: str) -> str:
    """Rewrite a plain Postgres URL to use the asyncpg driver."""
    scheme, separator, rest = url.partition("://")
    if not separator:
        return url
    if scheme in ("postgres", "postgresql", "postgresql+psycopg2"):
        return f"{ASYNC_DRIVER}://{rest}"
    return url


def engine_options() -> dict[str, Any]:
    """Pool settings plus asyncpg arguments safe behind pgbouncer."""
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
        "pool_recycle": settings.database_pool_recycle,
        "pool_pre_ping": True,
        "echo": settings.log_level.upper() == "DEBUG",
        "connect_args": {"statement_cache_size": 0},
    }


def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(async_database_url(settings.database_url), **engine_options())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """
    Session for work outside a request (scripts, reconciliation).

    Usage:
        async with get_session() as session:
            ledger = EntitlementLedger(session)
    """
    async with get_session_factory()() as session:
        yield session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    async with get_session_factory()() as session:
        yield session


async def close_engine() -> None:
    """Dispose the pool on shutdown; a later get_engine() starts fresh."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
