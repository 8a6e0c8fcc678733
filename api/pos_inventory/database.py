# pos_inventory/database.py
"""
Database connection for POS Inventory.

Uses SQLAlchemy 2.0 async (asyncpg for PostgreSQL, aiosqlite for local files).
"""
from __future__ import annotations
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from sqlalchemy import text

from pos_inventory.settings import settings

# ============================================================================
# Base class for all ORM models
# ============================================================================

class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# ============================================================================
# Engine and Session Factory
# ============================================================================

_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_database_url() -> str:
    """Build async database URL from settings."""
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    return (
        f"postgresql+asyncpg://"
        f"{settings.DB_USER}:{settings.DB_PASSWORD}@"
        f"{settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}"
    )


def make_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        # file-backed SQLite: one connection per session, no pool
        return create_async_engine(url, echo=settings.DB_ECHO, poolclass=NullPool)
    return create_async_engine(
        url,
        echo=settings.DB_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # Verify connections before use
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(url: Optional[str] = None) -> None:
    """Initialize database engine and session factory."""
    global _engine, _async_session_factory

    if _engine is not None:
        return  # Already initialized

    _engine = make_engine(url or get_database_url())
    _async_session_factory = make_session_factory(_engine)


async def close_db() -> None:
    """Close database connections."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None


async def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _async_session_factory is None:
        await init_db()
    return _async_session_factory


async def create_all(engine: AsyncEngine | None = None) -> None:
    """Create every table known to the ORM metadata."""
    # model modules register their tables on import
    from pos_inventory import db_models, db_models_ext  # noqa: F401

    if engine is None:
        await init_db()
        engine = _engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI - provides database session.

    The whole request is one unit of work: commit on success, rollback on any error.

    Usage:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_session)):
            ...
    """
    factory = await get_session_factory()

    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Same unit of work as ``get_session``, for code running outside a request."""
    factory = await get_session_factory()

    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ============================================================================
# Health Check
# ============================================================================

async def check_db_health() -> dict:
    """Run ``SELECT 1`` through a session; reported by ``/health``."""
    try:
        async with get_session_context() as db:
            await db.scalar(text("SELECT 1"))
            dialect = db.bind.dialect.name
        return {"status": "healthy", "database": "connected", "dialect": dialect}
    except Exception as e:
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}
