# serial_hub/database.py
"""
Database connection for Serial Hub.

Uses SQLAlchemy 2.0 async (asyncpg for PostgreSQL, aiosqlite for local/dev).
The engine is owned by a Database object built in create_app() and kept on
app.state, so every app (and every test) gets its own store handle.
"""
from __future__ import annotations
from typing import Any, AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text

from serial_hub.settings import Settings

# ============================================================================
# Base class for all ORM models
# ============================================================================

class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


# ============================================================================
# Engine and Session Factory
# ============================================================================

class Database:
    """Explicitly scoped engine + session factory."""

    def __init__(self, url: str, **engine_kwargs: Any):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        url = settings.database_url
        kwargs: dict = {"echo": settings.DB_ECHO}
        if url.startswith("postgresql"):
            kwargs.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_pre_ping=True,  # Verify connections before use
            )
        return cls(url, **kwargs)

    async def create_all(self) -> None:
        """Create tables that do not exist yet."""
        # import registers the mappers on Base.metadata
        from serial_hub import db_models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Context manager for database session (for use outside FastAPI).

        Usage:
            async with db.session() as session:
                result = await session.execute(...)
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def check_health(self) -> dict:
        """Check database connectivity and return status."""
        try:
            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
            return {"status": "healthy", "database": "connected"}
        except Exception as e:
            return {"status": "unhealthy", "database": "disconnected", "error": str(e)}


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI - provides database session.

    Usage:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_session)):
            ...
    """
    database: Database = request.app.state.db
    async with database.session() as session:
        yield session


# ============================================================================
# Transaction Helpers
# ============================================================================

@asynccontextmanager
async def transaction(session: AsyncSession):
    """
    Explicit transaction context for critical operations.

    Usage:
        async with transaction(db):
            await db.execute(...)
            await db.execute(...)
        # Commits on success, rolls back on exception
    """
    try:
        yield
        await session.commit()
    except Exception:
        await session.rollback()
        raise
