# refurb_hub/database.py
"""
Database connection for Refurb Hub.

Uses SQLAlchemy 2.0 async (aiosqlite by default). The engine lives on an
explicitly constructed Database object with open()/close(); nothing connects
at import time.
"""
from __future__ import annotations
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text

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
    """Owns one async engine and its session factory."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self, create_schema: bool = True) -> None:
        """Create the engine (and tables when asked). Idempotent."""
        if self._engine is not None:
            return

        url = make_url(self.url)
        if url.drivername.startswith("sqlite") and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(self.url, echo=self.echo)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        if create_schema:
            # registers tables on Base.metadata
            from refurb_hub import db_models  # noqa: F401
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose the engine. Safe to call twice."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_factory = None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session that commits on success and rolls back on error.

        Usage:
            async with database.session() as db:
                result = await db.execute(...)
        """
        if self._session_factory is None:
            raise RuntimeError("Database is not open")

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ========================================================================
    # Health Check
    # ========================================================================

    async def health(self) -> dict:
        """Check database connectivity and return status."""
        if not self.is_open:
            return {"status": "unhealthy", "database": "closed"}
        try:
            async with self.session() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
            return {"status": "healthy", "database": "connected"}
        except Exception as e:
            return {"status": "unhealthy", "database": "disconnected", "error": str(e)}
