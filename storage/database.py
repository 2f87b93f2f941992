"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages metadata-store connections and sessions.

- Creates the async engine
- Hands out sessions with rollback-on-error
- Creates the schema on startup

============================================================
DESIGN PRINCIPLES
============================================================
- Async by default (no blocking driver on the event loop)
- One session per unit of work
- Explicit commit by the repository caller

============================================================
DATABASE REQUIREMENTS
============================================================
- SQLite via aiosqlite for development and tests
- PostgreSQL via asyncpg in production
- SQLAlchemy 2.x ORM

============================================================
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storage.models.base import Base


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the metadata store."""

    url: str = "sqlite+aiosqlite:///./vault.db"
    """SQLAlchemy async URL."""

    echo: bool = False
    """Log SQL statements."""

    pool_size: int = 5
    """Pool size (ignored for SQLite)."""

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class Database:
    """
    Owns the async engine and session factory.

    Usage:
        database = Database(DatabaseConfig(url))
        await database.connect()
        async with database.session() as session:
            ...
        await database.disconnect()
    """

    def __init__(self, config: DatabaseConfig):
        self._config = config
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def get_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    async def connect(self, create_schema: bool = True) -> None:
        """Create the engine (and the schema, unless told otherwise)."""
        if self._engine is not None:
            return

        logger.info(f"Creating database engine for: {self._config.url.split('@')[-1]}")

        kwargs = {"echo": self._config.echo}
        if not self._config.is_sqlite:
            kwargs["pool_size"] = self._config.pool_size

        self._engine = create_async_engine(self._config.url, **kwargs)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            autoflush=False,
            expire_on_commit=False,
        )

        if create_schema:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database schema ready")

    async def disconnect(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Session scope with automatic rollback on error.

        The caller commits; anything uncommitted is rolled back on exit.
        """
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")

        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error, rolling back: {e}")
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def health_check(self) -> bool:
        """Run a trivial query against the store."""
        try:
            async with self.get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, RuntimeError) as e:
            logger.warning(f"Database health check failed: {e}")
            return False
