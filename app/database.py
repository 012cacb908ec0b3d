"""Database connection and session management.

This module provides an async SQLAlchemy store handle for SQLite (dev) and
PostgreSQL (prod). The handle is opened once at process start, passed to
whatever needs it, and closed at shutdown.

Examples:
    >>> db = Database("sqlite+aiosqlite:///./credits.db")
    >>> db.open()
    >>> await db.create_all()
    >>> async with db.begin() as conn:
    ...     await conn.execute(text("SELECT 1"))
    >>> await db.close()

Tests:
    - tests/unit/test_database.py
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)


class Database:
    """Owns one async engine and its session factory.

    Args:
        url: SQLAlchemy async database URL.
        echo: Log emitted SQL.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def open(self) -> None:
        """Create the engine and session factory.

        Note:
            For SQLite, enables WAL mode, foreign keys and a busy timeout so
            concurrent writers wait for the lock instead of failing.
            For PostgreSQL, configures connection pooling.
        """
        if self._engine is not None:
            return

        if self.is_sqlite:
            self._engine = create_async_engine(
                self.url,
                echo=self.echo,
                connect_args={"check_same_thread": False},
            )

            @event.listens_for(self._engine.sync_engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute("PRAGMA busy_timeout=5000")
                cursor.close()

        else:
            self._engine = create_async_engine(
                self.url,
                echo=self.echo,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
            )

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info(f"Database engine created: {self.url.split('@')[-1]}")

    async def close(self) -> None:
        """Dispose of pooled connections. Safe to call twice."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connections closed")

    @asynccontextmanager
    async def begin(self) -> AsyncGenerator[AsyncConnection, None]:
        """Connection with a transaction, committed on success, rolled back on error."""
        async with self.engine.begin() as conn:
            yield conn

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """ORM session, committed on success, rolled back on error."""
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        session = self._session_factory()

        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_all(self) -> None:
        """Create all tables. Called once at application startup."""
        from app.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database tables created")

    async def drop_all(self) -> None:
        """Drop all tables.

        Warning:
            This is destructive! Only use in testing or development.
        """
        from app.models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        logger.warning("Database tables dropped")

    async def ping(self) -> bool:
        """Check if the database is accessible."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
