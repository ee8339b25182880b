"""Base storage class and helpers.

Contains engine lifecycle, schema creation and the transaction helper
shared by the storage mixins.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hookline.config import settings
from hookline.exceptions import StorageError

from .tables import Base


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class StorageBase:
    """Base class for Hookline storage with initialization and helpers.

    Provides:
    - Engine and session factory lifecycle
    - Table creation
    - A transaction helper that maps SQLAlchemy errors to StorageError
    """

    def __init__(
        self,
        url: str | None = None,
        echo: bool | None = None,
    ) -> None:
        """Initialize storage client.

        Args:
            url: SQLAlchemy async URL. Defaults to settings.database_url.
            echo: Log SQL statements. Defaults to settings.database_echo.
        """
        self._url = url or settings.database_url
        self._echo = settings.database_echo if echo is None else echo
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def engine(self) -> AsyncEngine:
        """Get the engine, raising if not initialized."""
        if self._engine is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._engine

    @property
    def is_sqlite(self) -> bool:
        return self._url.startswith("sqlite")

    async def initialize(self) -> None:
        """Create the engine and ensure tables exist."""
        if self._engine is not None:
            return

        kwargs: dict[str, Any] = {"echo": self._echo}
        if self.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self._url:
                # One shared connection, otherwise every session sees an empty DB
                kwargs["poolclass"] = StaticPool

        engine = create_async_engine(self._url, **kwargs)
        if self.is_sqlite:
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            await engine.dispose()
            raise StorageError(f"Failed to initialize database: {e}") from e

        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    async def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None

    async def __aenter__(self) -> StorageBase:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Open a session with a transaction that commits on success.

        Raises:
            StorageError: On any database failure. Operational failures are
                flagged as transient so callers may retry them.
        """
        if self._sessionmaker is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")

        try:
            async with self._sessionmaker() as session, session.begin():
                yield session
        except OperationalError as e:
            raise StorageError(f"Database unavailable: {e.orig}", transient=True) from e
        except DBAPIError as e:
            raise StorageError(f"Database error: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Database error: {e}") from e
