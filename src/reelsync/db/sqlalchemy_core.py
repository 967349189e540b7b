"""Core async database components using SQLAlchemy and SQLModel."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging
from pathlib import Path
import sqlite3
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import CursorResult, Engine, Result
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import ConnectionPoolEntry

from ..exceptions import DatabaseOperationError

logger = logging.getLogger(__name__)

DB_FILENAME = "reelsync.db"


class SqlalchemyCore:
    """Own the async engine and session factory for the SQLite asset store.

    Attributes:
        db_path: Path of the SQLite database file.
        engine: The async SQLAlchemy engine.
        async_session_maker: Factory for sessions bound to ``engine``.
    """

    def __init__(self, db_dir: Path) -> None:
        self.db_path = db_dir / DB_FILENAME
        db_url = f"sqlite+aiosqlite:///{self.db_path.resolve()}"
        self.engine: AsyncEngine = create_async_engine(
            db_url,
            echo=logger.isEnabledFor(logging.DEBUG),
            pool_size=1,  # single writer
            connect_args={
                "check_same_thread": False,
                "timeout": 30.0,
            },
        )
        self.async_session_maker = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.debug(
            "SQLAlchemy engine created.", extra={"db_path": str(self.db_path)}
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Provide a session that is closed when the block exits.

        Yields:
            An AsyncSession. Callers commit explicitly.
        """
        async with self.async_session_maker() as session:
            yield session

    async def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        await self.engine.dispose()

    @staticmethod
    def rowcount(result: Result[Any]) -> int:
        """Return the number of rows matched by an UPDATE or DELETE.

        Args:
            result: Result object returned by ``AsyncSession.execute``.

        Returns:
            The cursor's row count.

        Raises:
            DatabaseOperationError: If the result is not backed by a cursor.
        """
        if isinstance(result, CursorResult):
            return result.rowcount
        raise DatabaseOperationError(
            f"Expected cursor-backed SQLAlchemy result, got {type(result).__name__}."
        )


@event.listens_for(Engine, "connect")
def _(
    dbapi_connection: sqlite3.Connection, _connection_record: ConnectionPoolEntry
) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL;")
    cursor.execute("PRAGMA synchronous = NORMAL;")
    cursor.execute("PRAGMA busy_timeout = 30000;")
    cursor.close()
