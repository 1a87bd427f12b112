"""Async SQLite database manager for candle persistence.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance. Partition tables are created
lazily by CandleStore, so connect() creates no schema.
"""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Self

import aiosqlite

from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


class CandleDatabase:
    """Async SQLite connection manager for candle partitions.

    A single shared connection acts as a connection pool of size one:
    transaction() serializes writers so that one batch's commit or
    rollback never interleaves with another's statements.

    Usage:
        async with CandleDatabase("data/ohlcv.db") as database:
            async with database.transaction() as db:
                await db.execute("INSERT ...")
    """

    def __init__(self, db_path: str = "data/ohlcv.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Open database connection and configure pragmas.

        Creates the parent directory if it does not exist.
        """
        if self._db_path != ":memory:":
            db_dir = os.path.dirname(self._db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        logger.info("candle_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("candle_db_closed", db_path=self._db_path)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run statements in one transaction: commit on success, rollback on error."""
        async with self._write_lock:
            db = self.db
            try:
                yield db
            except BaseException:
                await db.rollback()
                raise
            else:
                await db.commit()

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Async context manager exit."""
        await self.close()
