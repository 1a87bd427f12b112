"""Typed SQLite read/write abstraction for partitioned candle tables.

Each (source, market_type) partition is one table keyed by (symbol, open_time).
All SQL is isolated behind CandleStore.

CRITICAL: All price/volume values stored as TEXT in SQLite, restored as Decimal on read.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal

import aiosqlite

from ohlcv_sync.data.database import CandleDatabase
from ohlcv_sync.data.models import Candle, Partition
from ohlcv_sync.exceptions import PartitionLookupFailure
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on older builds
_SYMBOL_CHUNK = 500

_CREATE_PARTITION_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    symbol TEXT NOT NULL,
    open_time INTEGER NOT NULL,
    open TEXT NOT NULL,
    high TEXT NOT NULL,
    low TEXT NOT NULL,
    close TEXT NOT NULL,
    volume TEXT NOT NULL,
    close_time INTEGER NOT NULL,
    created_at INTEGER NOT NULL DEFAULT (CAST(strftime('%s', 'now') AS INTEGER) * 1000),
    PRIMARY KEY (symbol, open_time)
);

CREATE INDEX IF NOT EXISTS idx_{table}_symbol_close
    ON {table}(symbol, close_time);
"""

_UPSERT_SQL = """
INSERT INTO {table} (symbol, open_time, open, high, low, close, volume, close_time)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (symbol, open_time) DO UPDATE SET
    open = excluded.open,
    high = excluded.high,
    low = excluded.low,
    close = excluded.close,
    volume = excluded.volume,
    close_time = excluded.close_time
"""


def _to_text(value: Decimal) -> str:
    """Plain notation: Decimal("1E-8") is stored as "0.00000001"."""
    return format(value, "f")


class CandleStore:
    """Async SQLite store for partitioned OHLCV candles.

    Usage:
        async with CandleDatabase("data/ohlcv.db") as database:
            store = CandleStore(database)
            await store.ensure_partition(partition)
            await store.upsert_batch(candles, partition)
    """

    def __init__(self, database: CandleDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def ensure_partition(self, partition: Partition) -> None:
        """Create the partition table and index if absent. Safe to call repeatedly."""
        async with self._database.transaction() as db:
            await db.executescript(
                _CREATE_PARTITION_SQL.format(table=partition.table_name)
            )
        logger.debug("partition_ensured", table=partition.table_name)

    async def upsert_batch(self, candles: Sequence[Candle], partition: Partition) -> int:
        """Insert candles, overwriting value columns on (symbol, open_time) conflict.

        Runs as one transaction: either the whole batch lands or none of it.
        Returns the number of rows written.
        """
        if not candles:
            return 0

        data = [
            (
                c.symbol,
                c.open_time,
                _to_text(c.open),
                _to_text(c.high),
                _to_text(c.low),
                _to_text(c.close),
                _to_text(c.volume),
                c.close_time,
            )
            for c in candles
        ]

        async with self._database.transaction() as db:
            await db.executemany(_UPSERT_SQL.format(table=partition.table_name), data)

        logger.debug(
            "upserted_candles",
            table=partition.table_name,
            rows=len(data),
        )
        return len(data)

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def latest_close_times(
        self, symbols: Iterable[str], partition: Partition
    ) -> dict[str, int]:
        """Return the latest persisted close_time per symbol.

        Symbols without rows are absent from the result.
        Raises PartitionLookupFailure if the partition table does not exist.
        """
        symbols = list(dict.fromkeys(symbols))
        latest: dict[str, int] = {}

        for i in range(0, len(symbols), _SYMBOL_CHUNK):
            chunk = symbols[i : i + _SYMBOL_CHUNK]
            placeholders = ", ".join("?" for _ in chunk)
            rows = await self._fetchall(
                partition,
                f"SELECT symbol, MAX(close_time) FROM {partition.table_name} "
                f"WHERE symbol IN ({placeholders}) GROUP BY symbol",
                chunk,
            )
            for symbol, close_time in rows:
                if close_time is not None:
                    latest[symbol] = int(close_time)

        return latest

    async def earliest_close_time(self, partition: Partition) -> int | None:
        """Return the earliest persisted close_time across all symbols, or None."""
        rows = await self._fetchall(
            partition,
            f"SELECT MIN(close_time) FROM {partition.table_name}",
            (),
        )
        return int(rows[0][0]) if rows and rows[0][0] is not None else None

    async def get_candles(
        self,
        partition: Partition,
        symbol: str,
        since_ms: int | None = None,
        until_ms: int | None = None,
    ) -> list[Candle]:
        """Query candles for a symbol within an optional open_time range.

        Returns list of Candle ordered by open_time ASC.
        """
        conditions = ["symbol = ?"]
        params: list = [symbol]

        if since_ms is not None:
            conditions.append("open_time >= ?")
            params.append(since_ms)
        if until_ms is not None:
            conditions.append("open_time <= ?")
            params.append(until_ms)

        where = " AND ".join(conditions)
        rows = await self._fetchall(
            partition,
            f"SELECT symbol, open_time, open, high, low, close, volume, close_time "
            f"FROM {partition.table_name} WHERE {where} ORDER BY open_time ASC",
            params,
        )
        return [
            Candle(
                symbol=row[0],
                open_time=row[1],
                close_time=row[7],
                open=Decimal(row[2]),
                high=Decimal(row[3]),
                low=Decimal(row[4]),
                close=Decimal(row[5]),
                volume=Decimal(row[6]),
            )
            for row in rows
        ]

    async def count_candles(self, partition: Partition, symbol: str | None = None) -> int:
        """Count rows in a partition, optionally for one symbol."""
        if symbol is None:
            rows = await self._fetchall(
                partition, f"SELECT COUNT(*) FROM {partition.table_name}", ()
            )
        else:
            rows = await self._fetchall(
                partition,
                f"SELECT COUNT(*) FROM {partition.table_name} WHERE symbol = ?",
                (symbol,),
            )
        return rows[0][0]

    async def _fetchall(
        self, partition: Partition, query: str, params: Sequence
    ) -> list:
        try:
            cursor = await self._database.db.execute(query, params)
            return list(await cursor.fetchall())
        except aiosqlite.OperationalError as e:
            raise PartitionLookupFailure(
                f"Cannot read partition table {partition.table_name}: {e}"
            ) from e
