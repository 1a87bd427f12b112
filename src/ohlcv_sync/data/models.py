"""Data models for persisted OHLCV candles and storage partitions.

CRITICAL: All prices and volumes use Decimal. Never use float for candle values.
They are stored as TEXT in SQLite and restored as Decimal on read.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal

from ohlcv_sync.exceptions import BatchPersistFailure, InvalidPartitionName

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]+$")


@dataclass
class Candle:
    """A single fixed-interval OHLCV candle.

    close_time is always open_time + interval, never taken from the source.
    """

    symbol: str
    open_time: int
    close_time: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class Partition:
    """Storage grouping of candles by source exchange and market type."""

    source: str
    market_type: str

    def __post_init__(self) -> None:
        for part in (self.source, self.market_type):
            if not _IDENTIFIER_RE.match(part):
                raise InvalidPartitionName(
                    f"Unsafe partition component {part!r}"
                )

    @property
    def table_name(self) -> str:
        return f"{self.source}_{self.market_type}_ohlcv".lower()

    def __str__(self) -> str:
        return f"{self.source}_{self.market_type}"


@dataclass
class WriteReport:
    """Outcome of persisting one symbol's candles into a partition."""

    partition: Partition
    symbol: str | None
    total: int = 0
    persisted: int = 0
    failures: list[BatchPersistFailure] = field(default_factory=list)

    @property
    def failed_batches(self) -> int:
        return len(self.failures)
