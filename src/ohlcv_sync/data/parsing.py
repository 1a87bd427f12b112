"""Conversion of raw ccxt OHLCV rows into Candle records."""

import time
from collections.abc import Iterable, Sequence
from decimal import Decimal

from ohlcv_sync.data.models import Candle
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


def to_decimal(value: object) -> Decimal:
    """Convert an exchange numeric to Decimal without float drift.

    ccxt returns floats; going through str() keeps the printed value
    (e.g. 0.1 -> Decimal("0.1"), not 0.1000000000000000055...).
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _has_prices(row: Sequence) -> bool:
    return all(value is not None for value in row[1:5])


def parse_candles(
    rows: Iterable[Sequence],
    symbol: str,
    interval_ms: int,
    exclude_incomplete: bool = True,
    now_ms: int | None = None,
) -> list[Candle]:
    """Build Candles from [timestamp_ms, open, high, low, close, volume] rows.

    close_time is derived as open_time + interval_ms. Rows missing any price
    are dropped and counted in a warning; a missing volume (some exchanges
    omit it) becomes zero. With exclude_incomplete, candles that have not
    closed yet (close_time in the future) are dropped.
    """
    rows = list(rows)
    complete = [row for row in rows if _has_prices(row)]
    if len(complete) < len(rows):
        logger.warning(
            "candle_missing_price",
            symbol=symbol,
            dropped=len(rows) - len(complete),
        )

    candles = [
        Candle(
            symbol=symbol,
            open_time=int(row[0]),
            close_time=int(row[0]) + interval_ms,
            open=to_decimal(row[1]),
            high=to_decimal(row[2]),
            low=to_decimal(row[3]),
            close=to_decimal(row[4]),
            volume=to_decimal(row[5]) if row[5] is not None else Decimal("0"),
        )
        for row in complete
    ]

    if not exclude_incomplete:
        return candles

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return [c for c in candles if c.close_time <= now_ms]


def deduplicate_candles(candles: Iterable[Candle]) -> list[Candle]:
    """Drop repeated (symbol, close_time) keys, keeping the first occurrence."""
    seen: set[tuple[str, int]] = set()
    unique: list[Candle] = []
    for candle in candles:
        key = (candle.symbol, candle.close_time)
        if key in seen:
            continue
        seen.add(key)
        unique.append(candle)
    return unique
