"""Candle persistence layer.

Provides data models, SQLite database management, the partitioned candle
store, resume cursor resolution, and the batched upsert writer.
"""

from ohlcv_sync.data.database import CandleDatabase
from ohlcv_sync.data.models import Candle, Partition, WriteReport
from ohlcv_sync.data.parsing import deduplicate_candles, parse_candles
from ohlcv_sync.data.resume import ResumeStateResolver
from ohlcv_sync.data.store import CandleStore
from ohlcv_sync.data.writer import BatchedUpsertWriter

__all__ = [
    "BatchedUpsertWriter",
    "Candle",
    "CandleDatabase",
    "CandleStore",
    "Partition",
    "ResumeStateResolver",
    "WriteReport",
    "deduplicate_candles",
    "parse_candles",
]
