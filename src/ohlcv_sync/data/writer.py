"""Batched upsert of cleaned candle series with per-batch retry.

A batch that exhausts its retries is logged and skipped; the remaining
batches still run. The next sync cycle re-attempts a symbol only from its
latest persisted close_time: when the final batch fails the cursor stays
behind and the tail is refetched, but a failed middle batch followed by
successful ones leaves a hole that resume does not revisit. Such holes
show up in WriteReport.failures and the failed_batches counters.
"""

import asyncio
from collections.abc import Sequence

from ohlcv_sync.config import StorageSettings
from ohlcv_sync.data.models import Candle, Partition, WriteReport
from ohlcv_sync.data.parsing import deduplicate_candles
from ohlcv_sync.data.store import CandleStore
from ohlcv_sync.exceptions import BatchPersistFailure
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


class BatchedUpsertWriter:
    """Persists a candle series into one partition in fixed-size batches.

    Args:
        store: Storage capability (ensure_partition / upsert_batch).
        settings: batch_size, max_retries and retry_delay_seconds.
    """

    def __init__(self, store: CandleStore, settings: StorageSettings) -> None:
        self._store = store
        self._batch_size = settings.batch_size
        self._max_retries = settings.max_retries
        self._retry_delay = settings.retry_delay_seconds

    async def persist(
        self, candles: Sequence[Candle], partition: Partition
    ) -> WriteReport:
        """Ensure the partition exists, then upsert candles batch by batch.

        Returns a WriteReport; failed batches are listed, never raised.
        """
        symbol = candles[0].symbol if candles else None
        report = WriteReport(partition=partition, symbol=symbol, total=len(candles))

        if not candles:
            logger.warning("persist_called_without_data", partition=str(partition))
            return report

        await self._store.ensure_partition(partition)

        for start in range(0, len(candles), self._batch_size):
            batch = deduplicate_candles(candles[start : start + self._batch_size])
            try:
                report.persisted += await self._upsert_with_retry(batch, partition)
            except Exception as e:
                failure = BatchPersistFailure(start, len(batch), e)
                report.failures.append(failure)
                logger.error(
                    "batch_persist_failed",
                    partition=str(partition),
                    symbol=symbol,
                    start_index=start,
                    rows=len(batch),
                    attempts=self._max_retries,
                    error=str(e),
                )
                continue

            logger.debug(
                "batch_persisted",
                partition=str(partition),
                symbol=symbol,
                start_index=start,
                rows=len(batch),
            )

        logger.info(
            "candles_persisted",
            partition=str(partition),
            symbol=symbol,
            total=report.total,
            persisted=report.persisted,
            failed_batches=report.failed_batches,
        )
        return report

    async def _upsert_with_retry(
        self, batch: list[Candle], partition: Partition
    ) -> int:
        """Upsert one batch, retrying with a fixed delay. Re-raises the last error."""
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            try:
                return await self._store.upsert_batch(batch, partition)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "batch_persist_retry",
                    partition=str(partition),
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    error=str(exc),
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay)

        raise last_error  # type: ignore[misc]
