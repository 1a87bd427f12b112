"""Tests for the batched upsert writer.

Covers batch slicing, in-batch dedup, per-batch retry and the
skip-and-continue policy for batches that exhaust their retries.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, call, patch

import pytest

from ohlcv_sync.config import StorageSettings
from ohlcv_sync.data.models import Candle, Partition
from ohlcv_sync.data.store import CandleStore
from ohlcv_sync.data.writer import BatchedUpsertWriter
from ohlcv_sync.exceptions import BatchPersistFailure

T0 = 1_700_000_000_000
MINUTE = 60_000
SLEEP = "ohlcv_sync.data.writer.asyncio.sleep"
PARTITION = Partition("binance", "spot")


def _candles(count: int, start: int = T0) -> list[Candle]:
    return [
        Candle(
            symbol="BTC/USDT",
            open_time=start + i * MINUTE,
            close_time=start + (i + 1) * MINUTE,
            open=Decimal("1"),
            high=Decimal("2"),
            low=Decimal("0.5"),
            close=Decimal("1.5"),
            volume=Decimal("10"),
        )
        for i in range(count)
    ]


@pytest.fixture
def mock_store() -> AsyncMock:
    store = AsyncMock(spec=CandleStore)
    store.upsert_batch.side_effect = lambda batch, partition: len(batch)
    return store


class TestBatchedUpsertWriter:
    @pytest.mark.asyncio
    async def test_slices_into_batches(
        self, mock_store: AsyncMock, storage_settings: StorageSettings
    ) -> None:
        writer = BatchedUpsertWriter(mock_store, storage_settings)  # batch_size=3

        report = await writer.persist(_candles(8), PARTITION)

        sizes = [len(c.args[0]) for c in mock_store.upsert_batch.await_args_list]
        assert sizes == [3, 3, 2]
        assert report.total == 8
        assert report.persisted == 8
        assert report.failures == []
        mock_store.ensure_partition.assert_awaited_once_with(PARTITION)

    @pytest.mark.asyncio
    async def test_deduplicates_within_batch(
        self, mock_store: AsyncMock, storage_settings: StorageSettings
    ) -> None:
        candles = _candles(2)
        candles.insert(1, candles[0])  # [c0, c0, c1]
        writer = BatchedUpsertWriter(mock_store, storage_settings)

        report = await writer.persist(candles, PARTITION)

        [batch] = [c.args[0] for c in mock_store.upsert_batch.await_args_list]
        assert [c.open_time for c in batch] == [T0, T0 + MINUTE]
        assert report.persisted == 2

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(
        self, mock_store: AsyncMock, storage_settings: StorageSettings
    ) -> None:
        mock_store.upsert_batch.side_effect = [RuntimeError("locked"), 3]
        writer = BatchedUpsertWriter(mock_store, storage_settings)

        with patch(SLEEP, new_callable=AsyncMock) as mock_sleep:
            report = await writer.persist(_candles(3), PARTITION)

        assert report.persisted == 3
        assert report.failures == []
        assert mock_sleep.await_args_list == [call(1.0)]

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_block_others(
        self, mock_store: AsyncMock, storage_settings: StorageSettings
    ) -> None:
        failing_start = T0 + 3 * MINUTE  # second batch

        async def upsert(batch, partition):
            if batch[0].open_time == failing_start:
                raise RuntimeError("disk I/O error")
            return len(batch)

        mock_store.upsert_batch.side_effect = upsert
        writer = BatchedUpsertWriter(mock_store, storage_settings)

        with patch(SLEEP, new_callable=AsyncMock) as mock_sleep:
            report = await writer.persist(_candles(9), PARTITION)

        assert report.persisted == 6
        assert report.failed_batches == 1
        [failure] = report.failures
        assert isinstance(failure, BatchPersistFailure)
        assert failure.start_index == 3
        assert failure.size == 3
        assert isinstance(failure.cause, RuntimeError)
        # 1 + 3 + 1 attempts, sleeping between the failing batch's attempts
        assert mock_store.upsert_batch.await_count == 5
        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_input(
        self, mock_store: AsyncMock, storage_settings: StorageSettings
    ) -> None:
        writer = BatchedUpsertWriter(mock_store, storage_settings)

        report = await writer.persist([], PARTITION)

        assert report.total == 0
        mock_store.ensure_partition.assert_not_awaited()
        mock_store.upsert_batch.assert_not_awaited()


class TestWriterWithSqlite:
    @pytest.mark.asyncio
    async def test_persist_twice_is_idempotent(
        self, store: CandleStore, storage_settings: StorageSettings
    ) -> None:
        writer = BatchedUpsertWriter(store, storage_settings)
        candles = _candles(10)

        await writer.persist(candles, PARTITION)
        before = await store.get_candles(PARTITION, "BTC/USDT")
        await writer.persist(candles, PARTITION)
        after = await store.get_candles(PARTITION, "BTC/USDT")

        assert before == after
        assert await store.count_candles(PARTITION) == 10

    @pytest.mark.asyncio
    async def test_always_failing_batch_leaves_others_persisted(
        self, store: CandleStore, storage_settings: StorageSettings
    ) -> None:
        writer = BatchedUpsertWriter(store, storage_settings)
        real_upsert = store.upsert_batch

        async def flaky(batch, partition):
            if batch[0].open_time == T0 + 6 * MINUTE:  # third batch
                raise RuntimeError("constraint failed")
            return await real_upsert(batch, partition)

        with patch.object(store, "upsert_batch", side_effect=flaky), patch(
            SLEEP, new_callable=AsyncMock
        ):
            report = await writer.persist(_candles(12), PARTITION)

        stored = await store.get_candles(PARTITION, "BTC/USDT")
        opens = {c.open_time for c in stored}
        assert report.failed_batches == 1
        assert len(stored) == 9
        assert not opens & {T0 + i * MINUTE for i in (6, 7, 8)}

    @pytest.mark.asyncio
    async def test_resume_cursor_after_failed_batches(
        self, store: CandleStore, storage_settings: StorageSettings
    ) -> None:
        """A failed last batch keeps the cursor behind; a failed middle one does not."""
        writer = BatchedUpsertWriter(store, storage_settings)
        real_upsert = store.upsert_batch
        failing_start = T0 + 6 * MINUTE

        async def flaky(batch, partition):
            if batch[0].open_time == failing_start:
                raise RuntimeError("disk I/O error")
            return await real_upsert(batch, partition)

        with patch.object(store, "upsert_batch", side_effect=flaky), patch(
            SLEEP, new_callable=AsyncMock
        ):
            await writer.persist(_candles(9), PARTITION)  # last batch fails
            tail_failed = await store.latest_close_times(["BTC/USDT"], PARTITION)
            await writer.persist(_candles(12), PARTITION)  # middle batch fails
            middle_failed = await store.latest_close_times(["BTC/USDT"], PARTITION)

        assert tail_failed == {"BTC/USDT": T0 + 6 * MINUTE}
        assert middle_failed == {"BTC/USDT": T0 + 12 * MINUTE}
        assert await store.count_candles(PARTITION) == 9
