"""Tests for CandleStore against a real temporary SQLite database."""

from decimal import Decimal

import aiosqlite
import pytest

from ohlcv_sync.data.models import Candle, Partition
from ohlcv_sync.data.store import CandleStore
from ohlcv_sync.exceptions import InvalidPartitionName, PartitionLookupFailure

T0 = 1_700_000_000_000
MINUTE = 60_000


def _candles(symbol: str, start: int, count: int, close: str = "100.12345678") -> list[Candle]:
    return [
        Candle(
            symbol=symbol,
            open_time=start + i * MINUTE,
            close_time=start + (i + 1) * MINUTE,
            open=Decimal("100.1"),
            high=Decimal("101.2"),
            low=Decimal("99.3"),
            close=Decimal(close),
            volume=Decimal("0.00000001"),
        )
        for i in range(count)
    ]


@pytest.fixture
def partition() -> Partition:
    return Partition("binance", "spot")


class TestPartition:
    def test_table_name(self) -> None:
        assert Partition("binance", "swap").table_name == "binance_swap_ohlcv"

    @pytest.mark.parametrize("source", ["bin ance", "x;DROP TABLE y", "", "a-b"])
    def test_rejects_unsafe_names(self, source: str) -> None:
        with pytest.raises(InvalidPartitionName):
            Partition(source, "spot")


class TestEnsurePartition:
    @pytest.mark.asyncio
    async def test_idempotent(self, store: CandleStore, partition: Partition) -> None:
        await store.ensure_partition(partition)
        await store.ensure_partition(partition)

        assert await store.count_candles(partition) == 0


class TestUpsertBatch:
    @pytest.mark.asyncio
    async def test_round_trip_keeps_exact_precision(
        self, store: CandleStore, partition: Partition
    ) -> None:
        await store.ensure_partition(partition)
        await store.upsert_batch(_candles("BTC/USDT", T0, 3), partition)

        stored = await store.get_candles(partition, "BTC/USDT")

        assert len(stored) == 3
        assert stored[0].close == Decimal("100.12345678")
        assert stored[0].volume == Decimal("0.00000001")
        assert stored[0].close_time == T0 + MINUTE

    @pytest.mark.asyncio
    async def test_same_batch_twice_is_idempotent(
        self, store: CandleStore, partition: Partition
    ) -> None:
        batch = _candles("BTC/USDT", T0, 5)
        await store.ensure_partition(partition)

        await store.upsert_batch(batch, partition)
        first = await store.get_candles(partition, "BTC/USDT")
        await store.upsert_batch(batch, partition)
        second = await store.get_candles(partition, "BTC/USDT")

        assert first == second
        assert await store.count_candles(partition) == 5

    @pytest.mark.asyncio
    async def test_conflict_overwrites_values(
        self, store: CandleStore, partition: Partition
    ) -> None:
        await store.ensure_partition(partition)
        await store.upsert_batch(_candles("BTC/USDT", T0, 2, close="1"), partition)
        await store.upsert_batch(_candles("BTC/USDT", T0, 2, close="2"), partition)

        stored = await store.get_candles(partition, "BTC/USDT")

        assert [c.close for c in stored] == [Decimal("2"), Decimal("2")]
        assert await store.count_candles(partition) == 2

    @pytest.mark.asyncio
    async def test_missing_table_fails_whole_batch(
        self, store: CandleStore, partition: Partition
    ) -> None:
        with pytest.raises(aiosqlite.OperationalError):
            await store.upsert_batch(_candles("BTC/USDT", T0, 2), partition)

    @pytest.mark.asyncio
    async def test_empty_batch(self, store: CandleStore, partition: Partition) -> None:
        assert await store.upsert_batch([], partition) == 0


class TestReads:
    @pytest.mark.asyncio
    async def test_latest_close_times_per_symbol(
        self, store: CandleStore, partition: Partition
    ) -> None:
        await store.ensure_partition(partition)
        await store.upsert_batch(_candles("BTC/USDT", T0, 10), partition)
        await store.upsert_batch(_candles("ETH/USDT", T0, 3), partition)

        latest = await store.latest_close_times(
            ["BTC/USDT", "ETH/USDT", "SOL/USDT"], partition
        )

        assert latest == {"BTC/USDT": T0 + 10 * MINUTE, "ETH/USDT": T0 + 3 * MINUTE}

    @pytest.mark.asyncio
    async def test_latest_close_times_many_symbols(
        self, store: CandleStore, partition: Partition
    ) -> None:
        await store.ensure_partition(partition)
        symbols = [f"S{i}/USDT" for i in range(1_200)]
        await store.upsert_batch(_candles(symbols[-1], T0, 1), partition)

        latest = await store.latest_close_times(symbols, partition)

        assert latest == {symbols[-1]: T0 + MINUTE}

    @pytest.mark.asyncio
    async def test_missing_partition_raises_lookup_failure(
        self, store: CandleStore
    ) -> None:
        with pytest.raises(PartitionLookupFailure):
            await store.latest_close_times(["BTC/USDT"], Partition("kraken", "swap"))

    @pytest.mark.asyncio
    async def test_earliest_close_time(
        self, store: CandleStore, partition: Partition
    ) -> None:
        await store.ensure_partition(partition)
        assert await store.earliest_close_time(partition) is None

        await store.upsert_batch(_candles("BTC/USDT", T0 + 5 * MINUTE, 3), partition)
        await store.upsert_batch(_candles("ETH/USDT", T0, 3), partition)

        assert await store.earliest_close_time(partition) == T0 + MINUTE

    @pytest.mark.asyncio
    async def test_get_candles_range(
        self, store: CandleStore, partition: Partition
    ) -> None:
        await store.ensure_partition(partition)
        await store.upsert_batch(_candles("BTC/USDT", T0, 10), partition)

        stored = await store.get_candles(
            partition, "BTC/USDT", since_ms=T0 + 2 * MINUTE, until_ms=T0 + 4 * MINUTE
        )

        assert [c.open_time for c in stored] == [T0 + 2 * MINUTE, T0 + 3 * MINUTE, T0 + 4 * MINUTE]

    @pytest.mark.asyncio
    async def test_partitions_are_isolated(self, store: CandleStore) -> None:
        spot, swap = Partition("binance", "spot"), Partition("binance", "swap")
        await store.ensure_partition(spot)
        await store.ensure_partition(swap)
        await store.upsert_batch(_candles("BTC/USDT", T0, 4), spot)

        assert await store.count_candles(spot) == 4
        assert await store.count_candles(swap) == 0
