"""Resume cursor resolution: where each symbol's next backfill starts."""

import time
from collections.abc import Iterable

from ohlcv_sync.data.models import Partition
from ohlcv_sync.data.store import CandleStore
from ohlcv_sync.exceptions import PartitionLookupFailure
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


class ResumeStateResolver:
    """Derives per-symbol start times from persisted data.

    A symbol resumes from its latest persisted close_time. Symbols with
    no rows, or a partition that does not exist yet, start from
    now - lookback_ms.
    """

    def __init__(self, store: CandleStore, lookback_ms: int) -> None:
        self._store = store
        self._lookback_ms = lookback_ms

    async def latest_cursors(
        self, symbols: Iterable[str], partition: Partition
    ) -> dict[str, int]:
        """Latest persisted close_time per symbol; empty when nothing is stored."""
        try:
            return await self._store.latest_close_times(symbols, partition)
        except PartitionLookupFailure as e:
            logger.info(
                "partition_not_readable_yet",
                partition=str(partition),
                error=str(e),
                note="treating as no resume cursor",
            )
            return {}

    async def history_start(self, partition: Partition) -> int | None:
        """Earliest persisted close_time in the partition, or None when empty or absent."""
        try:
            return await self._store.earliest_close_time(partition)
        except PartitionLookupFailure:
            return None

    async def resolve(
        self,
        symbols: Iterable[str],
        partition: Partition,
        now_ms: int | None = None,
    ) -> dict[str, int]:
        """Return the start timestamp (ms) for every requested symbol."""
        symbols = list(symbols)
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        default_start = now_ms - self._lookback_ms

        cursors = await self.latest_cursors(symbols, partition)
        starts = {symbol: cursors.get(symbol, default_start) for symbol in symbols}

        logger.debug(
            "resume_cursors_resolved",
            partition=str(partition),
            symbols=len(symbols),
            resumed=len(cursors),
            default_start=default_start,
        )
        return starts
