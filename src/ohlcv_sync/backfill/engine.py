"""Backfill engine: probe, plan, fetch and merge one symbol's candle range.

Produces a clean, duplicate-free, time-sorted Candle series ready for the
batched upsert writer. Nothing here touches storage.
"""

import time

from ohlcv_sync.backfill.fetcher import PagedFetcher, ProgressCallback
from ohlcv_sync.backfill.merge import merge_pages
from ohlcv_sync.backfill.models import BackfillResult
from ohlcv_sync.backfill.planner import plan_range
from ohlcv_sync.backfill.prober import probe_interval
from ohlcv_sync.config import SyncSettings
from ohlcv_sync.data.parsing import parse_candles
from ohlcv_sync.exchange.client import ExchangeClient
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


class BackfillEngine:
    """Fetches a complete candle range for one symbol from one exchange.

    Usage:
        engine = BackfillEngine(settings.sync)
        result = await engine.fetch_range(client, "BTC/USDT", since_ms)
    """

    def __init__(
        self,
        settings: SyncSettings,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self._settings = settings
        self._fetcher = PagedFetcher(settings, progress_callback)

    async def fetch_range(
        self,
        client: ExchangeClient,
        symbol: str,
        since: int,
        until: int | None = None,
    ) -> BackfillResult:
        """Fetch candles for symbol covering [since, until or now).

        Raises the fatal per-symbol errors of the prober and fetcher
        (NoDataAvailable, InsufficientData, RateLimitExhausted,
        UpstreamFetchError) unchanged.
        """
        timeframe = self._settings.timeframe
        started = time.monotonic()

        probe = await probe_interval(
            client, symbol, timeframe, since, self._settings.page_size_cap
        )

        plan = plan_range(
            symbol=symbol,
            timeframe=timeframe,
            interval_ms=probe.interval_ms,
            page_size=probe.page_size,
            first_candle_time=probe.first_candle_time,
            # The exchange may only have history from a later point than since
            start_time=max(since, probe.first_candle_time),
            end_time=until,
            request_limit=self._settings.page_size_cap,
        )

        if plan.is_up_to_date:
            logger.info("symbol_up_to_date", symbol=symbol, since=since)
            return BackfillResult(plan=plan, candles=[])

        logger.info(
            "downloading_candles",
            symbol=symbol,
            timeframe=timeframe,
            start_time=plan.start_time,
            end_time=until if until is not None else "now",
            total_needed=plan.total_needed,
            requests=plan.num_pages,
        )

        rows = await self._fetcher.fetch_all(client, plan)
        merged = merge_pages(rows, plan.interval_ms, plan.total_needed, symbol=symbol)

        candles = parse_candles(
            merged.rows,
            symbol,
            plan.interval_ms,
            exclude_incomplete=self._settings.exclude_incomplete_candles,
        )

        logger.info(
            "candles_fetched",
            symbol=symbol,
            raw_rows=len(rows),
            candles=len(candles),
            missing_candles=merged.missing_candles,
            duration_seconds=round(time.monotonic() - started, 1),
        )
        return BackfillResult(
            plan=plan, candles=candles, missing_candles=merged.missing_candles
        )
