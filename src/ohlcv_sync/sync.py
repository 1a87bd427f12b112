"""Sync cycle: every configured exchange, every selected symbol, in order.

For each exchange: connect, select markets, resolve resume cursors per
partition, then backfill and persist one symbol at a time. Failures are
isolated per symbol (and per exchange): they are logged and counted, and
the loop moves on.
"""

import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field

from ohlcv_sync.backfill.engine import BackfillEngine
from ohlcv_sync.config import SyncSettings
from ohlcv_sync.data.models import Partition
from ohlcv_sync.data.resume import ResumeStateResolver
from ohlcv_sync.data.writer import BatchedUpsertWriter
from ohlcv_sync.exceptions import SyncError, UnsupportedExchange
from ohlcv_sync.exchange.ccxt_client import CcxtExchangeClient, supported_exchange_names
from ohlcv_sync.exchange.client import ExchangeClient
from ohlcv_sync.exchange.markets import MarketSelection, select_markets
from ohlcv_sync.logging import get_logger, log_context

logger = get_logger(__name__)

ClientFactory = Callable[[str], ExchangeClient]


@dataclass
class ExchangeSyncReport:
    """Per-exchange outcome of one sync cycle."""

    exchange: str
    symbols_total: int = 0
    symbols_synced: int = 0
    symbols_failed: int = 0
    candles_persisted: int = 0
    failed_batches: int = 0
    missing_candles: int = 0
    error: str | None = None
    # earliest stored close_time per market type, before this sync
    history_start_ms: dict[str, int | None] = field(default_factory=dict)


@dataclass
class CycleReport:
    """Outcome of one full sync cycle across exchanges."""

    started_at_ms: int
    finished_at_ms: int | None = None
    exchanges: list[ExchangeSyncReport] = field(default_factory=list)
    skipped_exchanges: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "started_at_ms": self.started_at_ms,
            "finished_at_ms": self.finished_at_ms,
            "skipped_exchanges": list(self.skipped_exchanges),
            "exchanges": [vars(report).copy() for report in self.exchanges],
        }


class ExchangeSynchronizer:
    """Syncs all selected symbols of one exchange into their partitions.

    Args:
        settings: Sync settings (filters, timeframe).
        engine: Backfill engine producing clean candle series.
        resolver: Resume cursor resolver.
        writer: Batched upsert writer.
        client_factory: Builds an ExchangeClient from an exchange name.
    """

    def __init__(
        self,
        settings: SyncSettings,
        engine: BackfillEngine,
        resolver: ResumeStateResolver,
        writer: BatchedUpsertWriter,
        client_factory: ClientFactory = CcxtExchangeClient,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._resolver = resolver
        self._writer = writer
        self._client_factory = client_factory

    async def sync_exchange(self, exchange_name: str) -> ExchangeSyncReport:
        """Run one exchange's sync. Never raises for per-symbol failures.

        Raises:
            UnsupportedExchange: unknown exchange or no OHLCV/timeframe support.
        """
        report = ExchangeSyncReport(exchange=exchange_name)
        client = self._client_factory(exchange_name)

        try:
            await client.connect()

            if not client.supports_ohlcv():
                raise UnsupportedExchange(f"{exchange_name} does not support fetchOHLCV")
            if not client.supports_timeframe(self._settings.timeframe):
                raise UnsupportedExchange(
                    f"{exchange_name} does not support {self._settings.timeframe} candles"
                )

            selections = select_markets(client.get_markets(), self._settings)
            report.symbols_total = len(selections)
            logger.info(
                "markets_selected",
                exchange=exchange_name,
                symbols=len(selections),
            )

            start_times = await self._resolve_start_times(exchange_name, selections)
            for market_type in start_times:
                report.history_start_ms[market_type] = await self._resolver.history_start(
                    Partition(exchange_name, market_type)
                )

            for i, selection in enumerate(selections, 1):
                await self._sync_symbol(
                    client,
                    selection,
                    start_times[selection.market_type][selection.symbol],
                    report,
                )
                logger.info(
                    "symbol_sync_progress",
                    exchange=exchange_name,
                    symbol=selection.symbol,
                    progress=f"{i}/{len(selections)}",
                )
        finally:
            await client.close()

        logger.info(
            "exchange_sync_complete",
            exchange=exchange_name,
            synced=report.symbols_synced,
            failed=report.symbols_failed,
            candles_persisted=report.candles_persisted,
            failed_batches=report.failed_batches,
        )
        return report

    async def _resolve_start_times(
        self, exchange_name: str, selections: list[MarketSelection]
    ) -> dict[str, dict[str, int]]:
        """Resume start per symbol, resolved once per market-type partition."""
        by_type: dict[str, list[str]] = defaultdict(list)
        for selection in selections:
            by_type[selection.market_type].append(selection.symbol)

        start_times: dict[str, dict[str, int]] = {}
        for market_type, symbols in by_type.items():
            start_times[market_type] = await self._resolver.resolve(
                symbols, Partition(exchange_name, market_type)
            )
        return start_times

    async def _sync_symbol(
        self,
        client: ExchangeClient,
        selection: MarketSelection,
        since: int,
        report: ExchangeSyncReport,
    ) -> None:
        partition = Partition(client.name, selection.market_type)
        try:
            with log_context(exchange=client.name, symbol=selection.symbol):
                result = await self._engine.fetch_range(client, selection.symbol, since)
                if result.candles:
                    write = await self._writer.persist(result.candles, partition)
                    report.candles_persisted += write.persisted
                    report.failed_batches += write.failed_batches
            report.missing_candles += result.missing_candles
            report.symbols_synced += 1
        except SyncError as e:
            report.symbols_failed += 1
            logger.error(
                "symbol_sync_failed",
                exchange=client.name,
                symbol=selection.symbol,
                error_type=type(e).__name__,
                error=str(e),
            )
        except Exception as e:
            report.symbols_failed += 1
            logger.error(
                "symbol_sync_error",
                exchange=client.name,
                symbol=selection.symbol,
                error=str(e),
                exc_info=True,
            )


class SyncService:
    """Runs one sync cycle over all configured exchanges, sequentially."""

    def __init__(
        self,
        settings: SyncSettings,
        synchronizer: ExchangeSynchronizer,
        known_exchanges: Callable[[], list[str]] = supported_exchange_names,
    ) -> None:
        self._settings = settings
        self._synchronizer = synchronizer
        self._known_exchanges = known_exchanges

    async def run_cycle(self) -> CycleReport:
        """Sync every configured exchange; one exchange's failure never stops the rest."""
        cycle = CycleReport(started_at_ms=int(time.time() * 1000))
        logger.info("sync_cycle_started", exchanges=self._settings.exchange_names)

        known = set(self._known_exchanges())
        for name in self._settings.exchange_names:
            if name not in known:
                logger.warning(
                    "exchange_not_supported_by_ccxt",
                    exchange=name,
                    note="filtering it out",
                )
                cycle.skipped_exchanges.append(name)
                continue

            try:
                cycle.exchanges.append(await self._synchronizer.sync_exchange(name))
            except UnsupportedExchange as e:
                logger.warning("exchange_skipped", exchange=name, reason=str(e))
                cycle.skipped_exchanges.append(name)
            except Exception as e:
                logger.error(
                    "exchange_sync_failed",
                    exchange=name,
                    error=str(e),
                    exc_info=True,
                )
                cycle.exchanges.append(ExchangeSyncReport(exchange=name, error=str(e)))

        cycle.finished_at_ms = int(time.time() * 1000)
        logger.info(
            "sync_cycle_completed",
            exchanges=len(cycle.exchanges),
            skipped=len(cycle.skipped_exchanges),
            candles_persisted=sum(r.candles_persisted for r in cycle.exchanges),
            duration_seconds=round((cycle.finished_at_ms - cycle.started_at_ms) / 1000, 1),
        )
        return cycle
