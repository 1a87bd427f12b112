"""Entry point for the OHLCV sync service.

Wires all components together, optionally embeds the FastAPI health
server, and starts the sync scheduler. When the server is enabled
(default), the scheduler and the server share a single asyncio event loop
via uvicorn's programmatic API and FastAPI's lifespan context manager.

Component wiring order (in _build_components):
1. CandleStore (over an open CandleDatabase)
2. ResumeStateResolver
3. BatchedUpsertWriter
4. BackfillEngine
5. ExchangeSynchronizer
6. SyncService
7. SyncScheduler
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from ohlcv_sync.backfill.engine import BackfillEngine
from ohlcv_sync.config import AppSettings
from ohlcv_sync.data.database import CandleDatabase
from ohlcv_sync.data.resume import ResumeStateResolver
from ohlcv_sync.data.store import CandleStore
from ohlcv_sync.data.writer import BatchedUpsertWriter
from ohlcv_sync.logging import get_logger, setup_logging
from ohlcv_sync.scheduler import SyncScheduler
from ohlcv_sync.sync import ExchangeSynchronizer, SyncService

# Strong references to shutdown tasks; the loop only keeps weak ones
_shutdown_tasks: set[asyncio.Task] = set()  # type: ignore[type-arg]


def _build_components(settings: AppSettings, database: CandleDatabase) -> dict[str, Any]:
    """Build the sync pipeline on top of an already opened database."""
    store = CandleStore(database)
    resolver = ResumeStateResolver(store, settings.sync.lookback_ms)
    writer = BatchedUpsertWriter(store, settings.storage)
    engine = BackfillEngine(settings.sync)
    synchronizer = ExchangeSynchronizer(settings.sync, engine, resolver, writer)
    service = SyncService(settings.sync, synchronizer)
    scheduler = SyncScheduler(
        service.run_cycle,
        interval_seconds=settings.sync.interval_seconds,
        run_on_start=settings.sync.run_on_start,
    )
    return {
        "store": store,
        "resolver": resolver,
        "writer": writer,
        "engine": engine,
        "synchronizer": synchronizer,
        "service": service,
        "scheduler": scheduler,
    }


def _setup_signal_handlers(scheduler: SyncScheduler) -> None:
    """Stop the scheduler gracefully on SIGINT/SIGTERM.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("ohlcv_sync.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        task = asyncio.create_task(scheduler.stop())
        _shutdown_tasks.add(task)
        task.add_done_callback(_shutdown_tasks.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the scheduler in the background for the app's lifetime."""
    logger = get_logger("ohlcv_sync.main")
    scheduler: SyncScheduler = app.state.components["scheduler"]
    app.state.scheduler = scheduler

    scheduler.start_background()
    logger.info("lifespan_started")

    yield

    await scheduler.stop()
    logger.info("ohlcv_sync_stopped")


async def run() -> None:
    """Run the OHLCV sync service.

    With SERVER_ENABLED=true (default) the scheduler runs inside uvicorn's
    loop and the health endpoints are served; otherwise the scheduler runs
    directly until a shutdown signal arrives.
    """
    settings = AppSettings()

    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("ohlcv_sync.main")

    async with CandleDatabase(settings.storage.db_path) as database:
        components = _build_components(settings, database)

        if settings.server.enabled:
            from ohlcv_sync.server.app import create_app

            app = create_app(lifespan=lifespan)
            app.state.components = components

            logger.info(
                "starting_with_server",
                host=settings.server.host,
                port=settings.server.port,
                exchanges=settings.sync.exchange_names,
            )

            config = uvicorn.Config(
                app,
                host=settings.server.host,
                port=settings.server.port,
                log_level="warning",
            )
            server = uvicorn.Server(config)
            await server.serve()
        else:
            scheduler: SyncScheduler = components["scheduler"]
            _setup_signal_handlers(scheduler)

            logger.info(
                "starting_without_server",
                exchanges=settings.sync.exchange_names,
                interval_seconds=settings.sync.interval_seconds,
            )
            await scheduler.start_background()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
