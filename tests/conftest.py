"""Shared test fixtures for the OHLCV sync service."""

import pytest
import pytest_asyncio

from ohlcv_sync.config import AppSettings, StorageSettings, SyncSettings
from ohlcv_sync.data.database import CandleDatabase
from ohlcv_sync.data.store import CandleStore


@pytest.fixture
def sync_settings() -> SyncSettings:
    """SyncSettings with production retry values (tests patch asyncio.sleep)."""
    return SyncSettings(
        exchange_names=["binance"],
        market_types=["spot", "swap"],
        timeframe="1m",
        page_size_cap=1_000_000,
        rate_limit_max_retries=3,
        rate_limit_backoff_seconds=60.0,
        request_delay_seconds=0.1,
        exclude_incomplete_candles=False,
    )


@pytest.fixture
def storage_settings(tmp_path) -> StorageSettings:
    """StorageSettings pointing at a temporary database."""
    return StorageSettings(
        db_path=str(tmp_path / "ohlcv.db"),
        batch_size=3,
        max_retries=3,
        retry_delay_seconds=1.0,
    )


@pytest.fixture
def mock_settings(sync_settings: SyncSettings, storage_settings: StorageSettings) -> AppSettings:
    """Return AppSettings with test defaults."""
    return AppSettings(
        log_level="DEBUG",
        sync=sync_settings,
        storage=storage_settings,
    )


@pytest_asyncio.fixture
async def database(storage_settings: StorageSettings):
    """A connected CandleDatabase on a temporary file, closed after the test."""
    async with CandleDatabase(storage_settings.db_path) as db:
        yield db


@pytest.fixture
def store(database: CandleDatabase) -> CandleStore:
    """CandleStore over the temporary database."""
    return CandleStore(database)
