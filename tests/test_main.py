"""Tests for component wiring, signal handling and the server lifespan."""

import asyncio
import signal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

import ohlcv_sync.main as main_module
from ohlcv_sync.config import AppSettings
from ohlcv_sync.data.database import CandleDatabase
from ohlcv_sync.main import _build_components, _setup_signal_handlers, lifespan
from ohlcv_sync.scheduler import SyncScheduler
from ohlcv_sync.server.app import create_app


def test_build_components_wires_pipeline(mock_settings: AppSettings) -> None:
    components = _build_components(mock_settings, CandleDatabase(":memory:"))

    assert set(components) == {
        "store",
        "resolver",
        "writer",
        "engine",
        "synchronizer",
        "service",
        "scheduler",
    }
    assert isinstance(components["scheduler"], SyncScheduler)
    assert not components["scheduler"].is_running


def test_lifespan_starts_and_stops_scheduler() -> None:
    scheduler = MagicMock(spec=SyncScheduler)
    scheduler.stop = AsyncMock()
    scheduler.status.return_value = {"running": True, "syncing": False}
    app = create_app(lifespan=lifespan)
    app.state.components = {"scheduler": scheduler}

    with TestClient(app) as client:
        scheduler.start_background.assert_called_once()
        assert client.get("/status").json()["running"] is True

    scheduler.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_signal_handler_keeps_shutdown_task() -> None:
    scheduler = MagicMock(spec=SyncScheduler)
    scheduler.stop = AsyncMock()
    loop = asyncio.get_running_loop()

    with patch.object(loop, "add_signal_handler") as add_handler:
        _setup_signal_handlers(scheduler)

    assert {c.args[0] for c in add_handler.call_args_list} == {
        signal.SIGINT,
        signal.SIGTERM,
    }
    handler = add_handler.call_args_list[0].args[1]
    handler()

    [task] = list(main_module._shutdown_tasks)
    await task
    await asyncio.sleep(0)

    scheduler.stop.assert_awaited_once()
    assert not main_module._shutdown_tasks
