"""HTTP surface -- liveness probe and sync status."""

from ohlcv_sync.server.app import create_app

__all__ = ["create_app"]
