"""Backfill-and-reconcile engine.

Interval probing, analytic range planning, sequential paged fetching with
rate-limit retry, and merge/dedup/gap-checking of the fetched pages.
"""

from ohlcv_sync.backfill.engine import BackfillEngine
from ohlcv_sync.backfill.fetcher import PagedFetcher
from ohlcv_sync.backfill.merge import count_missing_candles, deduplicate_rows, merge_pages
from ohlcv_sync.backfill.models import (
    BackfillResult,
    FetchPlan,
    MergeResult,
    PageRequest,
    ProbeResult,
)
from ohlcv_sync.backfill.planner import plan_range
from ohlcv_sync.backfill.prober import probe_interval

__all__ = [
    "BackfillEngine",
    "BackfillResult",
    "FetchPlan",
    "MergeResult",
    "PageRequest",
    "PagedFetcher",
    "ProbeResult",
    "count_missing_candles",
    "deduplicate_rows",
    "merge_pages",
    "plan_range",
    "probe_interval",
]
