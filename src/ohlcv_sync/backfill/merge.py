"""Merging fetched pages into one clean, gap-checked series.

Gaps are reported, not refetched: an exchange gap is usually a genuine
outage, so a non-zero missing count is still a successful result.
"""

from collections.abc import Iterable, Sequence

from ohlcv_sync.backfill.models import MergeResult
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


def deduplicate_rows(rows: Iterable[Sequence]) -> list:
    """Drop rows whose open timestamp was already seen.

    First seen wins. Pages arrive in increasing time order, so for
    overlapping windows the earlier page's values are kept.
    """
    seen: set[int] = set()
    unique = []
    for row in rows:
        timestamp = row[0]
        if timestamp in seen:
            continue
        seen.add(timestamp)
        unique.append(row)
    return unique


def count_missing_candles(rows: Sequence[Sequence], interval_ms: int) -> int:
    """Count candles missing between adjacent rows of a sorted series.

    Each adjacent delta that is not exactly one interval contributes
    floor(delta / interval_ms) - 1. Misaligned deltas shorter than one
    interval contribute nothing rather than a negative count.
    """
    missing = 0
    for previous, current in zip(rows, rows[1:]):
        delta = current[0] - previous[0]
        if delta != interval_ms:
            missing += max(delta // interval_ms - 1, 0)
    return missing


def merge_pages(
    rows: Iterable[Sequence],
    interval_ms: int,
    total_needed: int,
    symbol: str | None = None,
) -> MergeResult:
    """Deduplicate, sort, trim to total_needed and gap-check raw rows."""
    unique = deduplicate_rows(rows)
    # Sorting guards against a source returning an unsorted page
    unique.sort(key=lambda row: row[0])
    trimmed = unique[:total_needed]

    missing = count_missing_candles(trimmed, interval_ms)
    if missing > 0:
        logger.warning(
            "missing_candles_detected",
            symbol=symbol,
            missing=missing,
            note="likely exchange downtime or gaps in source data",
        )

    return MergeResult(rows=trimmed, missing_candles=missing)
