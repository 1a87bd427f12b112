"""Analytic range planning from a probed page size and interval.

Probing once and computing every page up front avoids a wasted round trip
per page and makes the total request count known before fetching starts.
"""

import time

from ohlcv_sync.backfill.models import FetchPlan, PageRequest


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def plan_range(
    symbol: str,
    timeframe: str,
    interval_ms: int,
    page_size: int,
    first_candle_time: int,
    start_time: int,
    end_time: int | None = None,
    request_limit: int | None = None,
    now_ms: int | None = None,
) -> FetchPlan:
    """Partition [start_time, end_time) into page requests.

    total_needed = ceil((end - first_candle_time) / interval_ms) and
    num_pages = ceil(total_needed / page_size). Request i starts at
    start_time + i * page_size * interval_ms and asks for request_limit
    candles (defaults to page_size; an oversized limit is fine, the
    exchange caps it). end_time=None means wall-clock now, read here.

    A non-positive total_needed yields a plan with no requests: the
    series is already up to date.
    """
    if interval_ms <= 0 or page_size <= 0:
        raise ValueError(
            f"interval_ms and page_size must be positive, got {interval_ms}, {page_size}"
        )

    if end_time is None:
        target_end = now_ms if now_ms is not None else int(time.time() * 1000)
    else:
        target_end = end_time

    total_needed = _ceil_div(target_end - first_candle_time, interval_ms)
    limit = request_limit if request_limit is not None else page_size

    plan = FetchPlan(
        symbol=symbol,
        timeframe=timeframe,
        interval_ms=interval_ms,
        start_time=start_time,
        end_time=end_time,
        first_candle_time=first_candle_time,
        page_size=page_size,
        total_needed=max(total_needed, 0),
    )
    if total_needed <= 0:
        return plan

    page_span = page_size * interval_ms
    plan.requests = [
        PageRequest(
            index=i,
            symbol=symbol,
            timeframe=timeframe,
            since=start_time + i * page_span,
            limit=limit,
        )
        for i in range(_ceil_div(total_needed, page_size))
    ]
    return plan
