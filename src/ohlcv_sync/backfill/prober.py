"""Interval probing: one oversized fetch to learn page size and candle spacing."""

from ohlcv_sync.backfill.models import ProbeResult
from ohlcv_sync.exceptions import InsufficientData, NoDataAvailable, UpstreamFetchError
from ohlcv_sync.exchange.client import ExchangeClient
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


async def probe_interval(
    client: ExchangeClient,
    symbol: str,
    timeframe: str,
    since: int,
    page_size_cap: int,
) -> ProbeResult:
    """Issue exactly one fetch asking for page_size_cap candles from since.

    The number of rows returned is the exchange's real page size and the
    spacing of the first two rows is the native interval. Not retried:
    an empty or single-candle series is unsupported, not transient.

    Raises:
        NoDataAvailable: zero candles returned.
        InsufficientData: exactly one candle returned.
        UpstreamFetchError: the fetch itself failed.
    """
    logger.debug("probing_interval", symbol=symbol, timeframe=timeframe, since=since)
    try:
        rows = await client.fetch_ohlcv(symbol, timeframe, since, page_size_cap)
    except Exception as e:
        raise UpstreamFetchError(f"Probe fetch failed for {symbol}", e) from e

    if not rows:
        raise NoDataAvailable(
            f"No data available for {symbol} {timeframe} since {since}"
        )
    if len(rows) == 1:
        raise InsufficientData(
            f"Not enough data for {symbol} {timeframe} to derive the interval"
        )

    first, second = int(rows[0][0]), int(rows[1][0])
    if second <= first:
        raise InsufficientData(
            f"Cannot derive interval for {symbol}: first timestamps {first}, {second}"
        )

    result = ProbeResult(
        page_size=len(rows),
        interval_ms=second - first,
        first_timestamps=(first, second),
    )
    logger.debug(
        "interval_probed",
        symbol=symbol,
        page_size=result.page_size,
        interval_ms=result.interval_ms,
    )
    return result
