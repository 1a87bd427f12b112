"""Sequential page fetching under rate-limit backpressure.

Pages are fetched strictly in plan order, one at a time. A rate-limit
signal waits a back-off interval and retries the same page up to a fixed
ceiling; every other error aborts the run immediately. A short courtesy
delay follows each successful page even without any throttling signal.
"""

import asyncio
from collections.abc import Awaitable, Callable

from ohlcv_sync.backfill.models import FetchPlan, PageRequest
from ohlcv_sync.config import SyncSettings
from ohlcv_sync.exceptions import RateLimitExhausted, UpstreamFetchError
from ohlcv_sync.exchange.client import ExchangeClient, is_rate_limit_error
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], Awaitable[None]]


class PagedFetcher:
    """Executes a FetchPlan's page requests against one exchange client.

    Args:
        settings: Retry ceiling, back-off and courtesy delay values.
        progress_callback: Optional coroutine called with (page_number, total_pages)
            after every fetched page.
    """

    def __init__(
        self,
        settings: SyncSettings,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self._max_retries = settings.rate_limit_max_retries
        self._backoff = settings.rate_limit_backoff_seconds
        self._backoff_multiplier = settings.rate_limit_backoff_multiplier
        self._request_delay = settings.request_delay_seconds
        self._progress_callback = progress_callback

    async def fetch_all(self, client: ExchangeClient, plan: FetchPlan) -> list[list]:
        """Fetch every page of the plan in order and concatenate the rows.

        Raises:
            RateLimitExhausted: a page stayed rate limited for every attempt.
            UpstreamFetchError: any other fetch error (cause preserved).
        """
        rows: list[list] = []
        total = plan.num_pages

        for request in plan.requests:
            logger.debug(
                "fetching_page",
                symbol=plan.symbol,
                page=f"{request.index + 1}/{total}",
                since=request.since,
            )
            page = await self._fetch_page(client, request)
            rows.extend(page)

            if self._progress_callback is not None:
                await self._progress_callback(request.index + 1, total)

            await asyncio.sleep(self._request_delay)

        return rows

    async def _fetch_page(self, client: ExchangeClient, request: PageRequest) -> list[list]:
        """Fetch one page, retrying only on rate-limit errors."""
        for attempt in range(self._max_retries):
            try:
                return await client.fetch_ohlcv(
                    request.symbol, request.timeframe, request.since, request.limit
                )
            except Exception as e:
                if not is_rate_limit_error(e):
                    logger.error(
                        "page_fetch_failed",
                        symbol=request.symbol,
                        page=request.index + 1,
                        error=str(e),
                    )
                    raise UpstreamFetchError(
                        f"Failed to fetch {request.symbol} page {request.index + 1}", e
                    ) from e

                if attempt == self._max_retries - 1:
                    break

                delay = self._backoff * (self._backoff_multiplier**attempt)
                logger.warning(
                    "rate_limit_exceeded",
                    symbol=request.symbol,
                    page=request.index + 1,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    delay=delay,
                )
                await asyncio.sleep(delay)

        logger.error(
            "rate_limit_retries_exhausted",
            symbol=request.symbol,
            page=request.index + 1,
            attempts=self._max_retries,
        )
        raise RateLimitExhausted(
            f"Failed to fetch {request.symbol} after {self._max_retries} "
            "attempts due to rate limiting",
            attempts=self._max_retries,
        )
