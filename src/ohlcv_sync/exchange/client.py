"""Abstract exchange client interface.

Defines the upstream contract the backfill engine depends on: a paginated
OHLCV fetch plus market metadata. ccxt-specific details live in the
concrete implementation.
"""

import re
from abc import ABC, abstractmethod

import ccxt.async_support as ccxt_async

# 429 only as a standalone status code, never inside a timestamp or id
_RATE_LIMIT_RE = re.compile(r"\b429\b|rate limit|too many requests")


def is_rate_limit_error(error: BaseException) -> bool:
    """Whether an upstream error signals throttling rather than a real failure.

    ccxt raises RateLimitExceeded (and DDoSProtection for some exchanges);
    other clients only carry the hint in the message, so the text is checked too.
    """
    if isinstance(error, (ccxt_async.RateLimitExceeded, ccxt_async.DDoSProtection)):
        return True
    text = str(error).lower()
    return _RATE_LIMIT_RE.search(text) is not None


class ExchangeClient(ABC):
    """Abstract base class for exchange API clients."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Exchange identifier used as the partition source name."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    def supports_ohlcv(self) -> bool:
        """Whether the exchange implements OHLCV history at all."""
        ...

    @abstractmethod
    def supports_timeframe(self, timeframe: str) -> bool:
        """Whether candles of the given timeframe label are served."""
        ...

    @abstractmethod
    def get_markets(self) -> dict:
        """Return the cached markets dict loaded at connect() time."""
        ...

    @abstractmethod
    async def fetch_ohlcv(
        self,
        symbol: str,
        timeframe: str = "1m",
        since: int | None = None,
        limit: int | None = None,
    ) -> list[list]:
        """Fetch one page of OHLCV candles.

        Returns list of [timestamp_ms, open, high, low, close, volume],
        oldest first. The exchange may return fewer than limit rows.

        Pagination is NOT handled here -- callers are responsible for
        iterating with appropriate since parameters.
        """
        ...
