"""Custom exceptions for the OHLCV sync service.

Fetch-side exceptions are fatal for one symbol's run only. Storage-side
exceptions are recovered where they occur (see writer and resume resolver).
"""


class SyncError(Exception):
    """Base exception for all sync errors."""


class NoDataAvailable(SyncError):
    """Raised when the probe fetch returns no candles at all."""


class InsufficientData(SyncError):
    """Raised when the probe fetch returns a single candle.

    The interval length cannot be derived from one timestamp.
    """


class RateLimitExhausted(SyncError):
    """Raised when a page is still rate limited after the retry ceiling."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class UpstreamFetchError(SyncError):
    """Raised for any non rate-limit failure of the upstream fetch."""

    def __init__(self, message: str, cause: BaseException) -> None:
        super().__init__(f"{message}: {cause}")
        self.cause = cause


class BatchPersistFailure(SyncError):
    """A single upsert batch that exhausted its retry budget.

    Recorded in the write report and logged; never aborts the other batches.
    """

    def __init__(self, start_index: int, size: int, cause: BaseException) -> None:
        super().__init__(
            f"batch starting at index {start_index} ({size} rows) not persisted: {cause}"
        )
        self.start_index = start_index
        self.size = size
        self.cause = cause


class PartitionLookupFailure(SyncError):
    """Raised when a partition table is missing or cannot be read."""


class InvalidPartitionName(SyncError, ValueError):
    """Raised when a source or market type is not a safe table identifier."""


class UnsupportedExchange(SyncError):
    """Raised when ccxt does not know the exchange or it cannot serve OHLCV."""
