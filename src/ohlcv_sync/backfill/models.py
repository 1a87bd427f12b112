"""Value objects describing one backfill run."""

from dataclasses import dataclass, field

from ohlcv_sync.data.models import Candle


@dataclass(frozen=True)
class ProbeResult:
    """What a single probe fetch revealed about a remote series."""

    page_size: int
    interval_ms: int
    first_timestamps: tuple[int, int]

    @property
    def first_candle_time(self) -> int:
        return self.first_timestamps[0]


@dataclass(frozen=True)
class PageRequest:
    """One planned page fetch."""

    index: int
    symbol: str
    timeframe: str
    since: int
    limit: int


@dataclass
class FetchPlan:
    """Analytic plan for covering [start_time, end_time or now)."""

    symbol: str
    timeframe: str
    interval_ms: int
    start_time: int
    end_time: int | None
    first_candle_time: int
    page_size: int
    total_needed: int
    requests: list[PageRequest] = field(default_factory=list)

    @property
    def num_pages(self) -> int:
        return len(self.requests)

    @property
    def is_up_to_date(self) -> bool:
        return not self.requests


@dataclass
class MergeResult:
    """Merged, deduplicated, sorted and trimmed raw rows plus gap diagnostics."""

    rows: list[list]
    missing_candles: int = 0


@dataclass
class BackfillResult:
    """Clean candle series for one symbol."""

    plan: FetchPlan
    candles: list[Candle]
    missing_candles: int = 0
