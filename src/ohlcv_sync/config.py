"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

MarketType = Literal["spot", "swap"]

# 3 x 30 days
_DEFAULT_LOOKBACK_MS = 3 * 30 * 24 * 60 * 60 * 1000

CommaList = Annotated[list[str], NoDecode]


def _split_csv(value: object) -> object:
    """Accept "a, b,c" from the environment as ["a", "b", "c"]."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class SyncSettings(BaseSettings):
    """What to sync and how hard to push the upstream exchanges.

    All fields configurable via SYNC_ environment variable prefix.
    List fields accept comma separated values.
    """

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    exchange_names: CommaList = ["binance", "hyperliquid", "kraken"]
    market_types: Annotated[list[MarketType], NoDecode] = ["spot", "swap"]
    symbol_blacklist: CommaList = []
    quote_currencies: CommaList = ["USD", "USDT", "USDC", "EUR", "EURI"]
    settle_currencies: CommaList = ["USD", "USDC", "USDT", "EUR"]

    timeframe: str = "1m"
    page_size_cap: int = Field(default=1_000_000, gt=0)  # asked on every page request
    lookback_ms: int = Field(default=_DEFAULT_LOOKBACK_MS, gt=0)
    exclude_incomplete_candles: bool = True

    rate_limit_max_retries: int = Field(default=3, ge=1)
    rate_limit_backoff_seconds: float = Field(default=60.0, ge=0)
    rate_limit_backoff_multiplier: float = Field(default=1.0, ge=1.0)
    request_delay_seconds: float = Field(default=0.1, ge=0)

    interval_seconds: int = Field(default=86_400, gt=0)  # daily
    run_on_start: bool = True

    @field_validator(
        "exchange_names",
        "market_types",
        "symbol_blacklist",
        "quote_currencies",
        "settle_currencies",
        mode="before",
    )
    @classmethod
    def _parse_lists(cls, value: object) -> object:
        return _split_csv(value)


class StorageSettings(BaseSettings):
    """SQLite storage and batched upsert configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    db_path: str = "data/ohlcv.db"
    batch_size: int = Field(default=1000, gt=0)
    max_retries: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=1.0, ge=0)


class ServerSettings(BaseSettings):
    """Health-check server configuration."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    sync: SyncSettings = Field(default_factory=SyncSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
