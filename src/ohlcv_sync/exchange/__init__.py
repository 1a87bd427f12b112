"""Exchange client layer -- OHLCV market data via ccxt."""

from ohlcv_sync.exchange.ccxt_client import CcxtExchangeClient, supported_exchange_names
from ohlcv_sync.exchange.client import ExchangeClient, is_rate_limit_error
from ohlcv_sync.exchange.markets import MarketSelection, select_markets

__all__ = [
    "CcxtExchangeClient",
    "ExchangeClient",
    "MarketSelection",
    "is_rate_limit_error",
    "select_markets",
    "supported_exchange_names",
]
