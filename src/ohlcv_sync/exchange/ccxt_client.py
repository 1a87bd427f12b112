"""Generic exchange client implementation via ccxt async.

Instantiates any ccxt.async_support exchange by id, loads markets on
connect, and guarantees the aiohttp session is closed.
"""

import ccxt.async_support as ccxt_async

from ohlcv_sync.exceptions import UnsupportedExchange
from ohlcv_sync.exchange.client import ExchangeClient
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


def supported_exchange_names() -> list[str]:
    """All exchange ids known to the installed ccxt version."""
    return list(ccxt_async.exchanges)


class CcxtExchangeClient(ExchangeClient):
    """Concrete exchange client backed by a public ccxt async instance."""

    def __init__(self, exchange_name: str, config: dict | None = None) -> None:
        if exchange_name not in ccxt_async.exchanges:
            raise UnsupportedExchange(f"Exchange '{exchange_name}' is not supported by ccxt")

        exchange_class = getattr(ccxt_async, exchange_name)
        self._exchange = exchange_class({"enableRateLimit": True, **(config or {})})
        self._name = exchange_name
        self._markets: dict = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def connect(self) -> None:
        """Initialize connection by loading markets."""
        logger.info("connecting_to_exchange", exchange=self._name)
        self._markets = await self._exchange.load_markets() or {}
        logger.info(
            "exchange_connected",
            exchange=self._name,
            market_count=len(self._markets),
        )

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        await self._exchange.close()
        logger.debug("exchange_connection_closed", exchange=self._name)

    def supports_ohlcv(self) -> bool:
        return bool(self._exchange.has.get("fetchOHLCV"))

    def supports_timeframe(self, timeframe: str) -> bool:
        return timeframe in (self._exchange.timeframes or {})

    def get_markets(self) -> dict:
        return self._markets

    async def fetch_ohlcv(
        self,
        symbol: str,
        timeframe: str = "1m",
        since: int | None = None,
        limit: int | None = None,
    ) -> list[list]:
        """Fetch one OHLCV page via ccxt."""
        return await self._exchange.fetch_ohlcv(symbol, timeframe, since, limit)
