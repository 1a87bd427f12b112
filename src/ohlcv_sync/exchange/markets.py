"""Market selection for candle syncing.

Narrows an exchange's loaded markets to the active spot and perpetual
markets quoted (and, for perpetuals, settled) in the configured fiat and
stablecoin currencies.
"""

from dataclasses import dataclass

from ohlcv_sync.config import SyncSettings
from ohlcv_sync.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MarketSelection:
    """A symbol chosen for syncing and the partition type it belongs to."""

    symbol: str
    market_type: str


def _quote_ok(market: dict, settings: SyncSettings) -> bool:
    if market.get("type") == "swap" and market.get("settle") not in settings.settle_currencies:
        return False
    return market.get("quote") in settings.quote_currencies


def select_markets(markets: dict, settings: SyncSettings) -> list[MarketSelection]:
    """Select markets to sync from a ccxt markets dict.

    Keeps active markets whose type is in settings.market_types, passes the
    quote/settle currency filter, and is not blacklisted. Order follows the
    exchange's market iteration order.

    Args:
        markets: ccxt markets dict keyed by unified symbol.
        settings: Sync settings carrying the filters.

    Returns:
        List of MarketSelection, e.g. [MarketSelection("BTC/USDT", "spot"), ...].
    """
    blacklist = set(settings.symbol_blacklist)
    selected: list[MarketSelection] = []

    for key, market in markets.items():
        if not market:
            continue
        symbol = market.get("symbol") or key
        market_type = market.get("type")

        if market_type is None:
            logger.info("market_type_missing", symbol=symbol, note="skipping")
            continue
        if market_type not in settings.market_types:
            continue
        if market.get("active") is False:
            continue
        if not _quote_ok(market, settings):
            continue
        if symbol in blacklist:
            logger.debug("market_blacklisted", symbol=symbol)
            continue

        selected.append(MarketSelection(symbol=symbol, market_type=market_type))

    return selected
