from typing import Dict, Type

from foliotrack.core.exceptions import PriceLookupFailure
from foliotrack.services.market_data.base import MarketDataProvider, PriceQuote
from foliotrack.services.market_data.coingecko_provider import CoinGeckoProvider
from foliotrack.services.market_data.eodhd_provider import EODHDProvider
from foliotrack.services.market_data.yfinance_provider import YFinanceProvider

PROVIDERS: Dict[str, Type[MarketDataProvider]] = {
    "eodhd": EODHDProvider,
    "coingecko": CoinGeckoProvider,
    "yfinance": YFinanceProvider,
}


def get_market_data_provider(name: str = "yfinance") -> MarketDataProvider:
    """Factory to get provider instance."""
    provider_class = PROVIDERS.get(name)
    if not provider_class:
        raise PriceLookupFailure("*", name, f"unsupported data source: {name}")
    return provider_class()


__all__ = [
    "MarketDataProvider",
    "PriceQuote",
    "PROVIDERS",
    "get_market_data_provider",
]
