from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class PriceQuote:
    """Latest price for one symbol from one source."""
    symbol: str
    price: Decimal
    currency: str
    timestamp: datetime
    data_source: str
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    volume: Optional[Decimal] = None


class MarketDataProvider(ABC):
    """Abstract base class for market data providers."""

    name: str = ""

    @abstractmethod
    async def get_price(self, symbol: str, exchange: Optional[str] = None) -> PriceQuote:
        """
        Fetch the latest price for a symbol.
        Raises PriceLookupFailure when the provider cannot answer.
        """
        raise NotImplementedError


def to_decimal(value) -> Optional[Decimal]:
    """Provider payload number to Decimal; None for missing or non-numeric values."""
    if value is None or value == "NA":
        return None
    try:
        result = Decimal(str(value))
    except ArithmeticError:
        return None
    return result if result.is_finite() else None
