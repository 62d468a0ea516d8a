"""
Price service.

Dispatches price lookups to the market data provider named by an asset's
data_source. Bulk lookups fan out concurrently and isolate failures per item.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from foliotrack.core.config import settings
from foliotrack.core.exceptions import PriceLookupFailure
from foliotrack.services.market_data import PROVIDERS, MarketDataProvider, PriceQuote

logger = logging.getLogger(__name__)

PriceResult = Union[PriceQuote, PriceLookupFailure]


@dataclass(frozen=True)
class PriceRequest:
    symbol: str
    data_source: str = "yfinance"
    exchange: Optional[str] = None


class PriceService:
    """Latest prices by (symbol, data_source, exchange)."""

    def __init__(
        self,
        providers: Optional[Dict[str, MarketDataProvider]] = None,
        concurrency: Optional[int] = None,
        timeout_sec: Optional[float] = None,
    ):
        self._providers: Dict[str, MarketDataProvider] = dict(providers or {})
        self.concurrency = max(concurrency or settings.PRICE_FETCH_CONCURRENCY, 1)
        self.timeout_sec = settings.PRICE_FETCH_TIMEOUT_SEC if timeout_sec is None else timeout_sec

    def _provider(self, symbol: str, data_source: str) -> MarketDataProvider:
        provider = self._providers.get(data_source)
        if provider is None:
            provider_class = PROVIDERS.get(data_source)
            if provider_class is None:
                raise PriceLookupFailure(symbol, data_source, f"unsupported data source: {data_source}")
            provider = provider_class()
            self._providers[data_source] = provider
        return provider

    async def get_price(
        self, symbol: str, data_source: str = "yfinance", exchange: Optional[str] = None
    ) -> PriceQuote:
        """Fetch one price. Every failure surfaces as PriceLookupFailure."""
        provider = self._provider(symbol, data_source)
        try:
            return await asyncio.wait_for(provider.get_price(symbol, exchange), self.timeout_sec)
        except PriceLookupFailure:
            raise
        except asyncio.TimeoutError as exc:
            raise PriceLookupFailure(symbol, data_source, f"timed out after {self.timeout_sec}s") from exc
        except Exception as exc:
            logger.exception("Unexpected error fetching price for %s from %s", symbol, data_source)
            raise PriceLookupFailure(symbol, data_source, str(exc)) from exc

    async def get_bulk_prices(self, requests: Sequence[PriceRequest]) -> List[PriceResult]:
        """
        Fetch many prices concurrently.

        Returns one entry per request, in request order: a PriceQuote, or the
        PriceLookupFailure for that item. Never raises for a single item.
        """
        if not requests:
            return []

        sem = asyncio.Semaphore(self.concurrency)

        async def fetch(req: PriceRequest) -> PriceResult:
            async with sem:
                try:
                    return await self.get_price(req.symbol, req.data_source, req.exchange)
                except PriceLookupFailure as exc:
                    logger.warning("Price lookup failed: %s", exc.message)
                    return exc

        results = await asyncio.gather(*[fetch(req) for req in requests])
        failed = sum(1 for r in results if isinstance(r, PriceLookupFailure))
        logger.info("Fetched %s prices (%s failed)", len(results), failed)
        return list(results)
