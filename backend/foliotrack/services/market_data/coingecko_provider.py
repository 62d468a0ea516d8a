import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from foliotrack.core.config import settings
from foliotrack.core.exceptions import PriceLookupFailure
from foliotrack.services.market_data.base import MarketDataProvider, PriceQuote, to_decimal

logger = logging.getLogger(__name__)


class CoinGeckoProvider(MarketDataProvider):
    """Crypto prices from CoinGecko /simple/price. Symbols are CoinGecko coin ids."""

    name = "coingecko"
    vs_currency = "usd"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.COINGECKO_BASE_URL).rstrip("/")
        self.timeout_sec = settings.PRICE_FETCH_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        self.transport = transport

    async def get_price(self, symbol: str, exchange: Optional[str] = None) -> PriceQuote:
        coin_id = symbol.lower()
        params = {
            "ids": coin_id,
            "vs_currencies": self.vs_currency,
            "include_24hr_change": "true",
            "include_24hr_vol": "true",
            "include_last_updated_at": "true",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self.transport) as client:
                resp = await client.get(f"{self.base_url}/simple/price", params=params)
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("CoinGecko price fetch failed for %s: %s", coin_id, exc)
            raise PriceLookupFailure(symbol, self.name, str(exc)) from exc

        data = payload.get(coin_id)
        if not data:
            raise PriceLookupFailure(symbol, self.name, f"cryptocurrency {coin_id} not found")

        price = to_decimal(data.get(self.vs_currency))
        if price is None:
            raise PriceLookupFailure(symbol, self.name, "response carried no price")

        updated = data.get("last_updated_at")
        return PriceQuote(
            symbol=symbol.upper(),
            price=price,
            currency=self.vs_currency.upper(),
            timestamp=(
                datetime.fromtimestamp(int(updated), tz=timezone.utc)
                if updated else datetime.now(timezone.utc)
            ),
            data_source=self.name,
            change_percent=to_decimal(data.get(f"{self.vs_currency}_24h_change")),
            volume=to_decimal(data.get(f"{self.vs_currency}_24h_vol")),
        )
