import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from foliotrack.core.config import settings
from foliotrack.core.exceptions import PriceLookupFailure
from foliotrack.services.market_data.base import MarketDataProvider, PriceQuote, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_EXCHANGE = "US"


class EODHDProvider(MarketDataProvider):
    """Stocks, ETFs and funds from the EODHD real-time endpoint."""

    name = "eodhd"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.EODHD_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.EODHD_BASE_URL).rstrip("/")
        self.timeout_sec = settings.PRICE_FETCH_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        self.transport = transport

    async def get_price(self, symbol: str, exchange: Optional[str] = None) -> PriceQuote:
        if not self.api_key:
            raise PriceLookupFailure(symbol, self.name, "EODHD_API_KEY is not configured")

        url = f"{self.base_url}/real-time/{symbol}.{exchange or DEFAULT_EXCHANGE}"
        params = {"api_token": self.api_key, "fmt": "json"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_sec, transport=self.transport) as client:
                resp = await client.get(url, params=params)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("EODHD price fetch failed for %s: %s", symbol, exc)
            raise PriceLookupFailure(symbol, self.name, str(exc)) from exc

        price = to_decimal(data.get("close")) or to_decimal(data.get("price"))
        if price is None:
            raise PriceLookupFailure(symbol, self.name, "response carried no price")

        ts = data.get("timestamp")
        timestamp = (
            datetime.fromtimestamp(int(ts), tz=timezone.utc)
            if isinstance(ts, (int, float)) else datetime.now(timezone.utc)
        )
        return PriceQuote(
            symbol=symbol,
            price=price,
            # EODHD real-time quotes carry no currency field
            currency="USD",
            timestamp=timestamp,
            data_source=self.name,
            change=to_decimal(data.get("change")),
            change_percent=to_decimal(data.get("change_p")),
            volume=to_decimal(data.get("volume")),
        )
