import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import yfinance as yf

from foliotrack.core.exceptions import PriceLookupFailure
from foliotrack.services.market_data.base import MarketDataProvider, PriceQuote, to_decimal

logger = logging.getLogger(__name__)


class YFinanceProvider(MarketDataProvider):
    """yfinance provider. No API key; used as the default source for new assets."""

    name = "yfinance"

    async def get_price(self, symbol: str, exchange: Optional[str] = None) -> PriceQuote:
        # yfinance is blocking, keep it off the event loop
        return await asyncio.to_thread(self._fetch_latest, symbol)

    def _fetch_latest(self, symbol: str) -> PriceQuote:
        try:
            ticker = yf.Ticker(symbol)
            # yf has no reliable realtime API, so take the last of the recent daily bars
            hist = ticker.history(period="5d")
        except Exception as exc:
            logger.warning("yfinance history failed for %s: %s", symbol, exc)
            raise PriceLookupFailure(symbol, self.name, str(exc)) from exc

        if hist.empty:
            raise PriceLookupFailure(symbol, self.name, "no recent bars")

        last_row = hist.iloc[-1]
        price = to_decimal(float(last_row["Close"]))
        if price is None:
            raise PriceLookupFailure(symbol, self.name, "last bar has no close")

        currency = "USD"
        try:
            currency = (ticker.fast_info.get("currency") or currency).upper()
        except Exception as exc:
            logger.debug("yfinance currency lookup failed for %s: %s", symbol, exc)

        change = change_percent = None
        if len(hist) > 1:
            prev_close = to_decimal(float(hist.iloc[-2]["Close"]))
            if prev_close:
                change = price - prev_close
                change_percent = change / prev_close * 100

        ts = last_row.name.to_pydatetime()
        return PriceQuote(
            symbol=symbol,
            price=price,
            currency=currency,
            timestamp=ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc),
            data_source=self.name,
            change=change,
            change_percent=change_percent,
            volume=to_decimal(last_row.get("Volume")),
        )
