"""
Reference data: assets and platforms.
"""
import logging
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from foliotrack.core.config import settings
from foliotrack.core.database import AsyncSessionLocal
from foliotrack.core.exceptions import AssetNotFound, ValidationError
from foliotrack.models.asset import Asset
from foliotrack.models.platform import Platform
from foliotrack.services.market_data import PROVIDERS

logger = logging.getLogger(__name__)

ASSET_TYPES = ("stock", "etf", "crypto", "fund", "other")
SEARCH_LIMIT = 20


class AssetService:
    def __init__(self, session_factory=None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def create_asset(
        self,
        symbol: str,
        name: Optional[str] = None,
        asset_type: str = "stock",
        data_source: str = "yfinance",
        exchange: Optional[str] = None,
        currency: Optional[str] = None,
    ) -> Asset:
        symbol = (symbol or "").strip().upper()
        if not symbol:
            raise ValidationError("symbol")
        if asset_type not in ASSET_TYPES:
            raise ValidationError("asset_type", f"asset_type must be one of {', '.join(ASSET_TYPES)}")
        if data_source not in PROVIDERS:
            raise ValidationError("data_source", f"data_source must be one of {', '.join(PROVIDERS)}")
        currency = (currency or settings.DEFAULT_CURRENCY).strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("currency", "currency must be a 3-letter currency code")

        asset = Asset(
            symbol=symbol,
            name=name,
            asset_type=asset_type,
            data_source=data_source,
            exchange=exchange.strip().upper() if exchange else None,
            currency=currency,
        )
        async with self.session_factory() as session:
            session.add(asset)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValidationError(
                    "symbol", f"Asset {symbol} already exists for data source {data_source}"
                ) from exc
        logger.info("Created asset %s (%s)", symbol, data_source)
        return asset

    async def get_asset(self, asset_id: int) -> Asset:
        async with self.session_factory() as session:
            asset = await session.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFound(asset_id)
        return asset

    async def get_asset_by_symbol(self, symbol: str, data_source: Optional[str] = None) -> Asset:
        """Case-insensitive symbol lookup; the first match when several sources list it."""
        query = select(Asset).where(func.upper(Asset.symbol) == symbol.strip().upper())
        if data_source:
            query = query.where(Asset.data_source == data_source)
        query = query.order_by(Asset.id).limit(1)

        async with self.session_factory() as session:
            result = await session.execute(query)
            asset = result.scalar_one_or_none()
        if asset is None:
            raise AssetNotFound(symbol)
        return asset

    async def search_assets(self, query: str, limit: int = SEARCH_LIMIT) -> List[Asset]:
        """Assets whose symbol or name contains ``query``, symbol matches first."""
        term = (query or "").strip()
        if not term:
            return []
        pattern = f"%{term.lower()}%"
        stmt = (
            select(Asset)
            .where(or_(func.lower(Asset.symbol).like(pattern), func.lower(Asset.name).like(pattern)))
            .order_by(
                (func.upper(Asset.symbol) != term.upper()),
                Asset.symbol,
            )
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars())

    async def create_platform(self, name: str, description: Optional[str] = None) -> Platform:
        name = (name or "").strip()
        if not name:
            raise ValidationError("name")
        platform = Platform(name=name, description=description)
        async with self.session_factory() as session:
            session.add(platform)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ValidationError("name", f"Platform {name} already exists") from exc
        logger.info("Created platform %s", name)
        return platform

    async def list_platforms(self) -> List[Platform]:
        async with self.session_factory() as session:
            result = await session.execute(select(Platform).order_by(Platform.name))
            return list(result.scalars())
