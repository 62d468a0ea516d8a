"""
Assets API Router.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from foliotrack.api.deps import get_asset_service, get_price_service, http_error
from foliotrack.core.exceptions import LedgerError, PriceLookupFailure
from foliotrack.core.security import Identity, get_current_identity
from foliotrack.services.asset_service import AssetService
from foliotrack.services.price_service import PriceRequest, PriceService

router = APIRouter()

# ---------- Pydantic Schemas ----------

class AssetCreate(BaseModel):
    symbol: str
    name: Optional[str] = None
    asset_type: str = "stock"
    data_source: str = "yfinance"
    exchange: Optional[str] = None
    currency: Optional[str] = None


class AssetSchema(BaseModel):
    id: int
    symbol: str
    name: Optional[str]
    asset_type: str
    data_source: str
    exchange: Optional[str]
    currency: str

    class Config:
        from_attributes = True


class PriceSchema(BaseModel):
    symbol: str
    price: Decimal
    currency: str
    timestamp: datetime
    data_source: str
    change: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None
    volume: Optional[Decimal] = None

    class Config:
        from_attributes = True


class BulkPriceItem(BaseModel):
    symbol: str
    data_source: str = "yfinance"
    exchange: Optional[str] = None


class BulkPriceRequest(BaseModel):
    assets: List[BulkPriceItem]


class BulkPriceResult(BaseModel):
    symbol: str
    data_source: Optional[str]
    price: Optional[PriceSchema] = None
    error: Optional[str] = None


# ---------- Endpoints ----------

@router.get("", response_model=List[AssetSchema])
async def search_assets(
    q: str = Query(default="", description="Symbol or name fragment"),
    limit: int = Query(default=20, le=100),
    identity: Identity = Depends(get_current_identity),
    service: AssetService = Depends(get_asset_service),
):
    """Search known assets by symbol or name."""
    return await service.search_assets(q, limit=limit)


@router.post("", response_model=AssetSchema, status_code=201)
async def create_asset(
    body: AssetCreate,
    identity: Identity = Depends(get_current_identity),
    service: AssetService = Depends(get_asset_service),
):
    try:
        return await service.create_asset(**body.model_dump())
    except LedgerError as e:
        raise http_error(e) from e


@router.post("/prices/bulk", response_model=List[BulkPriceResult])
async def get_bulk_prices(
    body: BulkPriceRequest,
    identity: Identity = Depends(get_current_identity),
    prices: PriceService = Depends(get_price_service),
):
    """Latest prices for many assets; each item carries either a price or an error."""
    results = await prices.get_bulk_prices(
        [PriceRequest(symbol=a.symbol, data_source=a.data_source, exchange=a.exchange) for a in body.assets]
    )
    out = []
    for item, result in zip(body.assets, results):
        if isinstance(result, PriceLookupFailure):
            out.append(BulkPriceResult(symbol=item.symbol, data_source=item.data_source, error=result.message))
        else:
            out.append(BulkPriceResult(
                symbol=item.symbol,
                data_source=item.data_source,
                price=PriceSchema.model_validate(result),
            ))
    return out


@router.get("/{symbol}", response_model=AssetSchema)
async def get_asset(
    symbol: str,
    data_source: Optional[str] = None,
    identity: Identity = Depends(get_current_identity),
    service: AssetService = Depends(get_asset_service),
):
    try:
        return await service.get_asset_by_symbol(symbol, data_source)
    except LedgerError as e:
        raise http_error(e) from e


@router.get("/{symbol}/price", response_model=PriceSchema)
async def get_asset_price(
    symbol: str,
    data_source: Optional[str] = None,
    identity: Identity = Depends(get_current_identity),
    service: AssetService = Depends(get_asset_service),
    prices: PriceService = Depends(get_price_service),
):
    """Latest price for a known asset, from the asset's own data source."""
    try:
        asset = await service.get_asset_by_symbol(symbol, data_source)
        return await prices.get_price(asset.symbol, asset.data_source, asset.exchange)
    except LedgerError as e:
        raise http_error(e) from e
