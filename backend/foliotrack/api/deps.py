"""
Shared router dependencies: service instances, ownership checks and error mapping.
"""
from fastapi import HTTPException

from foliotrack.core.exceptions import LedgerError, PortfolioNotFound
from foliotrack.core.security import Identity
from foliotrack.models.portfolio import Portfolio
from foliotrack.services.asset_service import AssetService
from foliotrack.services.ledger_engine import LedgerEngine
from foliotrack.services.portfolio_service import PortfolioService
from foliotrack.services.price_service import PriceService

price_service = PriceService()
ledger_engine = LedgerEngine()
portfolio_service = PortfolioService(price_service=price_service)
asset_service = AssetService()


def get_ledger_engine() -> LedgerEngine:
    return ledger_engine


def get_portfolio_service() -> PortfolioService:
    return portfolio_service


def get_asset_service() -> AssetService:
    return asset_service


def get_price_service() -> PriceService:
    return price_service


def http_error(exc: LedgerError) -> HTTPException:
    """Map a domain error to the HTTP status it carries."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)


async def get_owned_portfolio(
    portfolio_id: int,
    identity: Identity,
    service: PortfolioService,
) -> Portfolio:
    """The portfolio, if it exists and belongs to the caller; 404 otherwise."""
    try:
        portfolio = await service.get_portfolio(portfolio_id)
    except LedgerError as e:
        raise http_error(e) from e
    if portfolio.user_id != identity.user_id:
        raise http_error(PortfolioNotFound(portfolio_id))
    return portfolio
