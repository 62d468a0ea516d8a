"""
Portfolios API Router.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from foliotrack.api.deps import get_ledger_engine, get_owned_portfolio, get_portfolio_service, http_error
from foliotrack.core.exceptions import LedgerError
from foliotrack.core.security import Identity, get_current_identity
from foliotrack.services.ledger_engine import LedgerEngine
from foliotrack.services.portfolio_service import (
    PerformancePoint,
    PortfolioListItem,
    PortfolioService,
    PortfolioSummary,
)

router = APIRouter()

# ---------- Pydantic Schemas ----------

class PortfolioCreate(BaseModel):
    name: str
    description: Optional[str] = None
    base_currency: Optional[str] = None


class PortfolioUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    base_currency: Optional[str] = None


class PortfolioSchema(BaseModel):
    id: int
    user_id: str
    name: str
    description: Optional[str]
    base_currency: str
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class SnapshotSchema(BaseModel):
    portfolio_id: int
    snapshot_date: date
    total_value: Decimal
    total_invested: Decimal
    total_gain_loss: Decimal
    percent_gain_loss: Decimal
    holdings_count: int

    class Config:
        from_attributes = True


class DiscrepancySchema(BaseModel):
    table: str
    key: List[str]
    column: str
    stored: Optional[Decimal]
    expected: Optional[Decimal]


class VerificationSchema(BaseModel):
    portfolio_id: int
    consistent: bool
    discrepancies: List[DiscrepancySchema]


# ---------- Endpoints ----------

@router.get("", response_model=List[PortfolioListItem])
async def list_portfolios(
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Get the caller's portfolios with holdings count and amount invested."""
    return await service.list_user_portfolios(identity.user_id)


@router.post("", response_model=PortfolioSchema, status_code=201)
async def create_portfolio(
    body: PortfolioCreate,
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
):
    try:
        return await service.create_portfolio(
            identity.user_id, body.name, body.description, body.base_currency
        )
    except LedgerError as e:
        raise http_error(e) from e


@router.get("/{portfolio_id}", response_model=PortfolioSummary)
async def get_portfolio(
    portfolio_id: int,
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Get a portfolio with valued holdings, cash balances and totals."""
    await get_owned_portfolio(portfolio_id, identity, service)
    try:
        return await service.get_portfolio_summary(portfolio_id)
    except LedgerError as e:
        raise http_error(e) from e


@router.put("/{portfolio_id}", response_model=PortfolioSchema)
async def update_portfolio(
    portfolio_id: int,
    body: PortfolioUpdate,
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
):
    await get_owned_portfolio(portfolio_id, identity, service)
    try:
        return await service.update_portfolio(portfolio_id, body.model_dump(exclude_unset=True))
    except LedgerError as e:
        raise http_error(e) from e


@router.delete("/{portfolio_id}")
async def delete_portfolio(
    portfolio_id: int,
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
) -> dict:
    """Delete a portfolio with all its transactions, holdings, cash and snapshots."""
    await get_owned_portfolio(portfolio_id, identity, service)
    try:
        await service.delete_portfolio(portfolio_id)
    except LedgerError as e:
        raise http_error(e) from e
    return {"deleted": True, "portfolio_id": portfolio_id}


@router.get("/{portfolio_id}/summary", response_model=PortfolioSummary)
async def get_portfolio_summary(
    portfolio_id: int,
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
):
    await get_owned_portfolio(portfolio_id, identity, service)
    try:
        return await service.get_portfolio_summary(portfolio_id)
    except LedgerError as e:
        raise http_error(e) from e


@router.get("/{portfolio_id}/performance", response_model=List[PerformancePoint])
async def get_portfolio_performance(
    portfolio_id: int,
    period: str = Query(default="1m"),
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
):
    """Snapshot history for 1d, 7d, 1m, 3m, 1y or all."""
    await get_owned_portfolio(portfolio_id, identity, service)
    try:
        return await service.get_portfolio_performance(portfolio_id, period)
    except LedgerError as e:
        raise http_error(e) from e


@router.post("/{portfolio_id}/snapshot", response_model=SnapshotSchema, status_code=201)
async def create_snapshot(
    portfolio_id: int,
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
):
    await get_owned_portfolio(portfolio_id, identity, service)
    try:
        return await service.create_portfolio_snapshot(portfolio_id)
    except LedgerError as e:
        raise http_error(e) from e


@router.get("/{portfolio_id}/verify", response_model=VerificationSchema)
async def verify_portfolio(
    portfolio_id: int,
    identity: Identity = Depends(get_current_identity),
    service: PortfolioService = Depends(get_portfolio_service),
    engine: LedgerEngine = Depends(get_ledger_engine),
):
    """Replay the transaction log and compare it with stored holdings and cash."""
    await get_owned_portfolio(portfolio_id, identity, service)
    try:
        discrepancies = await engine.verify_portfolio(portfolio_id)
    except LedgerError as e:
        raise http_error(e) from e
    return VerificationSchema(
        portfolio_id=portfolio_id,
        consistent=not discrepancies,
        discrepancies=[
            DiscrepancySchema(
                table=d.table,
                key=[str(part) for part in d.key],
                column=d.column,
                stored=d.stored,
                expected=d.expected,
            )
            for d in discrepancies
        ],
    )
