"""
Transactions API Router.

Transactions are append-only: create and read are supported, update and
delete answer 501.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from foliotrack.api.deps import (
    get_ledger_engine,
    get_owned_portfolio,
    get_portfolio_service,
    http_error,
)
from foliotrack.core.exceptions import LedgerError, TransactionNotFound
from foliotrack.core.security import Identity, get_current_identity
from foliotrack.services.ledger_engine import LedgerEngine
from foliotrack.services.portfolio_service import PortfolioService

router = APIRouter()

CASH_KINDS = ("deposit", "withdrawal")

# ---------- Pydantic Schemas ----------

class TransactionCreate(BaseModel):
    portfolio_id: int
    platform_id: Optional[int] = None
    transaction_type: Optional[str] = None
    asset_id: Optional[int] = None
    quantity: Optional[Decimal] = None
    price_per_unit: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    fee_amount: Optional[Decimal] = None
    transaction_date: Optional[date] = None
    notes: Optional[str] = None

    class Config:
        # Field aliases (kind, fees, ...) pass through to the validator
        extra = "allow"


class BulkTransactionCreate(BaseModel):
    transactions: List[TransactionCreate]


class TransactionSchema(BaseModel):
    id: int
    user_id: str
    portfolio_id: int
    asset_id: Optional[int]
    platform_id: int
    transaction_type: str
    quantity: Decimal
    price_per_unit: Decimal
    total_amount: Decimal
    currency: str
    fee_amount: Decimal
    transaction_date: date
    notes: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionHistorySchema(TransactionSchema):
    symbol: Optional[str] = None
    asset_name: Optional[str] = None
    platform_name: Optional[str] = None


class BulkErrorSchema(BaseModel):
    index: int
    error: str


class BulkResultSchema(BaseModel):
    success: bool
    data: List[TransactionSchema]
    errors: List[BulkErrorSchema]


def _payload(body: TransactionCreate, identity: Identity) -> Dict[str, Any]:
    payload = body.model_dump(exclude_none=True)
    payload["user_id"] = identity.user_id
    return payload


async def _record(
    payload: Dict[str, Any],
    identity: Identity,
    engine: LedgerEngine,
    portfolios: PortfolioService,
):
    await get_owned_portfolio(payload["portfolio_id"], identity, portfolios)
    try:
        return await engine.process_transaction(payload)
    except LedgerError as e:
        raise http_error(e) from e


# ---------- Endpoints ----------

@router.get("", response_model=List[TransactionHistorySchema])
async def get_transactions(
    portfolio_id: int,
    asset_id: Optional[int] = None,
    transaction_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = Query(default=100, le=500),
    identity: Identity = Depends(get_current_identity),
    engine: LedgerEngine = Depends(get_ledger_engine),
    portfolios: PortfolioService = Depends(get_portfolio_service),
):
    """Get a portfolio's transactions, newest first."""
    await get_owned_portfolio(portfolio_id, identity, portfolios)
    entries = await engine.get_transaction_history(
        portfolio_id,
        asset_id=asset_id,
        transaction_type=transaction_type,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return [
        TransactionHistorySchema(
            **TransactionSchema.model_validate(entry.transaction).model_dump(),
            symbol=entry.symbol,
            asset_name=entry.asset_name,
            platform_name=entry.platform_name,
        )
        for entry in entries
    ]


@router.post("", response_model=TransactionSchema, status_code=201)
async def create_transaction(
    body: TransactionCreate,
    identity: Identity = Depends(get_current_identity),
    engine: LedgerEngine = Depends(get_ledger_engine),
    portfolios: PortfolioService = Depends(get_portfolio_service),
):
    return await _record(_payload(body, identity), identity, engine, portfolios)


@router.post("/cash", response_model=TransactionSchema, status_code=201)
async def create_cash_transaction(
    body: TransactionCreate,
    identity: Identity = Depends(get_current_identity),
    engine: LedgerEngine = Depends(get_ledger_engine),
    portfolios: PortfolioService = Depends(get_portfolio_service),
):
    """Deposit or withdrawal. Any asset_id in the body is ignored."""
    payload = _payload(body, identity)
    payload["asset_id"] = None
    kind = str(payload.get("transaction_type") or payload.get("kind") or "").lower()
    if kind not in CASH_KINDS:
        raise HTTPException(status_code=400, detail="Cash transactions must be deposit or withdrawal")
    return await _record(payload, identity, engine, portfolios)


@router.post("/asset", response_model=TransactionSchema, status_code=201)
async def create_asset_transaction(
    body: TransactionCreate,
    identity: Identity = Depends(get_current_identity),
    engine: LedgerEngine = Depends(get_ledger_engine),
    portfolios: PortfolioService = Depends(get_portfolio_service),
):
    if not body.asset_id:
        raise HTTPException(status_code=400, detail="Asset ID is required for asset transactions")
    return await _record(_payload(body, identity), identity, engine, portfolios)


@router.post("/bulk", response_model=BulkResultSchema)
async def create_transactions_bulk(
    body: BulkTransactionCreate,
    identity: Identity = Depends(get_current_identity),
    engine: LedgerEngine = Depends(get_ledger_engine),
    portfolios: PortfolioService = Depends(get_portfolio_service),
):
    """Process each transaction on its own; failures are reported by index."""
    for portfolio_id in {item.portfolio_id for item in body.transactions}:
        await get_owned_portfolio(portfolio_id, identity, portfolios)

    result = await engine.process_transactions([_payload(item, identity) for item in body.transactions])
    return BulkResultSchema(
        success=result.success,
        data=[TransactionSchema.model_validate(t) for t in result.processed],
        errors=[BulkErrorSchema(index=e.index, error=e.error) for e in result.errors],
    )


@router.get("/{transaction_id}", response_model=TransactionSchema)
async def get_transaction(
    transaction_id: int,
    identity: Identity = Depends(get_current_identity),
    engine: LedgerEngine = Depends(get_ledger_engine),
):
    try:
        transaction = await engine.get_transaction(transaction_id)
    except LedgerError as e:
        raise http_error(e) from e
    if transaction.user_id != identity.user_id:
        raise http_error(TransactionNotFound(transaction_id))
    return transaction


@router.put("/{transaction_id}", response_model=TransactionSchema)
async def update_transaction(
    transaction_id: int,
    body: Dict[str, Any],
    identity: Identity = Depends(get_current_identity),
    engine: LedgerEngine = Depends(get_ledger_engine),
):
    try:
        return await engine.update_transaction(transaction_id, body)
    except LedgerError as e:
        raise http_error(e) from e


@router.delete("/{transaction_id}")
async def delete_transaction(
    transaction_id: int,
    identity: Identity = Depends(get_current_identity),
    engine: LedgerEngine = Depends(get_ledger_engine),
):
    try:
        return await engine.delete_transaction(transaction_id)
    except LedgerError as e:
        raise http_error(e) from e
