"""
Portfolio service.

Portfolio CRUD plus the read-only valuation path: holdings joined with live
prices, cash balances and totals. A price that cannot be fetched degrades that
one holding to a zero current value and is reported inline.
"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy import case, delete, func, select

from foliotrack.core.config import settings
from foliotrack.core.database import AsyncSessionLocal, upsert
from foliotrack.core.exceptions import PortfolioNotFound, PriceLookupFailure, ValidationError
from foliotrack.core.metrics import metrics
from foliotrack.models.asset import Asset
from foliotrack.models.base import utcnow
from foliotrack.models.cash_balance import CashBalance
from foliotrack.models.dividend_payment import DividendPayment
from foliotrack.models.holding import Holding
from foliotrack.models.portfolio import Portfolio
from foliotrack.models.portfolio_snapshot import PortfolioSnapshot
from foliotrack.models.stock_split import StockSplit
from foliotrack.models.transaction import Transaction
from foliotrack.services.price_service import PriceRequest, PriceService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

UPDATABLE_FIELDS = ("name", "description", "base_currency")

# Calendar months are approximated by day counts
PERFORMANCE_PERIODS: Dict[str, Optional[timedelta]] = {
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "1m": timedelta(days=30),
    "3m": timedelta(days=90),
    "1y": timedelta(days=365),
    "all": None,
}


# ---------- Views ----------

class HoldingValuation(BaseModel):
    id: int
    asset_id: int
    platform_id: int
    symbol: str
    name: Optional[str] = None
    asset_type: str
    data_source: str
    exchange: Optional[str] = None
    asset_currency: str
    quantity: Decimal
    total_cost_basis: Decimal
    average_cost_basis: Decimal
    current_price: Decimal
    current_value: Decimal
    total_gain_loss: Decimal
    percent_gain_loss: Decimal
    price_timestamp: Optional[datetime] = None
    price_error: Optional[str] = None


class CashBalanceView(BaseModel):
    platform_id: int
    currency: str
    balance: Decimal

    class Config:
        from_attributes = True


class SummaryTotals(BaseModel):
    total_invested: Decimal
    total_current_value: Decimal
    total_cash: Decimal
    total_portfolio_value: Decimal
    total_gain_loss: Decimal
    total_percent_gain_loss: Decimal
    holdings_count: int


class PortfolioSummary(BaseModel):
    id: int
    user_id: str
    name: str
    description: Optional[str] = None
    base_currency: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    holdings: List[HoldingValuation]
    cash_balances: List[CashBalanceView]
    summary: SummaryTotals


class PortfolioListItem(BaseModel):
    id: int
    user_id: str
    name: str
    description: Optional[str] = None
    base_currency: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    holdings_count: int
    total_invested: Decimal


class PerformancePoint(BaseModel):
    snapshot_date: date
    total_value: Decimal
    total_invested: Decimal
    total_gain_loss: Decimal
    percent_gain_loss: Decimal

    class Config:
        from_attributes = True


def percent_of(gain: Decimal, base: Decimal) -> Decimal:
    """gain / base * 100, or 0 when base is 0."""
    if base == ZERO:
        return ZERO
    return gain / base * HUNDRED


def _normalize_currency(value: Any) -> str:
    if not isinstance(value, str) or len(value.strip()) != 3 or not value.strip().isalpha():
        raise ValidationError("base_currency", "base_currency must be a 3-letter currency code")
    return value.strip().upper()


class PortfolioService:
    """Portfolio management and valuation."""

    def __init__(self, session_factory=None, price_service: Optional[PriceService] = None):
        self.session_factory = session_factory or AsyncSessionLocal
        self.price_service = price_service or PriceService()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_portfolio(
        self,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        base_currency: Optional[str] = None,
    ) -> Portfolio:
        if not user_id:
            raise ValidationError("user_id")
        if not name or not str(name).strip():
            raise ValidationError("name")

        portfolio = Portfolio(
            user_id=str(user_id),
            name=str(name).strip(),
            description=description,
            base_currency=_normalize_currency(base_currency or settings.DEFAULT_CURRENCY),
        )
        async with self.session_factory() as session:
            session.add(portfolio)
            await session.commit()
        logger.info("Created portfolio %s for user %s", portfolio.id, user_id)
        return portfolio

    async def list_user_portfolios(self, user_id: str) -> List[PortfolioListItem]:
        """The user's portfolios, oldest first, with holding count and amount invested."""
        holdings_count = func.count(Holding.id)
        total_invested = func.coalesce(
            func.sum(case((Holding.quantity > 0, Holding.total_cost_basis), else_=0)), 0
        )
        query = (
            select(Portfolio, holdings_count, total_invested)
            .outerjoin(Holding, Holding.portfolio_id == Portfolio.id)
            .where(Portfolio.user_id == str(user_id))
            .group_by(Portfolio.id)
            .order_by(Portfolio.created_at.asc(), Portfolio.id.asc())
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            rows = result.all()

        return [
            PortfolioListItem(
                id=p.id,
                user_id=p.user_id,
                name=p.name,
                description=p.description,
                base_currency=p.base_currency,
                created_at=p.created_at,
                updated_at=p.updated_at,
                holdings_count=count or 0,
                total_invested=Decimal(str(invested or 0)),
            )
            for p, count, invested in rows
        ]

    async def get_portfolio(self, portfolio_id: int) -> Portfolio:
        async with self.session_factory() as session:
            portfolio = await session.get(Portfolio, portfolio_id)
        if portfolio is None:
            raise PortfolioNotFound(portfolio_id)
        return portfolio

    async def update_portfolio(self, portfolio_id: int, fields: Mapping[str, Any]) -> Portfolio:
        """Change name, description or base_currency. Other keys are ignored."""
        updates = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}
        if not updates:
            raise ValidationError("fields", "No valid fields to update")
        if "name" in updates and (not updates["name"] or not str(updates["name"]).strip()):
            raise ValidationError("name")
        if "base_currency" in updates:
            updates["base_currency"] = _normalize_currency(updates["base_currency"])

        async with self.session_factory() as session:
            portfolio = await session.get(Portfolio, portfolio_id)
            if portfolio is None:
                raise PortfolioNotFound(portfolio_id)
            for key, value in updates.items():
                setattr(portfolio, key, value)
            portfolio.updated_at = utcnow()
            await session.commit()
        logger.info("Updated portfolio %s: %s", portfolio_id, sorted(updates))
        return portfolio

    async def delete_portfolio(self, portfolio_id: int) -> bool:
        """Delete the portfolio and everything that references it in one unit of work."""
        async with self.session_factory() as session:
            try:
                exists = await session.execute(select(Portfolio.id).where(Portfolio.id == portfolio_id))
                if exists.scalar_one_or_none() is None:
                    raise PortfolioNotFound(portfolio_id)

                # Children first, in foreign key order
                for model in (
                    PortfolioSnapshot,
                    DividendPayment,
                    StockSplit,
                    Holding,
                    CashBalance,
                    Transaction,
                ):
                    await session.execute(delete(model).where(model.portfolio_id == portfolio_id))
                await session.execute(delete(Portfolio).where(Portfolio.id == portfolio_id))
                await session.commit()
            except Exception:
                await session.rollback()
                raise
        logger.info("Deleted portfolio %s", portfolio_id)
        return True

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    async def get_portfolio_summary(self, portfolio_id: int) -> PortfolioSummary:
        """
        Value every open holding at its latest price.

        Never raises for price failures: the holding gets a zero current price
        and value plus a ``price_error`` message.
        """
        async with self.session_factory() as session:
            portfolio = await session.get(Portfolio, portfolio_id)
            if portfolio is None:
                raise PortfolioNotFound(portfolio_id)

            holdings_result = await session.execute(
                select(Holding, Asset)
                .join(Asset, Holding.asset_id == Asset.id)
                .where(Holding.portfolio_id == portfolio_id, Holding.quantity != 0)
                .order_by(Holding.total_cost_basis.desc(), Holding.id)
            )
            holdings = holdings_result.all()

            cash_result = await session.execute(
                select(CashBalance)
                .where(CashBalance.portfolio_id == portfolio_id)
                .order_by(CashBalance.currency, CashBalance.platform_id)
            )
            cash_balances = [CashBalanceView.model_validate(c) for c in cash_result.scalars()]

        price_keys: List[Tuple[str, str, Optional[str]]] = []
        for _, asset in holdings:
            key = (asset.symbol, asset.data_source, asset.exchange)
            if key not in price_keys:
                price_keys.append(key)
        results = await self.price_service.get_bulk_prices(
            [PriceRequest(symbol=s, data_source=src, exchange=ex) for s, src, ex in price_keys]
        )
        prices = dict(zip(price_keys, results))

        valued: List[HoldingValuation] = []
        for holding, asset in holdings:
            quote = prices[(asset.symbol, asset.data_source, asset.exchange)]
            quantity = Decimal(holding.quantity)
            cost = Decimal(holding.total_cost_basis)
            if isinstance(quote, PriceLookupFailure):
                await metrics.price_lookup_failed(portfolio_id, asset.symbol, asset.data_source, quote.reason)
                price, price_ts, price_error = ZERO, None, quote.message
            else:
                price, price_ts, price_error = quote.price, quote.timestamp, None

            current_value = quantity * price
            gain = current_value - cost
            valued.append(HoldingValuation(
                id=holding.id,
                asset_id=asset.id,
                platform_id=holding.platform_id,
                symbol=asset.symbol,
                name=asset.name,
                asset_type=asset.asset_type,
                data_source=asset.data_source,
                exchange=asset.exchange,
                asset_currency=asset.currency,
                quantity=quantity,
                total_cost_basis=cost,
                average_cost_basis=Decimal(holding.average_cost_basis),
                current_price=price,
                current_value=current_value,
                total_gain_loss=gain,
                percent_gain_loss=percent_of(gain, cost),
                price_timestamp=price_ts,
                price_error=price_error,
            ))

        total_invested = sum((h.total_cost_basis for h in valued), ZERO)
        total_current_value = sum((h.current_value for h in valued), ZERO)
        total_cash = sum((Decimal(c.balance) for c in cash_balances), ZERO)
        total_gain_loss = total_current_value - total_invested

        return PortfolioSummary(
            id=portfolio.id,
            user_id=portfolio.user_id,
            name=portfolio.name,
            description=portfolio.description,
            base_currency=portfolio.base_currency,
            created_at=portfolio.created_at,
            updated_at=portfolio.updated_at,
            holdings=valued,
            cash_balances=cash_balances,
            summary=SummaryTotals(
                total_invested=total_invested,
                total_current_value=total_current_value,
                total_cash=total_cash,
                total_portfolio_value=total_current_value + total_cash,
                total_gain_loss=total_gain_loss,
                total_percent_gain_loss=percent_of(total_gain_loss, total_invested),
                holdings_count=len(valued),
            ),
        )

    async def create_portfolio_snapshot(
        self, portfolio_id: int, snapshot_date: Optional[date] = None
    ) -> PortfolioSnapshot:
        """Upsert the snapshot for (portfolio, day). Re-running the same day overwrites it."""
        summary = await self.get_portfolio_summary(portfolio_id)
        totals = summary.summary
        snapshot_date = snapshot_date or date.today()
        now = utcnow()

        async with self.session_factory() as session:
            stmt = upsert(session, PortfolioSnapshot).values(
                portfolio_id=portfolio_id,
                snapshot_date=snapshot_date,
                total_value=totals.total_portfolio_value,
                total_invested=totals.total_invested,
                total_gain_loss=totals.total_gain_loss,
                percent_gain_loss=totals.total_percent_gain_loss,
                holdings_count=totals.holdings_count,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["portfolio_id", "snapshot_date"],
                set_={
                    "total_value": stmt.excluded.total_value,
                    "total_invested": stmt.excluded.total_invested,
                    "total_gain_loss": stmt.excluded.total_gain_loss,
                    "percent_gain_loss": stmt.excluded.percent_gain_loss,
                    "holdings_count": stmt.excluded.holdings_count,
                    "updated_at": now,
                },
            ).returning(PortfolioSnapshot)
            result = await session.scalars(stmt, execution_options={"populate_existing": True})
            snapshot = result.one()
            await session.commit()

        await metrics.snapshot_created(portfolio_id, float(totals.total_portfolio_value), totals.holdings_count)
        return snapshot

    async def get_portfolio_performance(self, portfolio_id: int, period: str = "1m") -> List[PerformancePoint]:
        """Snapshots within ``period`` of today, oldest first."""
        if period not in PERFORMANCE_PERIODS:
            raise ValidationError(
                "period", f"period must be one of {', '.join(PERFORMANCE_PERIODS)}"
            )
        await self.get_portfolio(portfolio_id)

        query = select(PortfolioSnapshot).where(PortfolioSnapshot.portfolio_id == portfolio_id)
        window = PERFORMANCE_PERIODS[period]
        if window is not None:
            query = query.where(PortfolioSnapshot.snapshot_date >= date.today() - window)
        query = query.order_by(PortfolioSnapshot.snapshot_date.asc())

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [PerformancePoint.model_validate(s) for s in result.scalars()]

    async def list_portfolio_ids(self) -> List[int]:
        async with self.session_factory() as session:
            result = await session.execute(select(Portfolio.id).order_by(Portfolio.id))
            return list(result.scalars())
