"""
Ledger engine.

Records transactions and applies their effects to holdings and cash balances.
Each transaction is one unit of work: the transaction row, any dividend or
split record, and every holding/cash mutation commit together or not at all.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from foliotrack.core.config import settings
from foliotrack.core.database import AsyncSessionLocal
from foliotrack.core.exceptions import (
    LedgerError,
    PortfolioNotFound,
    StoreFailure,
    TransactionNotFound,
    UnsupportedOperation,
)
from foliotrack.core.metrics import metrics
from foliotrack.models.asset import Asset
from foliotrack.models.cash_balance import CashBalance
from foliotrack.models.dividend_payment import DividendPayment
from foliotrack.models.holding import Holding
from foliotrack.models.platform import Platform
from foliotrack.models.portfolio import Portfolio
from foliotrack.models.stock_split import StockSplit
from foliotrack.models.transaction import Transaction, TransactionKind
from foliotrack.services.cash_aggregator import apply_cash_delta
from foliotrack.services.effect_rules import (
    EffectRule,
    LedgerEffect,
    compute_effect,
    kind_of,
    needs_average_cost,
)
from foliotrack.services.holdings_aggregator import (
    apply_holdings_delta,
    apply_split,
    get_average_cost,
)
from foliotrack.services.ledger_replay import Discrepancy, diff_state, replay_transactions
from foliotrack.services.transaction_validator import TransactionRequest, validate_transaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HISTORY_LIMIT = 100


@dataclass
class TransactionHistoryEntry:
    transaction: Transaction
    symbol: Optional[str]
    asset_name: Optional[str]
    platform_name: Optional[str]


@dataclass
class BulkError:
    index: int
    error: str


@dataclass
class BulkResult:
    processed: List[Transaction] = field(default_factory=list)
    errors: List[BulkError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class LedgerEngine:
    """Single write path for transactions, holdings and cash balances."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        sell_cost_basis_method: Optional[str] = None,
        reject_oversell: Optional[bool] = None,
        reject_negative_cash: Optional[bool] = None,
        isolation_level: Optional[str] = None,
        rules: Optional[Dict[TransactionKind, EffectRule]] = None,
    ):
        self.session_factory = session_factory or AsyncSessionLocal
        self.sell_cost_basis_method = sell_cost_basis_method or settings.SELL_COST_BASIS_METHOD
        self.reject_oversell = (
            settings.LEDGER_REJECT_OVERSELL if reject_oversell is None else reject_oversell
        )
        self.reject_negative_cash = (
            settings.LEDGER_REJECT_NEGATIVE_CASH if reject_negative_cash is None else reject_negative_cash
        )
        self.isolation_level = isolation_level or settings.LEDGER_ISOLATION_LEVEL
        self.rules = rules

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def process_transaction(
        self, data: Union[Mapping[str, Any], TransactionRequest]
    ) -> Transaction:
        """
        Validate, record and apply one transaction atomically.

        Returns the recorded Transaction as inserted (before its effects).

        Raises:
            ValidationError: before any I/O, for malformed input.
            PortfolioNotFound: the referenced portfolio does not exist.
            UnsupportedTransactionKind: no effect rule for the kind.
            InsufficientHoldings / InsufficientCash: when the matching guard is enabled.
            StoreFailure: any database error; nothing is committed.
        """
        request = data if isinstance(data, TransactionRequest) else validate_transaction(data)

        async with self.session_factory() as session:
            try:
                if self.isolation_level:
                    await session.connection(
                        execution_options={"isolation_level": self.isolation_level}
                    )
                await self._ensure_portfolio(session, request.portfolio_id)
                transaction = await self._record(session, request)
                await self._apply_effects(session, transaction)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.exception("Ledger store failure for %s transaction", request.kind.value)
                await metrics.transaction_rolled_back(request.portfolio_id, request.kind.value, str(exc))
                raise StoreFailure(f"Failed to record {request.kind.value} transaction") from exc
            except Exception as exc:
                await session.rollback()
                log = logger.warning if isinstance(exc, LedgerError) else logger.exception
                log("Rolled back %s transaction: %s", request.kind.value, exc)
                await metrics.transaction_rolled_back(request.portfolio_id, request.kind.value, str(exc))
                raise

        logger.info(
            "Recorded %s transaction %s for portfolio %s",
            transaction.transaction_type, transaction.id, transaction.portfolio_id,
        )
        await metrics.transaction_processed(
            transaction.portfolio_id,
            transaction.id,
            transaction.transaction_type,
            float(transaction.total_amount),
        )
        return transaction

    async def process_transactions(self, items: Iterable[Mapping[str, Any]]) -> BulkResult:
        """
        Process transactions one by one, each in its own unit of work.

        A failing item is reported by index and does not affect the others.
        """
        result = BulkResult()
        for index, data in enumerate(items):
            try:
                result.processed.append(await self.process_transaction(data))
            except LedgerError as exc:
                result.errors.append(BulkError(index=index, error=exc.message))
        logger.info(
            "Bulk processed %s transactions (%s failed)",
            len(result.processed) + len(result.errors), len(result.errors),
        )
        return result

    async def update_transaction(self, transaction_id: int, data: Mapping[str, Any]) -> Transaction:
        raise UnsupportedOperation(
            "Transaction updates are not supported: recorded transactions are immutable "
            "and changing one would require recalculating all downstream holdings"
        )

    async def delete_transaction(self, transaction_id: int) -> bool:
        raise UnsupportedOperation(
            "Transaction deletion is not supported: recorded transactions are immutable "
            "and removing one would require recalculating all downstream holdings"
        )

    async def _ensure_portfolio(self, session: AsyncSession, portfolio_id: int) -> None:
        result = await session.execute(select(Portfolio.id).where(Portfolio.id == portfolio_id))
        if result.scalar_one_or_none() is None:
            raise PortfolioNotFound(portfolio_id)

    async def _record(self, session: AsyncSession, request: TransactionRequest) -> Transaction:
        transaction = Transaction(
            user_id=request.user_id,
            portfolio_id=request.portfolio_id,
            asset_id=request.asset_id,
            platform_id=request.platform_id,
            transaction_type=request.kind.value,
            quantity=request.quantity,
            price_per_unit=request.price_per_unit,
            total_amount=request.total_amount,
            currency=request.currency,
            fee_amount=request.fee_amount,
            transaction_date=request.transaction_date,
            notes=request.notes,
        )
        session.add(transaction)
        await session.flush()
        return transaction

    async def _apply_effects(self, session: AsyncSession, transaction: Transaction) -> LedgerEffect:
        kind = kind_of(transaction)

        average_cost = None
        if needs_average_cost(kind, self.sell_cost_basis_method):
            average_cost = await get_average_cost(
                session, transaction.portfolio_id, transaction.asset_id, transaction.platform_id
            )

        effect = compute_effect(transaction, self.sell_cost_basis_method, average_cost, self.rules)

        if effect.dividend is not None:
            session.add(DividendPayment(
                portfolio_id=transaction.portfolio_id,
                asset_id=transaction.asset_id,
                transaction_id=transaction.id,
                payment_date=transaction.transaction_date,
                amount_per_share=effect.dividend.amount_per_share,
                total_amount=effect.dividend.total_amount,
                currency=effect.dividend.currency,
                is_reinvested=effect.dividend.is_reinvested,
            ))
            await session.flush()

        if effect.split_ratio is not None:
            session.add(StockSplit(
                portfolio_id=transaction.portfolio_id,
                asset_id=transaction.asset_id,
                transaction_id=transaction.id,
                split_date=transaction.transaction_date,
                split_ratio=effect.split_ratio,
            ))
            await session.flush()
            await apply_split(session, transaction.portfolio_id, transaction.asset_id, effect.split_ratio)

        if effect.holdings is not None:
            await apply_holdings_delta(
                session,
                transaction.portfolio_id,
                transaction.asset_id,
                transaction.platform_id,
                effect.holdings.quantity,
                effect.holdings.cost,
                reject_negative=self.reject_oversell and effect.holdings.quantity < ZERO,
            )

        if effect.cash is not None:
            await apply_cash_delta(
                session,
                transaction.portfolio_id,
                transaction.platform_id,
                transaction.currency,
                effect.cash,
                reject_negative=self.reject_negative_cash,
            )

        return effect

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get_transaction(self, transaction_id: int) -> Transaction:
        async with self.session_factory() as session:
            transaction = await session.get(Transaction, transaction_id)
            if transaction is None:
                raise TransactionNotFound(transaction_id)
            return transaction

    async def get_transaction_history(
        self,
        portfolio_id: int,
        asset_id: Optional[int] = None,
        transaction_type: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = HISTORY_LIMIT,
    ) -> List[TransactionHistoryEntry]:
        """Newest-first transaction history with asset and platform names."""
        query = (
            select(Transaction, Asset.symbol, Asset.name, Platform.name)
            .outerjoin(Asset, Transaction.asset_id == Asset.id)
            .outerjoin(Platform, Transaction.platform_id == Platform.id)
            .where(Transaction.portfolio_id == portfolio_id)
        )
        if asset_id is not None:
            query = query.where(Transaction.asset_id == asset_id)
        if transaction_type:
            query = query.where(Transaction.transaction_type == transaction_type)
        if start_date:
            query = query.where(Transaction.transaction_date >= start_date)
        if end_date:
            query = query.where(Transaction.transaction_date <= end_date)
        query = query.order_by(
            desc(Transaction.transaction_date), desc(Transaction.created_at), desc(Transaction.id)
        ).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [
                TransactionHistoryEntry(
                    transaction=row[0], symbol=row[1], asset_name=row[2], platform_name=row[3]
                )
                for row in result.all()
            ]

    async def verify_portfolio(
        self, portfolio_id: int, tolerance: Decimal = Decimal("0.0001")
    ) -> List[Discrepancy]:
        """
        Replay a portfolio's transactions and compare with stored holdings and cash.

        An empty list means the materialized rows match the transaction log.
        """
        async with self.session_factory() as session:
            await self._ensure_portfolio(session, portfolio_id)

            txn_result = await session.execute(
                select(Transaction)
                .where(Transaction.portfolio_id == portfolio_id)
                .order_by(Transaction.id)
            )
            transactions = txn_result.scalars().all()

            holdings_result = await session.execute(
                select(Holding).where(Holding.portfolio_id == portfolio_id)
            )
            stored_holdings = {
                (h.portfolio_id, h.asset_id, h.platform_id): (h.quantity, h.total_cost_basis)
                for h in holdings_result.scalars()
            }

            cash_result = await session.execute(
                select(CashBalance).where(CashBalance.portfolio_id == portfolio_id)
            )
            stored_cash = {
                (c.portfolio_id, c.platform_id, c.currency): c.balance
                for c in cash_result.scalars()
            }

        expected = replay_transactions(transactions, self.sell_cost_basis_method)
        discrepancies = diff_state(expected, stored_holdings, stored_cash, tolerance)
        if discrepancies:
            logger.warning(
                "Portfolio %s ledger has %s discrepancies against replay",
                portfolio_id, len(discrepancies),
            )
        return discrepancies
