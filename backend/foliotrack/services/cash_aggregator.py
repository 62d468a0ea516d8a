"""
Cash aggregator: atomic add-to-balance upsert keyed on (portfolio, platform, currency).
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from foliotrack.core.database import upsert
from foliotrack.core.exceptions import InsufficientCash
from foliotrack.models.base import utcnow
from foliotrack.models.cash_balance import CashBalance

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class CashRow:
    id: int
    currency: str
    balance: Decimal


async def apply_cash_delta(
    session: AsyncSession,
    portfolio_id: int,
    platform_id: int,
    currency: str,
    amount_change: Decimal,
    reject_negative: bool = False,
) -> CashRow:
    """
    Add ``amount_change`` to the cash balance, creating the row if needed.

    Balances may go negative unless ``reject_negative`` is set, in which case a
    debit that ends below zero raises InsufficientCash.
    """
    now = utcnow()
    stmt = upsert(session, CashBalance).values(
        portfolio_id=portfolio_id,
        platform_id=platform_id,
        currency=currency,
        balance=amount_change,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["portfolio_id", "platform_id", "currency"],
        set_={
            "balance": CashBalance.balance + stmt.excluded.balance,
            "updated_at": now,
        },
    ).returning(CashBalance.id, CashBalance.currency, CashBalance.balance)

    result = await session.execute(stmt)
    row = result.one()
    cash = CashRow(id=row.id, currency=row.currency, balance=row.balance)
    logger.debug(
        "Cash %s %s (portfolio=%s platform=%s) -> %s",
        currency, amount_change, portfolio_id, platform_id, cash.balance,
    )

    if amount_change < ZERO and cash.balance < ZERO and reject_negative:
        raise InsufficientCash(currency, cash.balance)
    return cash
