"""
Holdings aggregator.

Applies quantity and cost-basis deltas to the unique Holding row for a
(portfolio, asset, platform) key with a single INSERT ... ON CONFLICT DO UPDATE,
so the read-modify-write happens atomically inside the store. Always called
with the session of an open unit of work; it never commits.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from foliotrack.core.database import exact_divide, upsert
from foliotrack.core.exceptions import InsufficientHoldings
from foliotrack.models.base import utcnow
from foliotrack.models.holding import Holding

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HOLDING_KEY = ["portfolio_id", "asset_id", "platform_id"]


@dataclass(frozen=True)
class HoldingRow:
    """Holding values after a mutation."""
    id: int
    quantity: Decimal
    total_cost_basis: Decimal
    average_cost_basis: Decimal


def _average(cost: Decimal, quantity: Decimal) -> Decimal:
    return cost / quantity if quantity != ZERO else ZERO


async def apply_holdings_delta(
    session: AsyncSession,
    portfolio_id: int,
    asset_id: int,
    platform_id: int,
    quantity_change: Decimal,
    cost_change: Decimal,
    reject_negative: bool = False,
) -> HoldingRow:
    """
    Add ``quantity_change`` and ``cost_change`` to the holding, creating it if needed.

    The average cost basis is recomputed from the new totals and is 0 when the
    resulting quantity is exactly 0. Quantity may go negative (oversell) unless
    ``reject_negative`` is set, in which case InsufficientHoldings is raised and
    the caller's unit of work rolls back.
    """
    now = utcnow()
    stmt = upsert(session, Holding).values(
        portfolio_id=portfolio_id,
        asset_id=asset_id,
        platform_id=platform_id,
        quantity=quantity_change,
        total_cost_basis=cost_change,
        average_cost_basis=_average(cost_change, quantity_change),
        created_at=now,
        updated_at=now,
    )
    new_quantity = Holding.quantity + stmt.excluded.quantity
    new_cost = Holding.total_cost_basis + stmt.excluded.total_cost_basis
    stmt = stmt.on_conflict_do_update(
        index_elements=HOLDING_KEY,
        set_={
            "quantity": new_quantity,
            "total_cost_basis": new_cost,
            "average_cost_basis": case(
                (new_quantity == 0, 0),
                else_=exact_divide(session, new_cost, new_quantity),
            ),
            "updated_at": now,
        },
    ).returning(
        Holding.id,
        Holding.quantity,
        Holding.total_cost_basis,
        Holding.average_cost_basis,
    )

    result = await session.execute(stmt)
    row = result.one()
    holding = HoldingRow(
        id=row.id,
        quantity=row.quantity,
        total_cost_basis=row.total_cost_basis,
        average_cost_basis=row.average_cost_basis,
    )
    logger.debug(
        "Holding %s (portfolio=%s asset=%s platform=%s) -> qty=%s cost=%s",
        holding.id, portfolio_id, asset_id, platform_id,
        holding.quantity, holding.total_cost_basis,
    )

    if holding.quantity < ZERO:
        if reject_negative:
            raise InsufficientHoldings(asset_id, holding.quantity)
        logger.warning(
            "Holding for asset %s in portfolio %s is now negative (%s)",
            asset_id, portfolio_id, holding.quantity,
        )
    return holding


async def apply_split(
    session: AsyncSession,
    portfolio_id: int,
    asset_id: int,
    ratio: Decimal,
) -> int:
    """
    Rewrite every platform's holding of ``asset_id`` for a split.

    Quantity is multiplied by the ratio and average cost divided by it; total
    cost basis is unchanged. Returns the number of holdings rewritten.
    """
    stmt = (
        update(Holding)
        .where(Holding.portfolio_id == portfolio_id, Holding.asset_id == asset_id)
        .values(
            quantity=Holding.quantity * ratio,
            average_cost_basis=exact_divide(session, Holding.average_cost_basis, ratio),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    if result.rowcount == 0:
        logger.info("Split for asset %s in portfolio %s matched no holdings", asset_id, portfolio_id)
    return result.rowcount


async def get_average_cost(
    session: AsyncSession,
    portfolio_id: int,
    asset_id: int,
    platform_id: int,
) -> Optional[Decimal]:
    """Current average cost basis, read under a row lock for the rest of the unit of work."""
    stmt = (
        select(Holding.average_cost_basis)
        .where(
            Holding.portfolio_id == portfolio_id,
            Holding.asset_id == asset_id,
            Holding.platform_id == platform_id,
        )
        .with_for_update()
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()
