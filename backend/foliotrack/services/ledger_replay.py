"""
In-memory ledger replay.

Holdings and cash balances are a materialized view of the transaction log.
Replaying a portfolio's transactions in insertion order through the same
effect rules, starting from zero, must reproduce the stored rows.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from foliotrack.services.effect_rules import (
    SELL_AT_TRANSACTION_PRICE,
    compute_effect,
    kind_of,
    needs_average_cost,
)

ZERO = Decimal("0")

HoldingKey = Tuple[int, int, int]  # (portfolio_id, asset_id, platform_id)
CashKey = Tuple[int, int, str]     # (portfolio_id, platform_id, currency)


@dataclass
class ReplayedHolding:
    quantity: Decimal = ZERO
    total_cost_basis: Decimal = ZERO

    @property
    def average_cost_basis(self) -> Decimal:
        if self.quantity == ZERO:
            return ZERO
        return self.total_cost_basis / self.quantity


@dataclass
class LedgerState:
    holdings: Dict[HoldingKey, ReplayedHolding] = field(default_factory=dict)
    cash: Dict[CashKey, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class Discrepancy:
    """A stored row that disagrees with the replayed value."""
    table: str
    key: Tuple[Any, ...]
    column: str
    stored: Optional[Decimal]
    expected: Optional[Decimal]


def replay_transactions(
    transactions: Iterable[Any],
    sell_method: str = SELL_AT_TRANSACTION_PRICE,
) -> LedgerState:
    """Fold transactions, in the order given, into a fresh LedgerState."""
    state = LedgerState()
    for txn in transactions:
        apply_to_state(state, txn, sell_method)
    return state


def apply_to_state(state: LedgerState, txn: Any, sell_method: str = SELL_AT_TRANSACTION_PRICE) -> None:
    key: HoldingKey = (txn.portfolio_id, txn.asset_id, txn.platform_id)

    average_cost = None
    if needs_average_cost(kind_of(txn), sell_method):
        existing = state.holdings.get(key)
        average_cost = existing.average_cost_basis if existing else ZERO

    effect = compute_effect(txn, sell_method, average_cost)

    if effect.split_ratio is not None:
        for (portfolio_id, asset_id, _), holding in state.holdings.items():
            if portfolio_id == txn.portfolio_id and asset_id == txn.asset_id:
                holding.quantity *= effect.split_ratio

    if effect.holdings is not None:
        holding = state.holdings.setdefault(key, ReplayedHolding())
        holding.quantity += effect.holdings.quantity
        holding.total_cost_basis += effect.holdings.cost

    if effect.cash is not None:
        cash_key: CashKey = (txn.portfolio_id, txn.platform_id, txn.currency)
        state.cash[cash_key] = state.cash.get(cash_key, ZERO) + effect.cash


def diff_state(
    expected: LedgerState,
    stored_holdings: Dict[HoldingKey, Tuple[Decimal, Decimal]],
    stored_cash: Dict[CashKey, Decimal],
    tolerance: Decimal = Decimal("0.0001"),
) -> List[Discrepancy]:
    """
    Compare stored (quantity, total_cost_basis) and balances with a replay.

    A key missing on one side counts as zero there, so a zero-quantity replayed
    holding matches an absent row.
    """
    found: List[Discrepancy] = []

    for key in sorted(set(expected.holdings) | set(stored_holdings), key=str):
        replayed = expected.holdings.get(key, ReplayedHolding())
        quantity, cost = stored_holdings.get(key, (ZERO, ZERO))
        if abs(quantity - replayed.quantity) > tolerance:
            found.append(Discrepancy("holdings", key, "quantity", quantity, replayed.quantity))
        if abs(cost - replayed.total_cost_basis) > tolerance:
            found.append(Discrepancy("holdings", key, "total_cost_basis", cost, replayed.total_cost_basis))

    for key in sorted(set(expected.cash) | set(stored_cash), key=str):
        balance = stored_cash.get(key, ZERO)
        replayed_balance = expected.cash.get(key, ZERO)
        if abs(balance - replayed_balance) > tolerance:
            found.append(Discrepancy("cash_balances", key, "balance", balance, replayed_balance))

    return found
