"""
Effect rules: what each transaction kind does to holdings and cash.

Rules are pure. They turn a transaction into a LedgerEffect without touching
the store, so the ledger engine (applying effects to the database) and replay
(applying them in memory) share one definition.

    kind          holdings qty    holdings cost         cash
    buy           +qty            +(total + fee)        -(total + fee)
    sell          -qty            -(qty * price)        +(total - fee)
    deposit                                             +total
    withdrawal                                          -(total + fee)
    dividend      +qty if qty>0   +total if qty>0       +total if qty==0
    transfer_in   +qty            +total
    transfer_out  -qty            -total
    split         qty * ratio     avg / ratio (rewrite)
    free          +qty            +0

Sell cost basis defaults to the sell's own price, which only approximates
average-cost accounting. The "average_cost" method removes qty * current
average cost instead. Neither tracks individual lots.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from foliotrack.core.exceptions import UnsupportedTransactionKind
from foliotrack.models.transaction import TransactionKind

ZERO = Decimal("0")

SELL_AT_TRANSACTION_PRICE = "transaction_price"
SELL_AT_AVERAGE_COST = "average_cost"


@dataclass(frozen=True)
class HoldingsDelta:
    quantity: Decimal
    cost: Decimal


@dataclass(frozen=True)
class DividendRecord:
    amount_per_share: Decimal
    total_amount: Decimal
    currency: str
    is_reinvested: bool


@dataclass(frozen=True)
class LedgerEffect:
    """Everything one transaction changes. Unset parts are left untouched."""
    holdings: Optional[HoldingsDelta] = None
    cash: Optional[Decimal] = None
    split_ratio: Optional[Decimal] = None
    dividend: Optional[DividendRecord] = None


def _buy(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    outlay = txn.total_amount + txn.fee_amount
    return LedgerEffect(holdings=HoldingsDelta(txn.quantity, outlay), cash=-outlay)


def _sell(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    if sell_method == SELL_AT_AVERAGE_COST:
        removed_cost = txn.quantity * average_cost
    else:
        removed_cost = txn.quantity * txn.price_per_unit
    return LedgerEffect(
        holdings=HoldingsDelta(-txn.quantity, -removed_cost),
        cash=txn.total_amount - txn.fee_amount,
    )


def _deposit(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    return LedgerEffect(cash=txn.total_amount)


def _withdrawal(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    return LedgerEffect(cash=-(txn.total_amount + txn.fee_amount))


def _dividend(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    # A positive quantity is the only reinvestment (DRIP) signal
    reinvested = txn.quantity > ZERO
    record = DividendRecord(
        amount_per_share=txn.price_per_unit,
        total_amount=txn.total_amount,
        currency=txn.currency,
        is_reinvested=reinvested,
    )
    if reinvested:
        return LedgerEffect(holdings=HoldingsDelta(txn.quantity, txn.total_amount), dividend=record)
    return LedgerEffect(cash=txn.total_amount, dividend=record)


def _transfer_in(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    return LedgerEffect(holdings=HoldingsDelta(txn.quantity, txn.total_amount))


def _transfer_out(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    return LedgerEffect(holdings=HoldingsDelta(-txn.quantity, -txn.total_amount))


def _split(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    # quantity carries the ratio: 2 for a 2-for-1 split
    return LedgerEffect(split_ratio=txn.quantity)


def _free(txn: Any, sell_method: str, average_cost: Decimal) -> LedgerEffect:
    return LedgerEffect(holdings=HoldingsDelta(txn.quantity, ZERO))


EffectRule = Callable[[Any, str, Decimal], LedgerEffect]

EFFECT_RULES: Dict[TransactionKind, EffectRule] = {
    TransactionKind.BUY: _buy,
    TransactionKind.SELL: _sell,
    TransactionKind.DEPOSIT: _deposit,
    TransactionKind.WITHDRAWAL: _withdrawal,
    TransactionKind.DIVIDEND: _dividend,
    TransactionKind.TRANSFER_IN: _transfer_in,
    TransactionKind.TRANSFER_OUT: _transfer_out,
    TransactionKind.SPLIT: _split,
    TransactionKind.FREE: _free,
}


def kind_of(txn: Any) -> TransactionKind:
    """Resolve a transaction's kind, raising UnsupportedTransactionKind for unknown values."""
    raw = getattr(txn, "transaction_type", None)
    if raw is None:
        raw = getattr(txn, "kind", None)
    if isinstance(raw, TransactionKind):
        return raw
    try:
        return TransactionKind(raw)
    except ValueError:
        raise UnsupportedTransactionKind(raw) from None


def needs_average_cost(kind: TransactionKind, sell_method: str) -> bool:
    """Whether the rule for ``kind`` reads the holding's current average cost."""
    return kind == TransactionKind.SELL and sell_method == SELL_AT_AVERAGE_COST


def compute_effect(
    txn: Any,
    sell_method: str = SELL_AT_TRANSACTION_PRICE,
    average_cost: Optional[Decimal] = None,
    rules: Optional[Dict[TransactionKind, EffectRule]] = None,
) -> LedgerEffect:
    """
    Compute the effect of ``txn``.

    ``txn`` is anything exposing kind/transaction_type, quantity,
    price_per_unit, total_amount, fee_amount and currency: a validated
    request or a stored Transaction row.
    """
    kind = kind_of(txn)
    rule = (rules if rules is not None else EFFECT_RULES).get(kind)
    if rule is None:
        raise UnsupportedTransactionKind(kind.value)
    return rule(txn, sell_method, average_cost if average_cost is not None else ZERO)
