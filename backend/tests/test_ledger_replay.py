from decimal import Decimal
from types import SimpleNamespace

from sqlalchemy import update

from conftest import txn
from foliotrack.models import Holding
from foliotrack.services.ledger_engine import LedgerEngine
from foliotrack.services.ledger_replay import (
    LedgerState,
    ReplayedHolding,
    diff_state,
    replay_transactions,
)

D = Decimal


def row(kind, asset_id=1, platform_id=1, quantity="0", price="0", total=None, fee="0", currency="USD"):
    quantity, price = D(quantity), D(price)
    return SimpleNamespace(
        portfolio_id=1,
        asset_id=asset_id,
        platform_id=platform_id,
        transaction_type=kind,
        quantity=quantity,
        price_per_unit=price,
        total_amount=D(total) if total is not None else quantity * price,
        fee_amount=D(fee),
        currency=currency,
    )


def test_replay_folds_in_order():
    state = replay_transactions([
        row("deposit", asset_id=None, total="5000"),
        row("buy", quantity="10", price="100", fee="5"),
        row("sell", quantity="4", price="120"),
    ])

    holding = state.holdings[(1, 1, 1)]
    assert holding.quantity == D("6")
    assert holding.total_cost_basis == D("525")
    assert state.cash[(1, 1, "USD")] == D("5000") - D("1005") + D("480")


def test_replay_split_applies_to_all_platforms():
    state = replay_transactions([
        row("buy", platform_id=1, quantity="3", price="10"),
        row("buy", platform_id=2, quantity="1", price="10"),
        row("buy", asset_id=2, quantity="7", price="1"),
        row("split", quantity="3"),
    ])

    assert state.holdings[(1, 1, 1)].quantity == D("9")
    assert state.holdings[(1, 1, 2)].quantity == D("3")
    assert state.holdings[(1, 2, 1)].quantity == D("7")
    assert state.holdings[(1, 1, 1)].average_cost_basis == D("30") / D("9")


def test_replay_average_cost_sell():
    state = replay_transactions(
        [
            row("buy", quantity="10", price="100"),
            row("buy", quantity="10", price="200"),
            row("sell", quantity="5", price="300"),
        ],
        sell_method="average_cost",
    )
    assert state.holdings[(1, 1, 1)].total_cost_basis == D("2250")


def test_diff_treats_missing_rows_as_zero():
    expected = LedgerState(holdings={(1, 1, 1): ReplayedHolding(D("0"), D("0"))})
    assert diff_state(expected, {}, {}) == []


def test_diff_reports_each_column():
    expected = LedgerState(
        holdings={(1, 1, 1): ReplayedHolding(D("10"), D("1000"))},
        cash={(1, 1, "USD"): D("-1000")},
    )
    found = diff_state(
        expected,
        {(1, 1, 1): (D("11"), D("1000"))},
        {(1, 1, "USD"): D("-999"), (1, 1, "EUR"): D("5")},
    )
    assert {(d.table, d.column) for d in found} == {
        ("holdings", "quantity"),
        ("cash_balances", "balance"),
    }
    assert len(found) == 3


async def test_stored_state_matches_replay(ledger, seed):
    history = [
        txn(seed, "deposit", total_amount="10000"),
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="10", price_per_unit="150", fee_amount="5"),
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="4", price_per_unit="100",
            platform_id=seed.other_platform_id),
        txn(seed, "dividend", asset_id=seed.aapl_id, total_amount="12"),
        txn(seed, "split", asset_id=seed.aapl_id, quantity="2"),
        txn(seed, "sell", asset_id=seed.aapl_id, quantity="6", price_per_unit="90", fee_amount="1"),
        txn(seed, "transfer_in", asset_id=seed.msft_id, quantity="3", total_amount="900"),
        txn(seed, "free", asset_id=seed.msft_id, quantity="1"),
        txn(seed, "withdrawal", total_amount="250"),
    ]
    for item in history:
        await ledger.process_transaction(item)

    assert await ledger.verify_portfolio(seed.portfolio_id) == []


async def test_stored_state_matches_replay_with_average_cost(session_factory, seed):
    ledger = LedgerEngine(session_factory=session_factory, sell_cost_basis_method="average_cost")
    for item in [
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="10", price_per_unit="100"),
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="5", price_per_unit="130"),
        txn(seed, "sell", asset_id=seed.aapl_id, quantity="6", price_per_unit="150"),
    ]:
        await ledger.process_transaction(item)

    assert await ledger.verify_portfolio(seed.portfolio_id) == []


async def test_verify_detects_tampered_holding(ledger, seed, session_factory):
    await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="10", price_per_unit="150")
    )
    async with session_factory() as session:
        await session.execute(update(Holding).values(quantity=D("9")))
        await session.commit()

    found = await ledger.verify_portfolio(seed.portfolio_id)
    assert len(found) == 1
    assert found[0].column == "quantity"
    assert found[0].expected == D("10")
