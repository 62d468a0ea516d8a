from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from conftest import FakeProvider, txn
from foliotrack.core.exceptions import PortfolioNotFound, ValidationError
from foliotrack.core.metrics import metrics
from foliotrack.models import (
    CashBalance,
    DividendPayment,
    Holding,
    Portfolio,
    PortfolioSnapshot,
    StockSplit,
    Transaction,
)
from foliotrack.services.portfolio_service import PortfolioService, percent_of
from foliotrack.services.price_service import PriceService

D = Decimal


async def buy_both(ledger, seed):
    await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="10", price_per_unit="150", fee_amount="5")
    )
    await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.msft_id, quantity="2", price_per_unit="300")
    )


async def count_rows(session_factory, model, portfolio_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(model).where(model.portfolio_id == portfolio_id)
        )
        return result.scalar_one()


def test_percent_of_zero_base():
    assert percent_of(D("10"), D("0")) == D("0")
    assert percent_of(D("25"), D("200")) == D("12.5")


async def test_create_and_get(portfolio_service):
    created = await portfolio_service.create_portfolio("user-9", "  Retirement ", "long term", "eur")
    assert created.name == "Retirement"
    assert created.base_currency == "EUR"

    fetched = await portfolio_service.get_portfolio(created.id)
    assert fetched.user_id == "user-9"
    assert fetched.description == "long term"


async def test_create_defaults_currency(portfolio_service):
    created = await portfolio_service.create_portfolio("user-9", "Play money")
    assert created.base_currency == "USD"


@pytest.mark.parametrize("name,currency,field", [
    ("", "USD", "name"),
    ("   ", "USD", "name"),
    ("Main", "DOLLARS", "base_currency"),
])
async def test_create_validation(portfolio_service, name, currency, field):
    with pytest.raises(ValidationError) as exc:
        await portfolio_service.create_portfolio("user-9", name, None, currency)
    assert exc.value.field == field


async def test_get_missing_portfolio(portfolio_service):
    with pytest.raises(PortfolioNotFound):
        await portfolio_service.get_portfolio(999)


async def test_update_allowed_fields(portfolio_service, seed):
    updated = await portfolio_service.update_portfolio(
        seed.portfolio_id, {"name": "Renamed", "base_currency": "gbp", "user_id": "someone-else"}
    )
    assert updated.name == "Renamed"
    assert updated.base_currency == "GBP"
    assert updated.user_id == seed.user_id


async def test_update_without_valid_fields(portfolio_service, seed):
    with pytest.raises(ValidationError) as exc:
        await portfolio_service.update_portfolio(seed.portfolio_id, {"user_id": "x"})
    assert exc.value.field == "fields"


async def test_update_missing_portfolio(portfolio_service):
    with pytest.raises(PortfolioNotFound):
        await portfolio_service.update_portfolio(999, {"name": "x"})


async def test_list_user_portfolios_aggregates(portfolio_service, ledger, seed):
    await buy_both(ledger, seed)
    second = await portfolio_service.create_portfolio(seed.user_id, "Empty")
    await portfolio_service.create_portfolio("another-user", "Not mine")

    items = await portfolio_service.list_user_portfolios(seed.user_id)

    assert [i.id for i in items] == [seed.portfolio_id, second.id]
    assert items[0].holdings_count == 2
    assert items[0].total_invested == D("2105")
    assert items[1].holdings_count == 0
    assert items[1].total_invested == D("0")


async def test_summary_values_holdings_and_cash(portfolio_service, ledger, seed):
    await ledger.process_transaction(txn(seed, "deposit", total_amount="5000"))
    await buy_both(ledger, seed)

    summary = await portfolio_service.get_portfolio_summary(seed.portfolio_id)

    assert [h.symbol for h in summary.holdings] == ["AAPL", "MSFT"]
    aapl, msft = summary.holdings
    assert aapl.current_price == D("200")
    assert aapl.current_value == D("2000")
    assert aapl.total_gain_loss == D("495")
    assert msft.current_value == D("800")
    assert msft.price_error is None

    totals = summary.summary
    assert totals.total_invested == D("2105")
    assert totals.total_current_value == D("2800")
    assert totals.total_cash == D("2895")
    assert totals.total_portfolio_value == D("5695")
    assert totals.total_gain_loss == D("695")
    assert totals.holdings_count == 2


async def test_summary_degrades_failed_prices(session_factory, ledger, seed):
    provider = FakeProvider(prices={"AAPL": 200, "MSFT": 400}, failing=("MSFT",))
    service = PortfolioService(
        session_factory=session_factory,
        price_service=PriceService(providers={"yfinance": provider, "eodhd": provider}),
    )
    await buy_both(ledger, seed)

    summary = await service.get_portfolio_summary(seed.portfolio_id)

    aapl, msft = summary.holdings
    assert aapl.current_value == D("2000")
    assert aapl.price_error is None
    assert msft.current_price == D("0")
    assert msft.current_value == D("0")
    assert msft.total_gain_loss == D("-600")
    assert "MSFT" in msft.price_error
    assert summary.summary.total_current_value == D("2000")

    failures = [e for e in metrics.get_buffer() if e.event_type == "price_lookup_failed"]
    assert len(failures) == 1
    assert failures[0].metadata["symbol"] == "MSFT"


async def test_summary_skips_closed_positions(portfolio_service, ledger, seed, fake_provider):
    await buy_both(ledger, seed)
    await ledger.process_transaction(
        txn(seed, "sell", asset_id=seed.msft_id, quantity="2", price_per_unit="300")
    )

    summary = await portfolio_service.get_portfolio_summary(seed.portfolio_id)

    assert [h.symbol for h in summary.holdings] == ["AAPL"]
    assert ("MSFT", "US") not in fake_provider.calls


async def test_summary_fetches_each_asset_once(portfolio_service, ledger, seed, fake_provider):
    await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="1", price_per_unit="100")
    )
    await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="1", price_per_unit="100",
            platform_id=seed.other_platform_id)
    )

    summary = await portfolio_service.get_portfolio_summary(seed.portfolio_id)

    assert len(summary.holdings) == 2
    assert fake_provider.calls == [("AAPL", None)]


async def test_summary_of_empty_portfolio(portfolio_service, seed):
    summary = await portfolio_service.get_portfolio_summary(seed.portfolio_id)
    assert summary.holdings == []
    assert summary.summary.total_percent_gain_loss == D("0")


async def test_snapshot_is_idempotent_per_day(portfolio_service, session_factory, ledger, seed, fake_provider):
    await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="10", price_per_unit="150", fee_amount="5")
    )
    day = date(2024, 3, 1)

    first = await portfolio_service.create_portfolio_snapshot(seed.portfolio_id, day)
    assert first.total_value == D("495")

    fake_provider.prices["AAPL"] = D("300")
    second = await portfolio_service.create_portfolio_snapshot(seed.portfolio_id, day)

    assert second.id == first.id
    assert second.total_value == D("1495")
    assert second.holdings_count == 1
    assert await count_rows(session_factory, PortfolioSnapshot, seed.portfolio_id) == 1

    created = [e for e in metrics.get_buffer() if e.category == "snapshot"]
    assert len(created) == 2


async def test_snapshot_of_missing_portfolio(portfolio_service):
    with pytest.raises(PortfolioNotFound):
        await portfolio_service.create_portfolio_snapshot(999)


async def test_performance_periods(portfolio_service, seed):
    today = date.today()
    for days_ago in (400, 100, 20, 5, 0):
        await portfolio_service.create_portfolio_snapshot(seed.portfolio_id, today - timedelta(days=days_ago))

    async def dates(period):
        points = await portfolio_service.get_portfolio_performance(seed.portfolio_id, period)
        return [p.snapshot_date for p in points]

    assert await dates("1d") == [today]
    assert await dates("7d") == [today - timedelta(days=5), today]
    assert len(await dates("1m")) == 3
    assert len(await dates("3m")) == 3
    assert len(await dates("1y")) == 4
    all_dates = await dates("all")
    assert all_dates == sorted(all_dates)
    assert len(all_dates) == 5


async def test_performance_rejects_unknown_period(portfolio_service, seed):
    with pytest.raises(ValidationError) as exc:
        await portfolio_service.get_portfolio_performance(seed.portfolio_id, "2w")
    assert exc.value.field == "period"


async def test_delete_cascades(portfolio_service, session_factory, ledger, seed):
    await ledger.process_transaction(txn(seed, "deposit", total_amount="1000"))
    await buy_both(ledger, seed)
    await ledger.process_transaction(txn(seed, "dividend", asset_id=seed.aapl_id, total_amount="5"))
    await ledger.process_transaction(txn(seed, "split", asset_id=seed.aapl_id, quantity="2"))
    await portfolio_service.create_portfolio_snapshot(seed.portfolio_id)

    other = await portfolio_service.create_portfolio(seed.user_id, "Keep me")

    assert await portfolio_service.delete_portfolio(seed.portfolio_id) is True

    for model in (PortfolioSnapshot, DividendPayment, StockSplit, Holding, CashBalance, Transaction):
        assert await count_rows(session_factory, model, seed.portfolio_id) == 0
    async with session_factory() as session:
        assert await session.get(Portfolio, seed.portfolio_id) is None
        assert await session.get(Portfolio, other.id) is not None


async def test_delete_missing_portfolio(portfolio_service):
    with pytest.raises(PortfolioNotFound):
        await portfolio_service.delete_portfolio(999)


async def test_list_portfolio_ids(portfolio_service, seed):
    other = await portfolio_service.create_portfolio("user-2", "Second")
    assert await portfolio_service.list_portfolio_ids() == [seed.portfolio_id, other.id]
