import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./foliotrack-test.db")
os.environ.setdefault("METRICS_REDIS_ENABLED", "false")

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import foliotrack.models  # noqa: F401  (registers mappers)
from foliotrack.core.database import Base, build_engine
from foliotrack.core.exceptions import PriceLookupFailure
from foliotrack.core.metrics import metrics
from foliotrack.models import Asset, CashBalance, Holding, Platform, Portfolio
from foliotrack.services.ledger_engine import LedgerEngine
from foliotrack.services.market_data import MarketDataProvider, PriceQuote
from foliotrack.services.portfolio_service import PortfolioService
from foliotrack.services.price_service import PriceService

USER_ID = "user-1"


class FakeProvider(MarketDataProvider):
    """Serves fixed prices; symbols listed in ``failing`` (or unknown) fail."""

    name = "fake"

    def __init__(self, prices=None, failing=()):
        self.prices = {k: Decimal(str(v)) for k, v in (prices or {}).items()}
        self.failing = set(failing)
        self.calls = []

    async def get_price(self, symbol, exchange=None):
        self.calls.append((symbol, exchange))
        if symbol in self.failing or symbol not in self.prices:
            raise PriceLookupFailure(symbol, self.name, "no quote")
        return PriceQuote(
            symbol=symbol,
            price=self.prices[symbol],
            currency="USD",
            timestamp=datetime.now(timezone.utc),
            data_source=self.name,
        )


@pytest.fixture(autouse=True)
def clear_metrics():
    metrics.enable()
    metrics.clear_buffer()
    yield
    metrics.clear_buffer()


@pytest.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
def ledger(session_factory):
    return LedgerEngine(
        session_factory=session_factory,
        sell_cost_basis_method="transaction_price",
        reject_oversell=False,
        reject_negative_cash=False,
    )


@pytest.fixture
def fake_provider():
    return FakeProvider(prices={"AAPL": 200, "MSFT": 400, "BITCOIN": 50000})


@pytest.fixture
def price_service(fake_provider):
    return PriceService(
        providers={"yfinance": fake_provider, "eodhd": fake_provider, "coingecko": fake_provider},
        timeout_sec=1.0,
    )


@pytest.fixture
def portfolio_service(session_factory, price_service):
    return PortfolioService(session_factory=session_factory, price_service=price_service)


@pytest.fixture
async def seed(session_factory):
    """One portfolio, two platforms and two stock assets."""
    async with session_factory() as session:
        portfolio = Portfolio(user_id=USER_ID, name="Main", base_currency="USD")
        broker = Platform(name="Broker")
        bank = Platform(name="Bank")
        aapl = Asset(symbol="AAPL", name="Apple Inc.", asset_type="stock", data_source="yfinance", currency="USD")
        msft = Asset(symbol="MSFT", name="Microsoft", asset_type="stock", data_source="eodhd", exchange="US", currency="USD")
        session.add_all([portfolio, broker, bank, aapl, msft])
        await session.commit()
        return SimpleNamespace(
            user_id=USER_ID,
            portfolio_id=portfolio.id,
            platform_id=broker.id,
            other_platform_id=bank.id,
            aapl_id=aapl.id,
            msft_id=msft.id,
        )


def txn(seed, kind, **fields):
    """Build a raw transaction payload against the seeded portfolio."""
    data = {
        "user_id": seed.user_id,
        "portfolio_id": seed.portfolio_id,
        "platform_id": seed.platform_id,
        "transaction_type": kind,
        "currency": "USD",
        "transaction_date": "2024-03-01",
    }
    data.update(fields)
    return data


async def get_holding(session_factory, portfolio_id, asset_id, platform_id):
    async with session_factory() as session:
        result = await session.execute(
            select(Holding).where(
                Holding.portfolio_id == portfolio_id,
                Holding.asset_id == asset_id,
                Holding.platform_id == platform_id,
            )
        )
        return result.scalar_one_or_none()


async def get_cash(session_factory, portfolio_id, platform_id, currency="USD"):
    async with session_factory() as session:
        result = await session.execute(
            select(CashBalance).where(
                CashBalance.portfolio_id == portfolio_id,
                CashBalance.platform_id == platform_id,
                CashBalance.currency == currency,
            )
        )
        return result.scalar_one_or_none()
