from decimal import Decimal

import httpx
import pytest

from conftest import USER_ID, txn
from foliotrack.api.deps import (
    get_asset_service,
    get_ledger_engine,
    get_portfolio_service,
    get_price_service,
)
from foliotrack.api.main import app
from foliotrack.services.asset_service import AssetService

D = Decimal


@pytest.fixture
async def client(ledger, portfolio_service, price_service, session_factory):
    app.dependency_overrides[get_ledger_engine] = lambda: ledger
    app.dependency_overrides[get_portfolio_service] = lambda: portfolio_service
    app.dependency_overrides[get_price_service] = lambda: price_service
    app.dependency_overrides[get_asset_service] = lambda: AssetService(session_factory=session_factory)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport, base_url="http://test", headers={"X-User-Id": USER_ID}
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def foreign_portfolio(portfolio_service):
    return await portfolio_service.create_portfolio("user-2", "Someone else's")


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert resp.json()["database"] == "sqlite"


async def test_requires_identity(client):
    resp = await client.get("/api/v1/portfolios", headers={"X-User-Id": ""})
    assert resp.status_code == 401


# ---------- Portfolios ----------

async def test_portfolio_crud(client):
    resp = await client.post("/api/v1/portfolios", json={"name": "Growth", "base_currency": "usd"})
    assert resp.status_code == 201
    created = resp.json()
    assert created["user_id"] == USER_ID
    assert created["base_currency"] == "USD"
    pid = created["id"]

    resp = await client.get("/api/v1/portfolios")
    assert [p["name"] for p in resp.json()] == ["Growth"]

    resp = await client.put(f"/api/v1/portfolios/{pid}", json={"description": "tech heavy"})
    assert resp.status_code == 200
    assert resp.json()["description"] == "tech heavy"

    resp = await client.delete(f"/api/v1/portfolios/{pid}")
    assert resp.json() == {"deleted": True, "portfolio_id": pid}

    resp = await client.get(f"/api/v1/portfolios/{pid}")
    assert resp.status_code == 404


async def test_create_portfolio_validation(client):
    resp = await client.post("/api/v1/portfolios", json={"name": "X", "base_currency": "dollars"})
    assert resp.status_code == 400


async def test_update_without_fields(client, seed):
    resp = await client.put(f"/api/v1/portfolios/{seed.portfolio_id}", json={})
    assert resp.status_code == 400


async def test_foreign_portfolio_is_hidden(client, foreign_portfolio):
    for method, path in [
        ("GET", ""),
        ("GET", "/summary"),
        ("PUT", ""),
        ("DELETE", ""),
        ("POST", "/snapshot"),
        ("GET", "/verify"),
    ]:
        resp = await client.request(
            method, f"/api/v1/portfolios/{foreign_portfolio.id}{path}",
            json={"name": "mine now"} if method == "PUT" else None,
        )
        assert resp.status_code == 404, (method, path)


async def test_summary_snapshot_and_performance(client, ledger, seed):
    await ledger.process_transaction(txn(seed, "deposit", total_amount="2000"))
    await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="5", price_per_unit="100")
    )

    resp = await client.get(f"/api/v1/portfolios/{seed.portfolio_id}/summary")
    assert resp.status_code == 200
    body = resp.json()
    assert body["holdings"][0]["symbol"] == "AAPL"
    assert D(body["holdings"][0]["current_value"]) == D("1000")
    assert D(body["summary"]["total_portfolio_value"]) == D("2500")

    resp = await client.post(f"/api/v1/portfolios/{seed.portfolio_id}/snapshot")
    assert resp.status_code == 201
    assert D(resp.json()["total_value"]) == D("2500")

    resp = await client.get(f"/api/v1/portfolios/{seed.portfolio_id}/performance", params={"period": "7d"})
    assert len(resp.json()) == 1

    resp = await client.get(f"/api/v1/portfolios/{seed.portfolio_id}/performance", params={"period": "5y"})
    assert resp.status_code == 400


async def test_verify(client, ledger, seed):
    await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="5", price_per_unit="100")
    )
    resp = await client.get(f"/api/v1/portfolios/{seed.portfolio_id}/verify")
    assert resp.json() == {"portfolio_id": seed.portfolio_id, "consistent": True, "discrepancies": []}


# ---------- Transactions ----------

async def test_create_transaction(client, seed):
    resp = await client.post("/api/v1/transactions", json={
        "portfolio_id": seed.portfolio_id,
        "platform_id": seed.platform_id,
        "kind": "buy",
        "asset_id": seed.aapl_id,
        "quantity": "10",
        "price_per_unit": "150",
        "fees": "5",
    })
    assert resp.status_code == 201
    body = resp.json()
    assert body["transaction_type"] == "buy"
    assert body["user_id"] == USER_ID
    assert D(body["total_amount"]) == D("1500")
    assert D(body["fee_amount"]) == D("5")


@pytest.mark.parametrize("overrides", [
    {"transaction_type": "short_sell"},
    {"quantity": "-1"},
    {"asset_id": None},
    {"currency": "DOLLAR"},
])
async def test_create_transaction_rejects_bad_input(client, seed, overrides):
    body = {
        "portfolio_id": seed.portfolio_id,
        "platform_id": seed.platform_id,
        "transaction_type": "buy",
        "asset_id": seed.aapl_id,
        "quantity": "1",
        "price_per_unit": "1",
    }
    body.update(overrides)
    resp = await client.post("/api/v1/transactions", json=body)
    assert resp.status_code == 400


async def test_transaction_on_foreign_portfolio(client, seed, foreign_portfolio):
    resp = await client.post("/api/v1/transactions", json={
        "portfolio_id": foreign_portfolio.id,
        "platform_id": seed.platform_id,
        "transaction_type": "deposit",
        "total_amount": "10",
    })
    assert resp.status_code == 404


async def test_cash_endpoint(client, seed):
    resp = await client.post("/api/v1/transactions/cash", json={
        "portfolio_id": seed.portfolio_id,
        "platform_id": seed.platform_id,
        "transaction_type": "deposit",
        "asset_id": seed.aapl_id,
        "total_amount": "750",
    })
    assert resp.status_code == 201
    assert resp.json()["asset_id"] is None

    resp = await client.post("/api/v1/transactions/cash", json={
        "portfolio_id": seed.portfolio_id,
        "platform_id": seed.platform_id,
        "transaction_type": "buy",
        "total_amount": "750",
    })
    assert resp.status_code == 400


async def test_asset_endpoint_requires_asset(client, seed):
    resp = await client.post("/api/v1/transactions/asset", json={
        "portfolio_id": seed.portfolio_id,
        "platform_id": seed.platform_id,
        "transaction_type": "buy",
        "quantity": "1",
        "price_per_unit": "1",
    })
    assert resp.status_code == 400


async def test_bulk_reports_failures_by_index(client, seed):
    base = {"portfolio_id": seed.portfolio_id, "platform_id": seed.platform_id}
    resp = await client.post("/api/v1/transactions/bulk", json={"transactions": [
        {**base, "transaction_type": "deposit", "total_amount": "100"},
        {**base, "transaction_type": "buy", "quantity": "1"},
        {**base, "transaction_type": "withdrawal", "total_amount": "40"},
    ]})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert [t["transaction_type"] for t in body["data"]] == ["deposit", "withdrawal"]
    assert [e["index"] for e in body["errors"]] == [1]


async def test_bulk_checks_every_portfolio(client, seed, foreign_portfolio):
    resp = await client.post("/api/v1/transactions/bulk", json={"transactions": [
        {"portfolio_id": seed.portfolio_id, "platform_id": seed.platform_id,
         "transaction_type": "deposit", "total_amount": "1"},
        {"portfolio_id": foreign_portfolio.id, "platform_id": seed.platform_id,
         "transaction_type": "deposit", "total_amount": "1"},
    ]})
    assert resp.status_code == 404


async def test_history_and_single_transaction(client, ledger, seed):
    await ledger.process_transaction(txn(seed, "deposit", total_amount="500", transaction_date="2024-01-01"))
    bought = await ledger.process_transaction(
        txn(seed, "buy", asset_id=seed.aapl_id, quantity="1", price_per_unit="100", transaction_date="2024-02-01")
    )

    resp = await client.get("/api/v1/transactions", params={"portfolio_id": seed.portfolio_id})
    history = resp.json()
    assert [h["transaction_type"] for h in history] == ["buy", "deposit"]
    assert history[0]["symbol"] == "AAPL"
    assert history[0]["platform_name"] == "Broker"
    assert history[1]["symbol"] is None

    resp = await client.get(
        "/api/v1/transactions", params={"portfolio_id": seed.portfolio_id, "transaction_type": "deposit"}
    )
    assert len(resp.json()) == 1

    resp = await client.get(f"/api/v1/transactions/{bought.id}")
    assert resp.status_code == 200
    assert resp.json()["id"] == bought.id

    resp = await client.get("/api/v1/transactions/9999")
    assert resp.status_code == 404


async def test_foreign_transaction_is_hidden(client, ledger, seed, foreign_portfolio):
    theirs = await ledger.process_transaction({
        **txn(seed, "deposit", total_amount="10"),
        "user_id": "user-2",
        "portfolio_id": foreign_portfolio.id,
    })
    resp = await client.get(f"/api/v1/transactions/{theirs.id}")
    assert resp.status_code == 404


async def test_transactions_are_append_only(client, ledger, seed):
    recorded = await ledger.process_transaction(txn(seed, "deposit", total_amount="10"))

    resp = await client.put(f"/api/v1/transactions/{recorded.id}", json={"total_amount": "20"})
    assert resp.status_code == 501

    resp = await client.delete(f"/api/v1/transactions/{recorded.id}")
    assert resp.status_code == 501


# ---------- Assets, platforms, metrics ----------

async def test_asset_create_search_and_lookup(client, seed):
    resp = await client.post("/api/v1/assets", json={
        "symbol": "bitcoin", "name": "Bitcoin", "asset_type": "crypto", "data_source": "coingecko",
    })
    assert resp.status_code == 201
    assert resp.json()["symbol"] == "BITCOIN"

    resp = await client.post("/api/v1/assets", json={"symbol": "BITCOIN", "data_source": "coingecko"})
    assert resp.status_code == 400

    resp = await client.get("/api/v1/assets", params={"q": "apple"})
    assert [a["symbol"] for a in resp.json()] == ["AAPL"]

    resp = await client.get("/api/v1/assets/msft")
    assert resp.json()["id"] == seed.msft_id

    resp = await client.get("/api/v1/assets/NOPE")
    assert resp.status_code == 404


async def test_asset_price(client, seed):
    resp = await client.get("/api/v1/assets/AAPL/price")
    assert resp.status_code == 200
    assert D(resp.json()["price"]) == D("200")

    await client.post("/api/v1/assets", json={"symbol": "ZZZ", "data_source": "yfinance"})
    resp = await client.get("/api/v1/assets/ZZZ/price")
    assert resp.status_code == 502

    resp = await client.get("/api/v1/assets/NOPE/price")
    assert resp.status_code == 404


async def test_bulk_prices(client):
    resp = await client.post("/api/v1/assets/prices/bulk", json={"assets": [
        {"symbol": "MSFT", "data_source": "eodhd", "exchange": "US"},
        {"symbol": "ZZZ"},
    ]})
    first, second = resp.json()
    assert D(first["price"]["price"]) == D("400")
    assert first["error"] is None
    assert second["price"] is None
    assert "ZZZ" in second["error"]


async def test_platforms(client, seed):
    resp = await client.post("/api/v1/platforms", json={"name": "Wallet"})
    assert resp.status_code == 201

    resp = await client.get("/api/v1/platforms")
    assert [p["name"] for p in resp.json()] == ["Bank", "Broker", "Wallet"]

    resp = await client.post("/api/v1/platforms", json={"name": "Wallet"})
    assert resp.status_code == 400


async def test_metrics_endpoints(client, seed):
    await client.post("/api/v1/transactions/cash", json={
        "portfolio_id": seed.portfolio_id,
        "platform_id": seed.platform_id,
        "transaction_type": "deposit",
        "total_amount": "25",
    })

    resp = await client.get("/api/v1/metrics/summary")
    summary = resp.json()
    assert summary["transactions_processed"] == 1
    assert summary["amount_processed"] == 25.0

    resp = await client.get("/api/v1/metrics/events", params={"category": "ledger"})
    events = resp.json()
    assert events[0]["event_type"] == "transaction_processed"
    assert events[0]["portfolio_id"] == seed.portfolio_id
