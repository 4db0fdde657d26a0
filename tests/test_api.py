"""
Tests for the Guardian HTTP API.

Runs the FastAPI app against an in-memory SQLite database.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import EURUSD_SPEC
from database.engine import configure_engine, create_database_engine, reset_engine
from guardian_api.main import app
from trade_risk_guardian.models import Base


SETUP_BODY = {
    "account_size": 10000,
    "over_roll_max_percent": 10,
    "daily_max_percent": 5,
    "user_risk_per_trade_percent": 1,
    "user_risk_per_asset_percent": 3,
    "max_orders_per_asset": 3,
}

ORDER_BODY = {
    "symbol": "EURUSD",
    "direction": "BUY",
    "entry_price": 1.1000,
    "stop_loss": 1.0950,
    "take_profit_1": 1.1100,
    "risk_percent": 1.0,
}


@pytest.fixture
def client():
    engine = create_database_engine("sqlite://")
    Base.metadata.create_all(engine)
    configure_engine(engine)
    yield TestClient(app)
    reset_engine()


@pytest.fixture
def linked(client):
    """Account id and agent key for a linked account."""
    response = client.post("/api/accounts", json={
        "user_id": "user-1",
        "login": "123456",
        "start_balance": 10000,
        "broker": "ICMarkets",
    })
    assert response.status_code == 201
    body = response.json()
    return body["data"]["id"], body["api_key"]


@pytest.fixture
def tradeable(client, linked):
    """Linked account with a locked setup and EURUSD mapped."""
    account_id, api_key = linked
    assert client.post(
        "/api/challenge-setup", json={"account_id": account_id, **SETUP_BODY}
    ).status_code == 201
    assert client.post(
        "/api/mt5/symbols/sync",
        json={"accountLogin": "123456", "symbols": [EURUSD_SPEC]},
        headers={"X-API-Key": api_key},
    ).status_code == 200
    assert client.post("/api/symbols/mapping", json={
        "account_id": account_id,
        "standard_symbol": "EURUSD",
        "broker_symbol": "EURUSD.m",
    }).status_code == 201
    return account_id, api_key


# =============================================================
# TEST: Service endpoints
# =============================================================

class TestServiceEndpoints:

    def test_root_and_health(self, client):
        assert client.get("/").json()["status"] == "ok"

        health = client.get("/health").json()
        assert health["status"] == "OK"
        assert health["validator_count"] == 4


# =============================================================
# TEST: Accounts and setup
# =============================================================

class TestAccountsAndSetup:

    def test_account_created_with_agent_key(self, client, linked):
        account_id, api_key = linked

        assert api_key.startswith("sk_aegis_")
        data = client.get(f"/api/accounts/{account_id}").json()["data"]
        assert data["lock_mode"] == "MEDIUM"

    def test_unknown_account(self, client):
        response = client.get("/api/accounts/nope")

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_lock_mode_update(self, client, linked):
        account_id, _ = linked

        response = client.patch(f"/api/accounts/{account_id}/lock-mode", json={"lock_mode": "HARD"})
        assert response.status_code == 200
        assert response.json()["data"]["lock_mode"] == "HARD"

    def test_bad_lock_mode(self, client, linked):
        account_id, _ = linked

        response = client.patch(f"/api/accounts/{account_id}/lock-mode", json={"lock_mode": "LOOSE"})

        assert response.status_code == 400
        assert response.json()["field"] == "lock_mode"

    def test_delete_account(self, client, linked):
        account_id, api_key = linked

        response = client.delete(f"/api/accounts/{account_id}")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.get(f"/api/accounts/{account_id}").status_code == 404
        assert client.get(
            "/api/mt5/pending-orders", params={"account_login": "123456"},
            headers={"X-API-Key": api_key},
        ).status_code == 401
        assert client.delete(f"/api/accounts/{account_id}").status_code == 404

    def test_setup_created_and_locked(self, client, linked):
        account_id, _ = linked

        response = client.post("/api/challenge-setup", json={"account_id": account_id, **SETUP_BODY})

        assert response.status_code == 201
        body = response.json()
        assert body["data"]["daily_budget_dollars"] == 500.0
        assert body["data"]["status"] == "LOCKED"
        assert body["estimated_tradeable_days"] == 2

    def test_second_setup_conflicts(self, client, tradeable):
        account_id, _ = tradeable

        response = client.post("/api/challenge-setup", json={"account_id": account_id, **SETUP_BODY})
        assert response.status_code == 409

    def test_locked_setup_update_conflicts(self, client, tradeable):
        account_id, _ = tradeable
        body = {**SETUP_BODY, "account_id": account_id, "daily_max_percent": 4}

        response = client.put("/api/challenge-setup", json=body)

        assert response.status_code == 409
        assert "locked" in response.json()["detail"]

    def test_invalid_setup_lists_errors(self, client, linked):
        account_id, _ = linked
        body = {**SETUP_BODY, "account_id": account_id, "user_risk_per_trade_percent": 6}

        response = client.post("/api/challenge-setup", json=body)

        assert response.status_code == 422
        assert any("Risk per trade (6.0%)" in e for e in response.json()["errors"])

    def test_end_challenge(self, client, tradeable):
        account_id, _ = tradeable

        response = client.post("/api/challenge-setup/end", json={"account_id": account_id})

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "ENDED"
        assert client.get("/api/challenge-setup", params={"account_id": account_id}).status_code == 404

    def test_presets(self, client):
        presets = client.get("/api/challenge-setup/presets").json()["data"]
        assert len(presets) > 0


# =============================================================
# TEST: Symbols
# =============================================================

class TestSymbolEndpoints:

    def test_sync_requires_matching_key(self, client, linked):
        _, api_key = linked
        body = {"accountLogin": "123456", "symbols": [EURUSD_SPEC]}

        assert client.post(
            "/api/mt5/symbols/sync", json=body, headers={"X-API-Key": "sk_aegis_wrong"}
        ).status_code == 401
        assert client.post(
            "/api/mt5/symbols/sync",
            json={**body, "accountLogin": "999999"},
            headers={"X-API-Key": api_key},
        ).status_code == 403

    def test_sync_counts(self, client, linked):
        _, api_key = linked
        broken = {"symbol": "BROKEN", "digits": 5}

        response = client.post(
            "/api/mt5/symbols/sync",
            json={"accountLogin": 123456, "symbols": [EURUSD_SPEC, broken]},
            headers={"X-API-Key": api_key},
        )

        body = response.json()
        assert body["created"] == 1
        assert body["skipped"] == 1
        assert body["skipped_symbols"] == ["BROKEN"]

    def test_mapping_to_unsynced_symbol(self, client, linked):
        account_id, _ = linked

        response = client.post("/api/symbols/mapping", json={
            "account_id": account_id,
            "standard_symbol": "GBPUSD",
            "broker_symbol": "GBPUSD.m",
        })

        assert response.status_code == 404
        assert "hint" in response.json()

    def test_list_and_delete_mapping(self, client, tradeable):
        account_id, _ = tradeable

        mappings = client.get(f"/api/symbols/{account_id}/mappings").json()["data"]
        assert [m["broker_symbol"] for m in mappings] == ["EURUSD.m"]
        assert mappings[0]["source"] == "manual"

        params = {"account_id": account_id, "standard_symbol": "EURUSD"}
        assert client.delete("/api/symbols/mapping", params=params).status_code == 200
        assert client.delete("/api/symbols/mapping", params=params).status_code == 404

    def test_suggestions(self, client, tradeable):
        account_id, _ = tradeable

        body = client.get(
            f"/api/symbols/{account_id}/suggestions", params={"symbol": "eurusd"}
        ).json()
        assert body["symbol"] == "EURUSD"
        assert body["data"][0]["broker_symbol"] == "EURUSD.m"


# =============================================================
# TEST: Trades and agent loop
# =============================================================

class TestTradeFlow:

    def test_validate_only(self, client, tradeable):
        account_id, _ = tradeable

        response = client.post("/api/trades/validate", json={"account_id": account_id, **ORDER_BODY})

        assert response.status_code == 200
        assert response.json()["data"]["can_execute"] is True
        assert client.get("/api/trades/orders", params={"account_id": account_id}).json()["data"] == []

    def test_order_authorized(self, client, tradeable):
        account_id, _ = tradeable

        response = client.post("/api/trades/orders", json={"account_id": account_id, **ORDER_BODY})

        assert response.status_code == 201
        order = response.json()["order"]
        assert order["lot_size"] == 0.2
        assert order["symbol"] == "EURUSD.m"
        assert order["status"] == "PENDING"

    def test_order_rejected(self, client, tradeable):
        account_id, _ = tradeable
        body = {"account_id": account_id, **ORDER_BODY, "risk_percent": 2.0}

        response = client.post("/api/trades/orders", json=body)

        assert response.status_code == 422
        data = response.json()
        assert data["authorized"] is False
        assert data["verdict"]["violations"][0]["code"] == "RISK_ABOVE_SETUP_MAX"
        assert data["errors"]

    def test_bad_direction(self, client, tradeable):
        account_id, _ = tradeable
        body = {"account_id": account_id, **ORDER_BODY, "direction": "LONG"}

        assert client.post("/api/trades/orders", json=body).status_code == 400

    def test_agent_round_trip(self, client, tradeable):
        account_id, api_key = tradeable
        headers = {"X-API-Key": api_key}
        order_id = client.post(
            "/api/trades/orders", json={"account_id": account_id, **ORDER_BODY}
        ).json()["order"]["id"]

        pending = client.get(
            "/api/mt5/pending-orders", params={"account_login": "123456"}, headers=headers
        ).json()
        assert pending["orders_count"] == 1
        assert pending["orders"][0]["order_id"] == order_id

        executed = client.post(
            "/api/mt5/order-executed",
            json={"orderId": order_id, "mt5Ticket": 5550001, "executionPrice": 1.1001},
            headers=headers,
        )
        assert executed.status_code == 200
        assert executed.json()["status"] == "ACTIVE"
        assert executed.json()["ticket"] == "5550001"

        closed = client.post(
            "/api/mt5/order-closed",
            json={"mt5Ticket": "5550001", "closeReason": "STOP_LOSS",
                  "closePrice": 1.0950, "finalPnL": -100.0},
            headers=headers,
        )
        assert closed.json()["status"] == "CLOSED"

        setup = client.get("/api/challenge-setup", params={"account_id": account_id}).json()
        assert setup["data"]["current_daily_loss"] == 100.0

    def test_agent_requires_key(self, client, tradeable):
        response = client.post("/api/mt5/order-executed", json={"orderId": "x", "mt5Ticket": 1})
        assert response.status_code == 401

    def test_feedback_for_unknown_order(self, client, tradeable):
        _, api_key = tradeable

        response = client.post(
            "/api/mt5/execution-feedback",
            json={"orderId": "missing", "status": "FAILED"},
            headers={"X-API-Key": api_key},
        )
        assert response.status_code == 404

    def test_cancel_order(self, client, tradeable):
        account_id, _ = tradeable
        order_id = client.post(
            "/api/trades/orders", json={"account_id": account_id, **ORDER_BODY}
        ).json()["order"]["id"]

        url = f"/api/trades/orders/{order_id}/cancel"
        assert client.post(url, params={"account_id": account_id}).status_code == 200
        assert client.post(url, params={"account_id": account_id}).status_code == 409

        canceled = client.get(
            "/api/trades/orders", params={"account_id": account_id, "status": "CANCELED"}
        ).json()["data"]
        assert len(canceled) == 1

    def test_violation_log(self, client, linked):
        _, api_key = linked

        response = client.post(
            "/api/mt5/violation-log",
            json={"accountLogin": "123456", "violationType": "FOMO_ORDER_ATTEMPT"},
            headers={"X-API-Key": api_key},
        )

        assert response.status_code == 200
        assert response.json()["action_taken"] == "BLOCKED"

    def test_patterns(self, client, linked):
        account_id, _ = linked

        response = client.post(
            "/api/trades/patterns",
            json={"account_id": account_id, "now": "2024-01-10T12:00:00"},
        )

        assert response.status_code == 200
        assert response.json()["data"]["detected"] is False
