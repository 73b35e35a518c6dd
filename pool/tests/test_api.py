"""
HTTP Tests for the Pool API

Tests cover:
1. Participant and owner flows over HTTP
2. Error mapping of ledger rejections
3. Read endpoints
"""

import importlib.util
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from pool import api
from pool.service import PoolService


OWNER = "0xowner"
ALICE = "0xalice"
BOB = "0xbob"


@pytest.fixture
def service(monkeypatch):
    service = PoolService()
    service.initialize(OWNER)
    monkeypatch.setattr(api, "pool_service", service)
    return service


@pytest.fixture
def client(service):
    return TestClient(api.app)


def as_caller(identity: str) -> dict:
    return {"X-Caller": identity}


class TestPoolEndpoints:
    """Tests for the main pool flow over HTTP."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_full_flow(self, client):
        r = client.post("/deposit", json={"amount": 1}, headers=as_caller(ALICE))
        assert r.status_code == 201
        assert r.json()["participant"] == ALICE

        r = client.post("/deposit", json={"amount": 2}, headers=as_caller(BOB))
        assert r.status_code == 201

        r = client.post("/reward", json={"amount": 3}, headers=as_caller(OWNER))
        assert r.status_code == 200
        assert r.json()["amount"] == 3

        assert client.get("/balance").json()["balance"] == 6

        position = client.get(f"/participants/{ALICE}").json()
        assert position["deposited"] == 1
        assert position["pending_reward"] == 1

        r = client.post("/withdraw", headers=as_caller(ALICE))
        assert r.status_code == 200
        assert r.json()["deposited"] == 1
        assert r.json()["payout"] == 2

        r = client.post("/withdraw", headers=as_caller(BOB))
        assert r.json()["payout"] == 4

        info = client.get("/pool").json()
        assert info["balance"] == 0
        assert info["total_outstanding"] == 0

        history = client.get("/history").json()
        assert [h["settled"] for h in history] == [True, True]

        events = [e["event"] for e in client.get("/events").json()]
        assert events == ["Deposit", "Deposit", "Reward", "Withdraw", "Withdraw"]

        page = client.get("/events", params={"limit": 2, "offset": 3}).json()
        assert [e["event"] for e in page] == ["Withdraw", "Withdraw"]

    def test_reward_data_endpoint(self, client):
        r = client.get("/reward")
        assert r.json() == {"amount": 0, "time": None}

        client.post("/deposit", json={"amount": 5}, headers=as_caller(ALICE))
        client.post("/reward", json={"amount": 7}, headers=as_caller(OWNER))

        data = client.get("/reward").json()
        assert data["amount"] == 7
        assert data["time"] is not None


class TestErrorMapping:
    """Tests for ledger errors surfaced as HTTP errors."""

    def test_non_owner_reward_forbidden(self, client):
        r = client.post("/reward", json={"amount": 5}, headers=as_caller(ALICE))
        assert r.status_code == 403
        assert r.json()["detail"]["error"] == "NotOwnerError"

    def test_owner_deposit_forbidden(self, client):
        r = client.post("/deposit", json={"amount": 5}, headers=as_caller(OWNER))
        assert r.status_code == 403
        assert r.json()["detail"]["error"] == "NotAParticipantError"

    def test_zero_amount(self, client):
        r = client.post("/deposit", json={"amount": 0}, headers=as_caller(ALICE))
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "ZeroAmountError"

    def test_negative_amount(self, client):
        r = client.post("/deposit", json={"amount": -4}, headers=as_caller(ALICE))
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "InvalidAmountError"

    def test_missing_caller_header(self, client):
        r = client.post("/deposit", json={"amount": 1})
        assert r.status_code == 422

    def test_nothing_deposited(self, client):
        r = client.post("/withdraw", headers=as_caller(ALICE))
        assert r.status_code == 400
        assert r.json()["detail"]["error"] == "NothingDepositedError"

    def test_stopped_pool_is_retryable(self, client):
        r = client.post("/toggle-stopped", headers=as_caller(OWNER))
        assert r.json() == {"stopped": True}

        r = client.post("/deposit", json={"amount": 1}, headers=as_caller(ALICE))
        assert r.status_code == 423
        assert r.json()["detail"]["retryable"] is True

        r = client.post("/toggle-stopped", headers=as_caller(OWNER))
        assert r.json() == {"stopped": False}
        r = client.post("/deposit", json={"amount": 1}, headers=as_caller(ALICE))
        assert r.status_code == 201

    def test_second_initialize_conflict(self, client):
        r = client.post("/initialize", json={"owner": BOB})
        assert r.status_code == 409
        assert client.get("/pool").json()["owner"] == OWNER


class TestUninitializedPool:
    """Tests for a pool that has not been initialized yet."""

    def test_initialize_then_deposit(self, monkeypatch):
        monkeypatch.setattr(api, "pool_service", PoolService())
        client = TestClient(api.app)

        r = client.post("/deposit", json={"amount": 1}, headers=as_caller(ALICE))
        assert r.status_code == 503

        r = client.post("/initialize", json={"owner": OWNER})
        assert r.status_code == 200
        assert r.json()["initialized"] is True

        r = client.post("/deposit", json={"amount": 1}, headers=as_caller(ALICE))
        assert r.status_code == 201


def test_serverless_handler_wraps_app():
    path = Path(__file__).resolve().parents[2] / "api" / "index.py"
    found = importlib.util.spec_from_file_location("pool_serverless_index", path)
    module = importlib.util.module_from_spec(found)
    found.loader.exec_module(module)

    assert module.app is api.app
    assert callable(module.handler)
