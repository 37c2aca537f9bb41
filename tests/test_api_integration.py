"""
Integration tests for the Debt Escrow API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from fastapi.testclient import TestClient

from debt_escrow.api import app
from debt_escrow.api.dependencies import EscrowSystem, set_escrow_system
from debt_escrow.config import EscrowConfig
from debt_escrow.storage import InMemoryStorage

from ledger_fixtures import FakeClock, T0


PAYEE = {"X-Caller-Address": "0xpayee"}
PAYER = {"X-Caller-Address": "0xpayer"}
STRANGER = {"X-Caller-Address": "0xstranger"}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def system(clock):
    """Escrow system on in-memory storage with two registered participants"""
    test_system = EscrowSystem(
        config=EscrowConfig(database_url="memory://", identity_service_url=""),
        storage=InMemoryStorage(),
        clock=clock
    )
    test_system.identity_gateway.register("0xpayee", "42")
    test_system.identity_gateway.register("0xpayer", "7")
    test_system.transfer_ledger.deposit("7", Decimal('100000'))

    set_escrow_system(test_system)
    yield test_system
    set_escrow_system(None)


@pytest.fixture
def client(system):
    return TestClient(app)


def activate(client):
    debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]
    client.post(f"/debts/{debt_id}/principal", json={"amount": "1000"}, headers=PAYER)
    client.post(f"/debts/{debt_id}/interest", json={"amount": "50"}, headers=PAYER)
    return debt_id


class TestHealthEndpoints:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"


class TestDebtFlow:
    """End-to-end debt lifecycle"""

    def test_create_debt(self, client):
        r = client.post("/debts", json={"apr": "0.05", "fee": "1"}, headers=PAYEE)
        assert r.status_code == 201
        data = r.json()
        assert data["id"] == 1
        assert data["payee"] == "42"
        assert data["status"] == "created"
        assert data["accrual_schedule"] == "daily"
        assert data["payment_schedule"] == "monthly"

    def test_caller_header_required(self, client):
        r = client.post("/debts", json={"apr": "0.05"})
        assert r.status_code == 422

    def test_lock_and_release(self, client, system):
        debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]

        r = client.post(f"/debts/{debt_id}/principal", json={"amount": "1000"}, headers=PAYER)
        assert r.status_code == 200
        assert r.json()["status"] == "locked"
        assert Decimal(r.json()["interest"]) == Decimal('50')

        r = client.post(f"/debts/{debt_id}/interest", json={"amount": "50"}, headers=PAYER)
        assert r.status_code == 200
        assert r.json()["owed"] is True
        assert system.transfer_ledger.balance_of("7") == Decimal('99950')

    def test_payment_cycle(self, client, clock):
        debt_id = activate(client)
        clock.set(T0 + timedelta(days=30))

        r = client.get(f"/debts/{debt_id}/claimable")
        assert r.json() == {"debt_id": debt_id, "claimable": "4.10958904", "overdue": False}

        r = client.post(f"/debts/{debt_id}/payments", json={"amount": "4"}, headers=PAYEE)
        assert r.status_code == 200
        assert Decimal(r.json()["interest_paid"]) == Decimal('4')

    def test_schedule_update(self, client):
        debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]
        r = client.put(f"/debts/{debt_id}/payment-schedule",
                       json={"schedule": "weekly"}, headers=PAYEE)
        assert r.status_code == 200
        assert r.json()["payment_schedule"] == "weekly"

    def test_list_debts(self, client):
        client.post("/debts", json={"apr": "0.05"}, headers=PAYEE)
        client.post("/debts", json={"apr": "0.05"}, headers=PAYER)

        assert len(client.get("/debts").json()) == 2
        assert [d["id"] for d in client.get("/debts", params={"payee": "7"}).json()] == [2]

    def test_delete_unbound_debt(self, client):
        debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]
        r = client.delete(f"/debts/{debt_id}", headers=PAYEE)
        assert r.status_code == 200
        assert r.json()["status"] == "inactive"


class TestErrorMapping:
    """Ledger errors become structured HTTP errors"""

    def test_unknown_caller_forbidden(self, client):
        r = client.post("/debts", json={"apr": "0.05"}, headers=STRANGER)
        assert r.status_code == 403
        assert r.json()["error"]["code"] == "unauthorized"

    def test_missing_debt(self, client):
        r = client.get("/debts/99")
        assert r.status_code == 404
        assert r.json()["error"]["code"] == "not_found"

    def test_invalid_state_conflict(self, client):
        debt_id = activate(client)
        r = client.put(f"/debts/{debt_id}/accrual-schedule",
                       json={"schedule": "weekly"}, headers=PAYEE)
        assert r.status_code == 409
        assert r.json()["error"]["code"] == "invalid_state"

    def test_timing_conflict(self, client):
        debt_id = activate(client)
        r = client.post(f"/debts/{debt_id}/payments", json={"amount": "1"}, headers=PAYEE)
        assert r.status_code == 409
        assert r.json()["error"]["code"] == "timing_violation"

    def test_arithmetic_unprocessable(self, client):
        debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]
        r = client.post(f"/debts/{debt_id}/principal", json={"amount": "-1"}, headers=PAYER)
        assert r.status_code == 422
        assert r.json()["error"]["code"] == "arithmetic_bound"

    def test_invalid_schedule_unprocessable(self, client):
        debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]
        r = client.put(f"/debts/{debt_id}/payment-schedule",
                       json={"schedule": "sometimes"}, headers=PAYEE)
        assert r.status_code == 422
        assert r.json()["error"]["code"] == "invalid_schedule"

    def test_transfer_refused(self, client, system):
        system.identity_gateway.register("0xbroke", "99")
        debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]

        r = client.post(f"/debts/{debt_id}/principal", json={"amount": "10"},
                        headers={"X-Caller-Address": "0xbroke"})
        assert r.status_code == 402
        assert r.json()["error"]["code"] == "transfer_failed"
        assert client.get(f"/debts/{debt_id}").json()["payer"] is None


class TestEventEndpoints:

    def test_events_for_debt(self, client):
        debt_id = activate(client)
        client.post("/debts", json={"apr": "0.05"}, headers=PAYEE)

        events = client.get("/events", params={"debt_id": debt_id}).json()
        assert [e["event_type"] for e in events] == [
            "debt_created", "lock_principal", "lock_interest", "release_principal"
        ]
        assert len(client.get("/events").json()) == 5
        assert len(client.get("/events", params={"limit": 2}).json()) == 2

    def test_verify(self, client):
        activate(client)
        r = client.get("/events/verify")
        assert r.status_code == 200
        assert r.json()["valid"] is True
        assert r.json()["total_events"] == 4


class TestExpirationEndpoint:

    def test_naive_expiration_rejected(self, client):
        debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]
        r = client.put(f"/debts/{debt_id}/expiration",
                       json={"expires_at": "2030-01-01T00:00:00"}, headers=PAYEE)
        assert r.status_code == 422
        assert client.get(f"/debts/{debt_id}").json()["expires_at"] is None

    def test_offset_expiration_accepted(self, client):
        debt_id = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE).json()["id"]
        r = client.put(f"/debts/{debt_id}/expiration",
                       json={"expires_at": "2030-01-01T02:00:00+02:00"}, headers=PAYEE)
        assert r.status_code == 200
        assert r.json()["expires_at"].startswith("2030-01-01T00:00:00")


@pytest.fixture
def fresh_system(clock):
    """Escrow system as the server builds it, with nothing seeded"""
    test_system = EscrowSystem(
        config=EscrowConfig(database_url="memory://", identity_service_url="", admin_api_key=""),
        clock=clock
    )
    set_escrow_system(test_system)
    yield test_system
    set_escrow_system(None)


class TestAdminEndpoints:
    """Participants, balances and consent managed over HTTP"""

    def test_unseeded_server_rejects_callers(self, fresh_system):
        client = TestClient(app)
        r = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE)
        assert r.status_code == 403

    def test_onboarding_flow(self, fresh_system):
        client = TestClient(app)
        r = client.post("/admin/participants", json={"address": "0xpayee", "identity": "42"})
        assert r.status_code == 201
        assert r.json() == {"address": "0xpayee", "identity": "42", "authorized": True}
        client.post("/admin/participants", json={"address": "0xpayer", "identity": "7"})

        r = client.post("/admin/balances/7/deposits", json={"amount": "2000"})
        assert r.status_code == 200
        assert r.json() == {"identity": "7", "balance": "2000"}

        debt_id = activate(client)
        assert client.get(f"/debts/{debt_id}").json()["owed"] is True
        assert client.get("/admin/balances/7").json()["balance"] == "1950"
        assert client.get("/admin/escrow").json() == {"escrow_balance": "50"}

    def test_default_identity_is_address(self, fresh_system):
        client = TestClient(app)
        r = client.post("/admin/participants", json={"address": "0xsolo"})
        assert r.json()["identity"] == "0xsolo"
        r = client.post("/debts", json={"apr": "0.05"}, headers={"X-Caller-Address": "0xsolo"})
        assert r.json()["payee"] == "0xsolo"

    def test_revoked_participant_rejected(self, client):
        r = client.delete("/admin/participants/42")
        assert r.status_code == 200
        r = client.post("/debts", json={"apr": "0.05"}, headers=PAYEE)
        assert r.status_code == 403

    def test_invalid_deposit(self, client):
        assert client.post("/admin/balances/7/deposits", json={"amount": "abc"}).status_code == 422
        assert client.post("/admin/balances/7/deposits", json={"amount": "-5"}).status_code == 422
        assert client.get("/admin/balances/7").json()["balance"] == "100000"

    def test_consent_resolves_dispute(self, client):
        debt_id = activate(client)
        client.post(f"/debts/{debt_id}/disputes", json={"reason": "late"}, headers=PAYER)

        r = client.post(f"/debts/{debt_id}/disputes/resolve", headers=PAYEE)
        assert r.status_code == 403

        r = client.post(f"/admin/consents/{debt_id}")
        assert r.json() == {"debt_id": debt_id, "confirmed": True}
        r = client.post(f"/debts/{debt_id}/disputes/resolve", headers=PAYEE)
        assert r.status_code == 200

    def test_consent_for_missing_debt(self, client):
        r = client.post("/admin/consents/99")
        assert r.status_code == 404

    def test_revoked_consent(self, client, system):
        debt_id = activate(client)
        client.post(f"/admin/consents/{debt_id}")
        client.delete(f"/admin/consents/{debt_id}")
        assert system.consent_service.is_mutual_consent_confirmed(debt_id) is False

    def test_remote_registry_conflict(self, clock):
        remote = EscrowSystem(
            config=EscrowConfig(database_url="memory://", admin_api_key="",
                                identity_service_url="http://identity.local"),
            clock=clock
        )
        set_escrow_system(remote)
        try:
            r = TestClient(app).post("/admin/participants", json={"address": "0xpayee"})
            assert r.status_code == 409
        finally:
            set_escrow_system(None)
            remote.identity_gateway.close()


class TestAdminKey:

    def setup_method(self):
        self.system = EscrowSystem(config=EscrowConfig(
            database_url="memory://", identity_service_url="", admin_api_key="secret"
        ))
        set_escrow_system(self.system)
        self.client = TestClient(app)

    def teardown_method(self):
        set_escrow_system(None)

    def test_missing_key_forbidden(self):
        r = self.client.post("/admin/participants", json={"address": "0xpayee"})
        assert r.status_code == 403
        assert self.system.identity_gateway.resolve_identity("0xpayee") is None

    def test_wrong_key_forbidden(self):
        r = self.client.get("/admin/escrow", headers={"X-Admin-Key": "guess"})
        assert r.status_code == 403

    def test_valid_key(self):
        r = self.client.post("/admin/participants", json={"address": "0xpayee"},
                             headers={"X-Admin-Key": "secret"})
        assert r.status_code == 201
