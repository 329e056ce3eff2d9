"""
Integration tests for the Ledger Core API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from ledger_core.api import create_app
from ledger_core.api.deps import LedgerSystem, get_engine, get_ledger_system
from ledger_core.config import LedgerConfig
from ledger_core.errors import UnavailableError
from ledger_core.ledger import LedgerEngine
from ledger_core.storage import InMemoryStorage, SQLiteStorage


@pytest.fixture
def system():
    """In-memory ledger system for each test"""
    return LedgerSystem(
        storage=InMemoryStorage(),
        config=LedgerConfig(storage_backend="memory")
    )


@pytest.fixture
def client(system):
    """Create a test client with the in-memory ledger injected"""
    app = create_app()
    app.dependency_overrides[get_ledger_system] = lambda: system
    with TestClient(app) as test_client:
        yield test_client


def create_account(client, currency="USD"):
    r = client.post("/accounts", json={"currency": currency})
    assert r.status_code == 201
    return r.json()


def deposit(client, account_id, amount):
    return client.post("/transactions/deposit", json={"account_id": account_id, "amount": amount})


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Ledger Core API"
        assert "accounts" in data["endpoints"]


class TestAccountFlow:
    """End-to-end account management tests"""

    def test_create_account(self, client):
        data = create_account(client, "usd")

        assert data["id"]
        assert data["currency"] == "USD"
        assert data["balance"] == 0
        assert "created_at" in data and "updated_at" in data

    def test_create_account_requires_currency(self, client):
        assert client.post("/accounts", json={"currency": ""}).status_code == 422
        assert client.post("/accounts", json={"currency": "   "}).status_code == 422
        assert client.post("/accounts", json={}).status_code == 422

    def test_list_and_get_accounts(self, client):
        first = create_account(client)
        second = create_account(client, "EUR")

        r = client.get("/accounts")
        assert r.status_code == 200
        assert [a["id"] for a in r.json()] == [first["id"], second["id"]]

        r = client.get(f"/accounts/{second['id']}")
        assert r.status_code == 200
        assert r.json()["currency"] == "EUR"
        assert r.json()["sent_transactions"] == []
        assert r.json()["received_transactions"] == []

    def test_get_missing_account(self, client):
        r = client.get("/accounts/missing")
        assert r.status_code == 404
        assert r.json() == {
            "error": "NOT_FOUND",
            "detail": "Account with ID missing not found"
        }

    def test_balance_of_new_account(self, client):
        account = create_account(client)

        r = client.get(f"/accounts/{account['id']}/balance")
        assert r.status_code == 200
        assert r.json() == {"id": account["id"], "currency": "USD", "balance": "0.00"}


class TestDepositFlow:
    """Deposit endpoint tests"""

    def test_deposit(self, client):
        account = create_account(client)

        r = deposit(client, account["id"], 100.00)
        assert r.status_code == 200
        data = r.json()
        assert data["account"]["balance"] == 10000
        assert data["transaction"]["type"] == "DEPOSIT"
        assert data["transaction"]["status"] == "COMPLETED"
        assert data["transaction"]["amount"] == 10000
        assert data["transaction"]["sender_id"] is None

        r = client.get(f"/accounts/{account['id']}/balance")
        assert r.json()["balance"] == "100.00"

    def test_deposit_accepts_string_amount(self, client):
        account = create_account(client)

        r = deposit(client, account["id"], "12.34")
        assert r.status_code == 200
        assert r.json()["account"]["balance"] == 1234

    def test_sub_cent_deposit_rejected_at_boundary(self, client, system):
        account = create_account(client)

        r = deposit(client, account["id"], 0.005)
        assert r.status_code == 422
        assert system.engine.transactions.count() == 0
        assert system.engine.get_account(account["id"]).balance == 0

    def test_invalid_amounts_rejected(self, client):
        account = create_account(client)

        assert deposit(client, account["id"], 0).status_code == 422
        assert deposit(client, account["id"], -10).status_code == 422
        assert deposit(client, account["id"], 1.234).status_code == 422
        assert deposit(client, account["id"], "abc").status_code == 422

    def test_deposit_blank_account_id(self, client):
        assert deposit(client, "", 10).status_code == 422

    def test_deposit_missing_account(self, client):
        r = deposit(client, "missing", 10)
        assert r.status_code == 404
        assert r.json()["error"] == "NOT_FOUND"


class TestTransferFlow:
    """Transfer endpoint tests"""

    def setup_accounts(self, client, sender_funds="100.00"):
        sender = create_account(client)
        receiver = create_account(client)
        deposit(client, sender["id"], sender_funds)
        return sender, receiver

    def transfer(self, client, sender_id, receiver_id, amount):
        return client.post("/transactions/transfer", json={
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "amount": amount
        })

    def test_transfer(self, client):
        sender, receiver = self.setup_accounts(client)

        r = self.transfer(client, sender["id"], receiver["id"], "40.00")
        assert r.status_code == 200
        data = r.json()
        assert data["sender"]["balance"] == 6000
        assert data["receiver"]["balance"] == 4000
        assert data["transaction"]["type"] == "TRANSFER"
        assert data["transaction"]["sender_id"] == sender["id"]
        assert data["transaction"]["receiver_id"] == receiver["id"]

    def test_transfer_insufficient_funds(self, client):
        sender, receiver = self.setup_accounts(client)

        r = self.transfer(client, sender["id"], receiver["id"], "150.00")
        assert r.status_code == 400
        assert r.json() == {"error": "INSUFFICIENT_FUNDS", "detail": "Insufficient balance"}

        assert client.get(f"/accounts/{sender['id']}/balance").json()["balance"] == "100.00"
        assert client.get(f"/accounts/{receiver['id']}/balance").json()["balance"] == "0.00"
        assert client.get(f"/accounts/{receiver['id']}/transactions").json() == []

    def test_self_transfer(self, client):
        sender, _ = self.setup_accounts(client)

        r = self.transfer(client, sender["id"], sender["id"], "10.00")
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_OPERATION"

    def test_transfer_missing_receiver(self, client):
        sender, _ = self.setup_accounts(client)

        r = self.transfer(client, sender["id"], "missing", "10.00")
        assert r.status_code == 404
        assert "Receiver account" in r.json()["detail"]

    def test_history_newest_first(self, client):
        sender, receiver = self.setup_accounts(client)
        self.transfer(client, sender["id"], receiver["id"], "10.00")
        self.transfer(client, sender["id"], receiver["id"], "20.00")

        r = client.get(f"/accounts/{sender['id']}/transactions")
        assert r.status_code == 200
        history = r.json()
        assert [t["amount"] for t in history] == [2000, 1000, 10000]
        assert [t["type"] for t in history] == ["TRANSFER", "TRANSFER", "DEPOSIT"]

    def test_history_cap_from_config(self, client, system):
        sender, receiver = self.setup_accounts(client)
        self.transfer(client, sender["id"], receiver["id"], "10.00")
        system.config.max_history_size = 1

        history = client.get(f"/accounts/{sender['id']}/transactions").json()
        assert len(history) == 1
        assert history[0]["amount"] == 1000

    def test_history_of_missing_account(self, client):
        assert client.get("/accounts/missing/transactions").status_code == 404

    def test_account_includes_sent_and_received(self, client):
        sender, receiver = self.setup_accounts(client)
        transfer = self.transfer(client, sender["id"], receiver["id"], "40.00").json()["transaction"]

        data = client.get(f"/accounts/{sender['id']}").json()
        assert data["balance"] == 6000
        assert [t["id"] for t in data["sent_transactions"]] == [transfer["id"]]
        assert [t["type"] for t in data["received_transactions"]] == ["DEPOSIT"]

        listed = {a["id"]: a for a in client.get("/accounts").json()}
        assert listed[receiver["id"]]["sent_transactions"] == []
        assert [t["id"] for t in listed[receiver["id"]]["received_transactions"]] == [transfer["id"]]

    def test_history_names_both_parties(self, client):
        sender, receiver = self.setup_accounts(client)
        self.transfer(client, sender["id"], receiver["id"], "10.00")

        transfer_entry, deposit_entry = client.get(f"/accounts/{sender['id']}/transactions").json()
        assert transfer_entry["sender"] == {"id": sender["id"], "currency": "USD"}
        assert transfer_entry["receiver"] == {"id": receiver["id"], "currency": "USD"}
        assert deposit_entry["sender"] is None
        assert deposit_entry["receiver"] == {"id": sender["id"], "currency": "USD"}


class TestAmountLimits:
    """Amounts beyond the 64-bit minor-unit range are rejected with typed errors"""

    @pytest.fixture(params=["memory", "sqlite"])
    def client(self, request):
        storage = InMemoryStorage() if request.param == "memory" else SQLiteStorage()
        system = LedgerSystem(storage=storage, config=LedgerConfig(storage_backend=request.param))
        app = create_app()
        app.dependency_overrides[get_ledger_system] = lambda: system
        with TestClient(app) as test_client:
            yield test_client
        system.close()

    def test_huge_amounts_rejected_at_boundary(self, client):
        account = create_account(client)

        assert deposit(client, account["id"], "100000000000000000").status_code == 422
        assert deposit(client, account["id"], "1E+30").status_code == 422
        assert deposit(client, account["id"], 100000000000000000).status_code == 422
        assert client.get(f"/accounts/{account['id']}/balance").json()["balance"] == "0.00"

    def test_maximum_amount_then_overflow(self, client):
        account = create_account(client)

        r = deposit(client, account["id"], "92233720368547758.07")
        assert r.status_code == 200
        assert r.json()["account"]["balance"] == 2 ** 63 - 1

        r = deposit(client, account["id"], "0.01")
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_OPERATION"
        assert len(client.get(f"/accounts/{account['id']}/transactions").json()) == 1


class TestErrorMapping:
    """Typed engine failures map to HTTP status codes"""

    def test_unavailable_maps_to_503(self, system):
        class UnavailableEngine(LedgerEngine):
            def deposit(self, account_id, amount):
                raise UnavailableError("Storage temporarily unavailable")

        app = create_app()
        app.dependency_overrides[get_engine] = lambda: UnavailableEngine(system.storage)
        with TestClient(app) as client:
            r = deposit(client, "any", "10.00")

        assert r.status_code == 503
        assert r.json() == {"error": "UNAVAILABLE", "detail": "Storage temporarily unavailable"}

    def test_engine_validation_maps_to_422(self, client):
        r = client.get("/accounts/%20/balance")

        assert r.status_code == 422
        assert r.json() == {"error": "VALIDATION", "detail": "Account ID is required"}
