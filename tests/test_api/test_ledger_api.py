"""
Tests for the ledger HTTP API (routes + error mapping)
"""
import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

from ledger.api.deps import get_db, get_current_user_id
from ledger.application.budgets import CreateBudgetUseCase
from ledger.main import app


@pytest.fixture
def client(db_session, sample_user_id):
    """Test client bound to the test session, logged in as sample_user_id"""
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user_id] = lambda: sample_user_id
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def expense_payload(funded, groceries, payee):
    return {
        "budget_id": funded.id,
        "transaction_type": "expense",
        "amount": "50",
        "from_envelope_id": groceries.id,
        "payee_id": payee.id,
    }


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.text == "ok"


def test_not_authenticated(db_session):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    try:
        response = TestClient(app).get("/api/v1/budgets")
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 401


class TestBudgets:

    def test_create_and_list(self, client):
        response = client.post("/api/v1/budgets", json={"name": "Trip", "currency": "eur"})
        assert response.status_code == 201
        data = response.json()
        assert data["currency"] == "EUR"
        assert Decimal(data["available_amount"]) == 0

        names = [b["name"] for b in client.get("/api/v1/budgets").json()]
        assert names == ["Trip"]

    def test_duplicate_name_conflict(self, client, budget):
        response = client.post("/api/v1/budgets", json={"name": "Household"})
        assert response.status_code == 409
        assert response.json()["error"] == "ConstraintViolation"

    def test_someone_elses_budget_hidden(self, client, db_session, sample_user_id):
        foreign = CreateBudgetUseCase(db_session).execute(user_id=sample_user_id + 1, name="Not mine")
        assert client.get(f"/api/v1/budgets/{foreign.id}/summary").status_code == 404

    def test_summary(self, client, funded, groceries, payee, record):
        record(funded, "expense", "50", from_envelope_id=groceries.id, payee_id=payee.id)

        data = client.get(f"/api/v1/budgets/{funded.id}/summary").json()

        assert Decimal(data["available_amount"]) == Decimal("700")
        assert Decimal(data["total_income"]) == Decimal("1000")
        assert Decimal(data["total_allocated"]) == Decimal("300")
        assert Decimal(data["total_expenses"]) == Decimal("50")
        assert Decimal(data["total_in_envelopes"]) == Decimal("250")
        assert data["envelope_count"] == 1
        assert data["negative_envelope_count"] == 0

    def test_consistency_and_refresh(self, client, db_session, funded, groceries):
        checks = client.get(f"/api/v1/budgets/{funded.id}/consistency").json()
        assert len(checks) == 7
        assert all(c["is_valid"] for c in checks)

        groceries.current_balance = Decimal("1")
        db_session.commit()

        checks = client.get(f"/api/v1/budgets/{funded.id}/consistency").json()
        assert [c["check_name"] for c in checks if not c["is_valid"]] == ["envelope_balances", "category_totals"]

        response = client.post(f"/api/v1/budgets/{funded.id}/refresh")
        assert response.status_code == 200
        assert response.json()["envelopes"] == 1
        assert groceries.current_balance == Decimal("300")


class TestTransactions:

    def test_create_expense(self, client, expense_payload, groceries):
        response = client.post("/api/v1/transactions", json=expense_payload)

        assert response.status_code == 201
        data = response.json()
        assert data["transaction_type"] == "expense"
        assert Decimal(data["amount"]) == Decimal("50")
        assert data["is_deleted"] is False
        assert groceries.current_balance == Decimal("250")

    @pytest.mark.parametrize("amount", ["abc", "0", "-5", "1.001"])
    def test_bad_amount(self, client, expense_payload, amount):
        response = client.post("/api/v1/transactions", json={**expense_payload, "amount": amount})
        assert response.status_code == 422

    def test_wrong_shape(self, client, funded, groceries):
        response = client.post("/api/v1/transactions", json={
            "budget_id": funded.id,
            "transaction_type": "transfer",
            "amount": "10",
            "from_envelope_id": groceries.id,
            "to_envelope_id": groceries.id,
        })
        assert response.status_code == 422
        assert response.json()["error"] == "FlowError"

    def test_insufficient_funds_needs_confirmation(self, client, expense_payload, groceries):
        payload = {**expense_payload, "amount": "500"}

        response = client.post("/api/v1/transactions", json=payload)

        assert response.status_code == 409
        data = response.json()
        assert data["requires_confirmation"] is True
        assert Decimal(data["required"]) == Decimal("500")
        assert Decimal(data["available"]) == Decimal("300")
        assert groceries.current_balance == Decimal("300")

        response = client.post("/api/v1/transactions", json={**payload, "allow_insufficient": True})
        assert response.status_code == 201
        assert groceries.current_balance == Decimal("-200")

    def test_missing_transaction(self, client):
        response = client.get("/api/v1/transactions/9999")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_foreign_budget_rejected(self, client, db_session, sample_user_id):
        foreign = CreateBudgetUseCase(db_session).execute(user_id=sample_user_id + 1, name="Not mine")
        response = client.post("/api/v1/transactions", json={
            "budget_id": foreign.id,
            "transaction_type": "income",
            "amount": "10",
        })
        assert response.status_code == 404

    def test_amend_delete_restore_and_history(self, client, expense_payload, groceries, payee):
        tx_id = client.post("/api/v1/transactions", json=expense_payload).json()["id"]

        response = client.patch(f"/api/v1/transactions/{tx_id}", json={"amount": "80", "notes": "bulk"})
        assert response.status_code == 200
        assert Decimal(response.json()["amount"]) == Decimal("80")
        assert groceries.current_balance == Decimal("220")

        assert client.delete(f"/api/v1/transactions/{tx_id}").json() == {"changed": True}
        assert client.delete(f"/api/v1/transactions/{tx_id}").json() == {"changed": False}
        assert groceries.current_balance == Decimal("300")
        assert payee.total_paid == Decimal("0")

        assert client.post(f"/api/v1/transactions/{tx_id}/restore").json() == {"changed": True}
        assert groceries.current_balance == Decimal("220")

        events = client.get(f"/api/v1/transactions/{tx_id}/events").json()
        assert [e["event_type"] for e in events] == ["restored", "deleted", "updated", "created"]
        assert set(events[2]["changes"]) == {"amount", "notes"}

    @pytest.mark.parametrize("field", ["amount", "transaction_type", "transaction_date", "is_cleared", "is_reconciled"])
    def test_required_field_cannot_be_nulled(self, client, expense_payload, groceries, field):
        tx_id = client.post("/api/v1/transactions", json=expense_payload).json()["id"]

        response = client.patch(f"/api/v1/transactions/{tx_id}", json={field: None})

        assert response.status_code == 422
        assert response.json()["error"] == "FlowError"
        assert groceries.current_balance == Decimal("250")

    def test_optional_text_can_be_cleared(self, client, expense_payload):
        tx_id = client.post("/api/v1/transactions", json={**expense_payload, "notes": "bulk"}).json()["id"]
        response = client.patch(f"/api/v1/transactions/{tx_id}", json={"notes": None})
        assert response.status_code == 200
        assert response.json()["notes"] is None

    def test_amending_deleted_transaction_conflicts(self, client, expense_payload):
        tx_id = client.post("/api/v1/transactions", json=expense_payload).json()["id"]
        client.delete(f"/api/v1/transactions/{tx_id}")

        response = client.patch(f"/api/v1/transactions/{tx_id}", json={"amount": "10"})
        assert response.status_code == 409


class TestReferences:

    def test_envelope_lifecycle(self, client, budget):
        response = client.post("/api/v1/envelopes", json={"budget_id": budget.id, "name": "Fuel"})
        assert response.status_code == 201
        envelope_id = response.json()["id"]

        response = client.patch(f"/api/v1/envelopes/{envelope_id}", json={"name": "Gas"})
        assert response.json()["name"] == "Gas"

        assert client.delete(f"/api/v1/envelopes/{envelope_id}").status_code == 204

    def test_system_category_delete_conflicts(self, client, budget):
        categories = client.get("/api/v1/categories", params={"budget_id": budget.id}).json()
        debt = next(c for c in categories if c["name"] == "Debt")

        response = client.delete(f"/api/v1/categories/{debt['id']}")
        assert response.status_code == 409

    def test_referenced_payee_delete_conflicts(self, client, funded, groceries, payee, record):
        record(funded, "expense", "5", from_envelope_id=groceries.id, payee_id=payee.id)
        assert client.delete(f"/api/v1/payees/{payee.id}").status_code == 409
