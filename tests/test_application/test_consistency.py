"""
Tests for the consistency auditor: summary, validation, drift repair
"""
import pytest
from decimal import Decimal

from ledger.application.consistency import (
    ConsistencyAuditor,
    get_budget_summary, validate_budget_consistency, refresh_budget_cache, assert_budget_consistent,
    CHECK_AVAILABLE_AMOUNT, CHECK_ENVELOPE_BALANCES, CHECK_CATEGORY_TOTALS,
    CHECK_PAYEE_TOTALS, CHECK_PAYEE_LAST_PAYMENTS, CHECK_TRANSACTION_FLOWS,
    CHECK_TRANSACTION_OWNERSHIP,
)
from ledger.application.categories import get_system_category
from ledger.application.envelopes import CreateEnvelopeUseCase
from ledger.application.flow_validator import budget_today
from ledger.domain.errors import ConsistencyDriftError, NotFoundError
from ledger.infrastructure.db.models import Transaction


def _failed(db, budget_id):
    return [r["check_name"] for r in validate_budget_consistency(db, budget_id) if not r["is_valid"]]


@pytest.fixture
def spent(funded, groceries, payee, record):
    """funded + 50.00 expense from Groceries"""
    record(funded, "expense", "50", from_envelope_id=groceries.id, payee_id=payee.id)
    return funded


def test_budget_summary(db_session, spent, groceries, credit_card):
    summary = get_budget_summary(db_session, spent.id)

    assert summary == {
        "available_amount": Decimal("700.00"),
        "total_allocated": Decimal("300.00"),
        "total_in_envelopes": Decimal("250.00"),
        "total_income": Decimal("1000.00"),
        "total_expenses": Decimal("50.00"),
        "envelope_count": 2,
        "negative_envelope_count": 0,
    }


def test_summary_counts_negative_envelopes(db_session, spent, groceries, payee, record):
    record(spent, "expense", "400", from_envelope_id=groceries.id, payee_id=payee.id, allow_insufficient=True)
    summary = get_budget_summary(db_session, spent.id)
    assert summary["negative_envelope_count"] == 1
    assert summary["total_in_envelopes"] == Decimal("-150.00")


def test_summary_unknown_budget(db_session):
    with pytest.raises(NotFoundError):
        get_budget_summary(db_session, 9999)


class TestValidate:

    def test_all_checks_pass_after_engine_writes(self, db_session, spent):
        results = validate_budget_consistency(db_session, spent.id)

        assert [r["check_name"] for r in results] == [
            CHECK_AVAILABLE_AMOUNT,
            CHECK_ENVELOPE_BALANCES,
            CHECK_CATEGORY_TOTALS,
            CHECK_PAYEE_TOTALS,
            CHECK_PAYEE_LAST_PAYMENTS,
            CHECK_TRANSACTION_FLOWS,
            CHECK_TRANSACTION_OWNERSHIP,
        ]
        assert all(r["is_valid"] for r in results)
        assert all(r["details"] == {} for r in results)

    def test_empty_budget_is_consistent(self, db_session, budget):
        assert _failed(db_session, budget.id) == []

    def test_envelope_drift_detected_not_fixed(self, db_session, spent, groceries):
        groceries.current_balance = Decimal("999")
        db_session.commit()

        results = {r["check_name"]: r for r in validate_budget_consistency(db_session, spent.id)}

        assert not results[CHECK_ENVELOPE_BALANCES]["is_valid"]
        mismatch = results[CHECK_ENVELOPE_BALANCES]["details"]["mismatches"][0]
        assert mismatch["envelope_id"] == groceries.id
        assert mismatch["expected"] == "250.00"
        # Category total no longer matches the (drifted) envelope cache either
        assert not results[CHECK_CATEGORY_TOTALS]["is_valid"]
        assert results[CHECK_AVAILABLE_AMOUNT]["is_valid"]

        assert groceries.current_balance == Decimal("999")

    def test_available_drift(self, db_session, spent):
        spent.available_amount = Decimal("1")
        db_session.commit()
        assert _failed(db_session, spent.id) == [CHECK_AVAILABLE_AMOUNT]

    def test_payee_drift(self, db_session, spent, payee):
        payee.total_paid = Decimal("0")
        payee.last_payment_date = None
        payee.last_payment_amount = None
        db_session.commit()
        assert _failed(db_session, spent.id) == [CHECK_PAYEE_TOTALS, CHECK_PAYEE_LAST_PAYMENTS]

    def test_soft_deleted_transactions_do_not_count(self, db_session, spent, groceries):
        tx = db_session.query(Transaction).filter(Transaction.transaction_type == "expense").one()
        tx.is_deleted = True  # bypasses the engine: caches still include it
        db_session.commit()
        assert CHECK_ENVELOPE_BALANCES in _failed(db_session, spent.id)

    def test_corrupted_flow_detected(self, db_session, spent, groceries):
        db_session.add(Transaction(
            budget_id=spent.id,
            transaction_type="income",
            amount=Decimal("10"),
            transaction_date=budget_today(),
            to_envelope_id=groceries.id,
        ))
        db_session.commit()
        assert CHECK_TRANSACTION_FLOWS in _failed(db_session, spent.id)

    def test_cross_budget_reference_detected(self, db_session, spent, other_budget):
        elsewhere = CreateEnvelopeUseCase(db_session).execute(budget_id=other_budget.id, name="Elsewhere")
        db_session.add(Transaction(
            budget_id=spent.id,
            transaction_type="allocation",
            amount=Decimal("10"),
            transaction_date=budget_today(),
            to_envelope_id=elsewhere.id,
        ))
        db_session.commit()
        assert CHECK_TRANSACTION_OWNERSHIP in _failed(db_session, spent.id)

    def test_assert_consistent_raises_with_failed_checks(self, db_session, spent):
        spent.available_amount = Decimal("1")
        db_session.commit()

        with pytest.raises(ConsistencyDriftError) as exc_info:
            assert_budget_consistent(db_session, spent.id)

        assert exc_info.value.budget_id == spent.id
        assert [c["check_name"] for c in exc_info.value.failed_checks] == [CHECK_AVAILABLE_AMOUNT]

    def test_assert_consistent_passes(self, db_session, spent):
        assert_budget_consistent(db_session, spent.id)


class TestRefresh:

    def test_refresh_repairs_envelope_drift(self, db_session, spent, groceries):
        groceries.current_balance = Decimal("999")
        db_session.commit()

        fixed = refresh_budget_cache(db_session, spent.id)

        assert fixed == {"available_amount": 0, "envelopes": 1, "payees": 0, "categories": 0}
        assert groceries.current_balance == Decimal("250")
        assert _failed(db_session, spent.id) == []

    def test_refresh_repairs_everything(self, db_session, spent, payee):
        spent.available_amount = Decimal("0")
        payee.total_paid = Decimal("7")
        uncategorized = get_system_category(db_session, spent.id, "Uncategorized")
        uncategorized.total = Decimal("1")
        db_session.commit()

        fixed = refresh_budget_cache(db_session, spent.id)

        assert fixed == {"available_amount": 1, "envelopes": 0, "payees": 1, "categories": 1}
        assert spent.available_amount == Decimal("700")
        assert payee.total_paid == Decimal("50")
        assert uncategorized.total == Decimal("250")

    def test_refresh_is_idempotent(self, db_session, spent, groceries):
        groceries.current_balance = Decimal("0")
        db_session.commit()

        refresh_budget_cache(db_session, spent.id)
        second = refresh_budget_cache(db_session, spent.id)

        assert second == {"available_amount": 0, "envelopes": 0, "payees": 0, "categories": 0}

    def test_refresh_accounts_for_payoff(self, db_session, funded, credit_card, record):
        record(funded, "allocation", "200", to_envelope_id=credit_card.id)
        record(funded, "payoff", "150", from_envelope_id=credit_card.id)

        fixed = ConsistencyAuditor(db_session).refresh(funded.id)

        assert fixed == {"available_amount": 0, "envelopes": 0, "payees": 0, "categories": 0}
        assert funded.available_amount == Decimal("550")

    def test_refresh_unknown_budget(self, db_session):
        with pytest.raises(NotFoundError):
            refresh_budget_cache(db_session, 9999)
