"""
Tests for envelope use cases
"""
import pytest
from datetime import date
from decimal import Decimal

from ledger.application.categories import CreateCategoryUseCase, get_system_category
from ledger.application.envelopes import (
    CreateEnvelopeUseCase, UpdateEnvelopeUseCase, DeleteEnvelopeUseCase, get_envelope,
)
from ledger.application.transactions import SoftDeleteTransactionUseCase
from ledger.domain.errors import ConstraintViolation, NotFoundError
from ledger.infrastructure.db.models import Transaction


class TestCreate:

    @pytest.mark.parametrize("envelope_type, category", [
        ("regular", "Uncategorized"),
        ("savings", "Savings"),
        ("debt", "Debt"),
    ])
    def test_default_category_by_type(self, db_session, budget, envelope_type, category):
        envelope = CreateEnvelopeUseCase(db_session).execute(
            budget_id=budget.id, name="Box", envelope_type=envelope_type
        )
        assert envelope.category_id == get_system_category(db_session, budget.id, category).id
        assert envelope.current_balance == Decimal("0")

    def test_debt_in_credit_cards(self, db_session, budget):
        credit_cards = get_system_category(db_session, budget.id, "Credit Cards")
        envelope = CreateEnvelopeUseCase(db_session).execute(
            budget_id=budget.id,
            name="Amex",
            envelope_type="debt",
            category_id=credit_cards.id,
            debt_balance=Decimal("1200"),
            minimum_payment=Decimal("35"),
            due_date=date(2026, 11, 15),
        )
        assert envelope.target_amount == Decimal("1200")
        assert envelope.minimum_payment == Decimal("35")

    def test_savings_outside_savings_rejected(self, db_session, budget):
        food = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Food")
        with pytest.raises(ConstraintViolation, match="Savings"):
            CreateEnvelopeUseCase(db_session).execute(
                budget_id=budget.id, name="Rainy day", envelope_type="savings", category_id=food.id
            )

    def test_regular_in_debt_category_rejected(self, db_session, budget):
        loans = get_system_category(db_session, budget.id, "Loans")
        with pytest.raises(ConstraintViolation):
            CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Misc", category_id=loans.id)

    def test_unknown_type_rejected(self, db_session, budget):
        with pytest.raises(ConstraintViolation):
            CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Misc", envelope_type="checking")

    def test_regular_carries_no_debt_fields(self, db_session, budget):
        envelope = CreateEnvelopeUseCase(db_session).execute(
            budget_id=budget.id,
            name="Misc",
            debt_balance=Decimal("100"),
            minimum_payment=Decimal("10"),
        )
        assert envelope.debt_balance == Decimal("0")
        assert envelope.minimum_payment is None

    def test_duplicate_name_rejected(self, db_session, budget, groceries):
        with pytest.raises(ConstraintViolation):
            CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Groceries")

    def test_category_of_other_budget_rejected(self, db_session, budget, other_budget):
        food = CreateCategoryUseCase(db_session).execute(budget_id=other_budget.id, name="Food")
        with pytest.raises(ConstraintViolation, match="another budget"):
            CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Misc", category_id=food.id)

    def test_notification_needs_threshold(self, db_session, budget):
        with pytest.raises(ConstraintViolation):
            CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Misc", should_notify=True)

        envelope = CreateEnvelopeUseCase(db_session).execute(
            budget_id=budget.id, name="Misc", should_notify=True, notify_amount=Decimal("20")
        )
        assert envelope.should_notify is True

    def test_bad_color_rejected(self, db_session, budget):
        with pytest.raises(ConstraintViolation):
            CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Misc", color="blue")

    def test_missing_budget(self, db_session):
        with pytest.raises(NotFoundError):
            CreateEnvelopeUseCase(db_session).execute(budget_id=9999, name="Misc")


class TestUpdate:

    def test_rename_and_describe(self, db_session, groceries):
        envelope = UpdateEnvelopeUseCase(db_session).execute(
            groceries.id, name="Food shop", description="Weekly", color="#00FF00"
        )
        assert envelope.name == "Food shop"
        assert envelope.description == "Weekly"
        assert envelope.color == "#00FF00"

    def test_rename_to_existing_rejected(self, db_session, groceries, dining):
        with pytest.raises(ConstraintViolation, match="already exists"):
            UpdateEnvelopeUseCase(db_session).execute(dining.id, name="Groceries")

    def test_move_to_reserved_category_rejected(self, db_session, budget, groceries):
        savings = get_system_category(db_session, budget.id, "Savings")
        with pytest.raises(ConstraintViolation):
            UpdateEnvelopeUseCase(db_session).execute(groceries.id, category_id=savings.id)

    def test_balance_unchanged_by_category_move(self, db_session, funded, groceries):
        travel = CreateCategoryUseCase(db_session).execute(budget_id=funded.id, name="Travel")
        UpdateEnvelopeUseCase(db_session).execute(groceries.id, category_id=travel.id)
        assert groceries.current_balance == Decimal("300")
        assert travel.total == Decimal("300")

    def test_debt_fields(self, db_session, credit_card):
        envelope = UpdateEnvelopeUseCase(db_session).execute(
            credit_card.id, minimum_payment=Decimal("25"), due_date=date(2026, 12, 1)
        )
        assert envelope.minimum_payment == Decimal("25")
        assert envelope.due_date == date(2026, 12, 1)

    def test_turning_on_notification_without_threshold_rejected(self, db_session, groceries):
        with pytest.raises(ConstraintViolation):
            UpdateEnvelopeUseCase(db_session).execute(groceries.id, should_notify=True)


class TestDelete:

    def test_unreferenced_envelope_deleted(self, db_session, dining):
        envelope_id = dining.id
        DeleteEnvelopeUseCase(db_session).execute(envelope_id)
        with pytest.raises(NotFoundError):
            get_envelope(db_session, envelope_id)

    def test_referenced_envelope_kept(self, db_session, funded, groceries):
        with pytest.raises(ConstraintViolation, match="referenced"):
            DeleteEnvelopeUseCase(db_session).execute(groceries.id)
        assert get_envelope(db_session, groceries.id).current_balance == Decimal("300")

    def test_soft_deleted_reference_still_blocks(self, db_session, funded, groceries):
        allocation = db_session.query(Transaction).filter(Transaction.to_envelope_id == groceries.id).one()
        SoftDeleteTransactionUseCase(db_session).execute(allocation.id)
        with pytest.raises(ConstraintViolation):
            DeleteEnvelopeUseCase(db_session).execute(groceries.id)
