"""
Tests for transaction flows (reference shape per type)
"""
import pytest
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

from ledger.domain.errors import FlowError
from ledger.domain.transaction import (
    IncomeFlow, AllocationFlow, ExpenseFlow, TransferFlow, PayoffFlow,
    MAX_TRANSACTION_AMOUNT, TRANSACTION_TYPES,
    build_flow, flow_of, reference_columns, envelope_ids,
    validate_amount, validate_transaction_date,
)


class TestBuildFlow:

    def test_income_requires_income_source(self):
        assert build_flow("income", income_source_id=3) == IncomeFlow(income_source_id=3)

    def test_allocation(self):
        assert build_flow("allocation", to_envelope_id=7) == AllocationFlow(to_envelope_id=7)

    def test_expense_needs_envelope_and_payee(self):
        flow = build_flow("expense", from_envelope_id=1, payee_id=2)
        assert flow == ExpenseFlow(from_envelope_id=1, payee_id=2)
        assert flow.transaction_type == "expense"

    def test_expense_without_payee_rejected(self):
        with pytest.raises(FlowError, match="payee_id"):
            build_flow("expense", from_envelope_id=1)

    def test_forbidden_reference_rejected(self):
        with pytest.raises(FlowError, match="must not have payee_id"):
            build_flow("allocation", to_envelope_id=7, payee_id=2)

    def test_none_references_are_ignored(self):
        flow = build_flow(
            "payoff",
            from_envelope_id=4,
            to_envelope_id=None,
            payee_id=None,
            income_source_id=None,
        )
        assert flow == PayoffFlow(from_envelope_id=4)

    def test_transfer_to_same_envelope_rejected(self):
        with pytest.raises(FlowError, match="must differ"):
            build_flow("transfer", from_envelope_id=5, to_envelope_id=5)

    def test_transfer_dataclass_rejects_same_envelope_directly(self):
        with pytest.raises(FlowError):
            TransferFlow(from_envelope_id=5, to_envelope_id=5)

    def test_unknown_type_rejected(self):
        with pytest.raises(FlowError, match="Unknown transaction type"):
            build_flow("refund", to_envelope_id=1)

    def test_unknown_reference_field_rejected(self):
        with pytest.raises(FlowError, match="Unknown reference fields"):
            build_flow("income", income_source_id=1, wallet_id=2)

    def test_flow_error_is_value_error(self):
        with pytest.raises(ValueError):
            build_flow("income")

    def test_every_type_has_a_flow(self):
        assert set(TRANSACTION_TYPES) == {"income", "allocation", "expense", "transfer", "payoff"}


def test_flow_of_stored_row():
    """A stored row maps back to its flow"""
    row = SimpleNamespace(
        transaction_type="transfer",
        from_envelope_id=1,
        to_envelope_id=2,
        payee_id=None,
        income_source_id=None,
    )
    assert flow_of(row) == TransferFlow(from_envelope_id=1, to_envelope_id=2)


def test_flow_of_corrupted_row_raises():
    row = SimpleNamespace(
        transaction_type="income",
        from_envelope_id=1,
        to_envelope_id=None,
        payee_id=None,
        income_source_id=9,
    )
    with pytest.raises(FlowError):
        flow_of(row)


def test_reference_columns_fill_absent_with_none():
    assert reference_columns(ExpenseFlow(from_envelope_id=1, payee_id=2)) == {
        "from_envelope_id": 1,
        "to_envelope_id": None,
        "payee_id": 2,
        "income_source_id": None,
    }


def test_envelope_ids():
    assert envelope_ids(TransferFlow(from_envelope_id=1, to_envelope_id=2)) == [1, 2]
    assert envelope_ids(AllocationFlow(to_envelope_id=3)) == [3]
    assert envelope_ids(IncomeFlow(income_source_id=4)) == []


class TestAmountAndDate:

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-0.01"), Decimal("-100")])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(FlowError, match="greater than zero"):
            validate_amount(amount)

    def test_smallest_amount_accepted(self):
        validate_amount(Decimal("0.01"))

    @pytest.mark.parametrize("amount", [Decimal("0.004"), Decimal("10.005"), Decimal("1.0001")])
    def test_sub_cent_amount_rejected(self, amount):
        with pytest.raises(FlowError, match="two decimal places"):
            validate_amount(amount)

    def test_trailing_zeros_accepted(self):
        validate_amount(Decimal("12.5000"))

    def test_max_amount_accepted(self):
        validate_amount(MAX_TRANSACTION_AMOUNT)

    def test_above_max_rejected(self):
        with pytest.raises(FlowError, match="exceed"):
            validate_amount(MAX_TRANSACTION_AMOUNT + Decimal("0.01"))

    def test_tomorrow_accepted(self):
        today = date(2026, 3, 10)
        validate_transaction_date(today + timedelta(days=1), today)

    def test_past_accepted(self):
        today = date(2026, 3, 10)
        validate_transaction_date(date(2020, 1, 1), today)

    def test_two_days_ahead_rejected(self):
        today = date(2026, 3, 10)
        with pytest.raises(FlowError, match="future"):
            validate_transaction_date(today + timedelta(days=2), today)
