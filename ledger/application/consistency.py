"""
Consistency auditor - recompute cached aggregates from the transaction log

expected_state() is the single definition of what every cached value should
equal; validate() compares it with the cache and refresh() writes it back.
The balance engine is an incremental version of the same formulas:

    budget.available  = income - allocations + payoff excess
    envelope.balance  = inbound (allocation, transfer)
                        - outbound (expense, transfer)
                        - payoff pre-image balances
    payee.total_paid  = expenses to the payee
    category.total    = active envelope balances + child totals

Only active (not soft-deleted) transactions count.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from ledger.application.balance_engine import latest_payment
from ledger.application.category_cascade import CategoryAggregationCascade
from ledger.application.unit_of_work import atomic
from ledger.domain.errors import ConsistencyDriftError, FlowError, NotFoundError
from ledger.domain.transaction import (
    TRANSACTION_TYPE_INCOME, TRANSACTION_TYPE_ALLOCATION, TRANSACTION_TYPE_EXPENSE,
    TRANSACTION_TYPE_TRANSFER, TRANSACTION_TYPE_PAYOFF,
    flow_of, validate_amount,
)
from ledger.infrastructure.db.models import (
    Budget, Category, Envelope, Payee, IncomeSource, Transaction,
)
from ledger.infrastructure.db.session import begin_snapshot
from ledger.utils.money import ZERO, to_money

logger = logging.getLogger(__name__)

CHECK_AVAILABLE_AMOUNT = "available_amount"
CHECK_ENVELOPE_BALANCES = "envelope_balances"
CHECK_CATEGORY_TOTALS = "category_totals"
CHECK_PAYEE_TOTALS = "payee_totals"
CHECK_PAYEE_LAST_PAYMENTS = "payee_last_payments"
CHECK_TRANSACTION_FLOWS = "transaction_flows"
CHECK_TRANSACTION_OWNERSHIP = "transaction_ownership"


@dataclass
class ExpectedState:
    """Aggregates recomputed from active transactions"""
    available_amount: Decimal = ZERO
    envelope_balances: Dict[int, Decimal] = field(default_factory=dict)
    payee_totals: Dict[int, Decimal] = field(default_factory=dict)
    payee_last_payments: Dict[int, tuple[date | None, Decimal | None]] = field(default_factory=dict)


def _check(name: str, mismatches: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "check_name": name,
        "is_valid": not mismatches,
        "details": {"mismatches": mismatches} if mismatches else {},
    }


class ConsistencyAuditor:
    """Batch validation and repair for one budget at a time"""

    def __init__(self, db: Session):
        self.db = db

    # --- recomputation ---

    def _sum_by(self, budget_id: int, column, amount_column, *types: str) -> Dict[int, Decimal]:
        rows = self.db.query(column, func.sum(amount_column)).filter(
            Transaction.budget_id == budget_id,
            Transaction.is_deleted.is_(False),
            Transaction.transaction_type.in_(types),
            column.isnot(None),
        ).group_by(column).all()
        return {key: to_money(total) for key, total in rows}

    def _sum(self, budget_id: int, amount_column, *types: str) -> Decimal:
        total = self.db.query(func.sum(amount_column)).filter(
            Transaction.budget_id == budget_id,
            Transaction.is_deleted.is_(False),
            Transaction.transaction_type.in_(types),
        ).scalar()
        return to_money(total)

    def expected_state(self, budget_id: int) -> ExpectedState:
        """Recompute every transaction-derived aggregate of a budget"""
        state = ExpectedState()

        state.available_amount = (
            self._sum(budget_id, Transaction.amount, TRANSACTION_TYPE_INCOME)
            - self._sum(budget_id, Transaction.amount, TRANSACTION_TYPE_ALLOCATION)
            + self._sum(budget_id, Transaction.payoff_excess, TRANSACTION_TYPE_PAYOFF)
        )

        inbound = self._sum_by(
            budget_id, Transaction.to_envelope_id, Transaction.amount,
            TRANSACTION_TYPE_ALLOCATION, TRANSACTION_TYPE_TRANSFER,
        )
        outbound = self._sum_by(
            budget_id, Transaction.from_envelope_id, Transaction.amount,
            TRANSACTION_TYPE_EXPENSE, TRANSACTION_TYPE_TRANSFER,
        )
        settled = self._sum_by(
            budget_id, Transaction.from_envelope_id, Transaction.payoff_prior_balance,
            TRANSACTION_TYPE_PAYOFF,
        )
        envelope_ids = self.db.query(Envelope.id).filter(Envelope.budget_id == budget_id).all()
        for (envelope_id,) in envelope_ids:
            state.envelope_balances[envelope_id] = (
                inbound.get(envelope_id, ZERO)
                - outbound.get(envelope_id, ZERO)
                - settled.get(envelope_id, ZERO)
            )

        paid = self._sum_by(budget_id, Transaction.payee_id, Transaction.amount, TRANSACTION_TYPE_EXPENSE)
        payee_ids = self.db.query(Payee.id).filter(Payee.budget_id == budget_id).all()
        for (payee_id,) in payee_ids:
            state.payee_totals[payee_id] = paid.get(payee_id, ZERO)
            latest = latest_payment(self.db, payee_id)
            state.payee_last_payments[payee_id] = (
                (latest.transaction_date, to_money(latest.amount)) if latest else (None, None)
            )

        return state

    # --- public operations ---

    def budget_summary(self, budget_id: int) -> Dict[str, Any]:
        """
        Budget overview

        Returns:
            available_amount: cached unallocated pool
            total_allocated: sum of active allocations
            total_in_envelopes: sum of active envelope balances
            total_income: sum of active income
            total_expenses: sum of active expenses
            envelope_count: active envelopes
            negative_envelope_count: active envelopes below zero
        """
        budget = self._get_budget(budget_id)

        active_envelopes = self.db.query(Envelope).filter(
            Envelope.budget_id == budget_id,
            Envelope.is_active.is_(True),
        )
        total_in_envelopes = self.db.query(
            func.sum(Envelope.current_balance)
        ).filter(
            Envelope.budget_id == budget_id,
            Envelope.is_active.is_(True),
        ).scalar()

        return {
            "available_amount": to_money(budget.available_amount),
            "total_allocated": self._sum(budget_id, Transaction.amount, TRANSACTION_TYPE_ALLOCATION),
            "total_in_envelopes": to_money(total_in_envelopes),
            "total_income": self._sum(budget_id, Transaction.amount, TRANSACTION_TYPE_INCOME),
            "total_expenses": self._sum(budget_id, Transaction.amount, TRANSACTION_TYPE_EXPENSE),
            "envelope_count": active_envelopes.count(),
            "negative_envelope_count": active_envelopes.filter(Envelope.current_balance < 0).count(),
        }

    def validate(self, budget_id: int) -> List[Dict[str, Any]]:
        """
        Compare cached aggregates with recomputed values.

        Returns:
            [{"check_name": str, "is_valid": bool, "details": dict}, ...]
        """
        begin_snapshot(self.db)
        with atomic(self.db):
            budget = self._get_budget(budget_id)
            expected = self.expected_state(budget_id)

            results = [
                self._check_available(budget, expected),
                self._check_envelopes(budget_id, expected),
                self._check_categories(budget_id),
                self._check_payee_totals(budget_id, expected),
                self._check_payee_last_payments(budget_id, expected),
                self._check_flows(budget_id),
                self._check_ownership(budget_id),
            ]

        failed = [r["check_name"] for r in results if not r["is_valid"]]
        if failed:
            logger.warning("Budget %s consistency drift: %s", budget_id, ", ".join(failed))
        return results

    def assert_consistent(self, budget_id: int) -> None:
        """
        Raises:
            ConsistencyDriftError: any check failed (nothing is corrected)
        """
        failed = [r for r in self.validate(budget_id) if not r["is_valid"]]
        if failed:
            raise ConsistencyDriftError(budget_id, failed)

    def refresh(self, budget_id: int) -> Dict[str, int]:
        """
        Rewrite every cached aggregate from the transaction log.

        Idempotent: a second run changes nothing.

        Returns:
            Number of corrected rows per aggregate
        """
        begin_snapshot(self.db)
        with atomic(self.db):
            budget = self.db.query(Budget).filter(Budget.id == budget_id).with_for_update().first()
            if budget is None:
                raise NotFoundError(f"Budget {budget_id} not found")
            expected = self.expected_state(budget_id)
            fixed = {"available_amount": 0, "envelopes": 0, "payees": 0, "categories": 0}

            if to_money(budget.available_amount) != expected.available_amount:
                budget.available_amount = expected.available_amount
                fixed["available_amount"] = 1

            envelopes = self.db.query(Envelope).filter(Envelope.budget_id == budget_id).with_for_update().all()
            for envelope in envelopes:
                balance = expected.envelope_balances[envelope.id]
                if to_money(envelope.current_balance) != balance:
                    envelope.current_balance = balance
                    fixed["envelopes"] += 1

            payees = self.db.query(Payee).filter(Payee.budget_id == budget_id).with_for_update().all()
            for payee in payees:
                total = expected.payee_totals[payee.id]
                last_date, last_amount = expected.payee_last_payments[payee.id]
                current_last = to_money(payee.last_payment_amount) if payee.last_payment_amount is not None else None
                if (
                    to_money(payee.total_paid) != total
                    or payee.last_payment_date != last_date
                    or current_last != last_amount
                ):
                    payee.total_paid = total
                    payee.last_payment_date = last_date
                    payee.last_payment_amount = last_amount
                    fixed["payees"] += 1

            self.db.flush()
            fixed["categories"] = CategoryAggregationCascade(self.db).recompute_budget(budget_id)

        logger.info("Budget %s cache refreshed: %s", budget_id, fixed)
        return fixed

    # --- checks ---

    def _check_available(self, budget: Budget, expected: ExpectedState) -> Dict[str, Any]:
        cached = to_money(budget.available_amount)
        mismatches = []
        if cached != expected.available_amount:
            mismatches.append({"cached": str(cached), "expected": str(expected.available_amount)})
        return _check(CHECK_AVAILABLE_AMOUNT, mismatches)

    def _check_envelopes(self, budget_id: int, expected: ExpectedState) -> Dict[str, Any]:
        mismatches = []
        envelopes = self.db.query(Envelope).filter(Envelope.budget_id == budget_id).order_by(Envelope.id).all()
        for envelope in envelopes:
            cached = to_money(envelope.current_balance)
            if cached != expected.envelope_balances[envelope.id]:
                mismatches.append({
                    "envelope_id": envelope.id,
                    "cached": str(cached),
                    "expected": str(expected.envelope_balances[envelope.id]),
                })
        return _check(CHECK_ENVELOPE_BALANCES, mismatches)

    def _check_categories(self, budget_id: int) -> Dict[str, Any]:
        categories = self.db.query(Category).filter(Category.budget_id == budget_id).order_by(Category.id).all()
        envelope_totals = dict(
            self.db.query(Envelope.category_id, func.sum(Envelope.current_balance)).filter(
                Envelope.budget_id == budget_id,
                Envelope.is_active.is_(True),
            ).group_by(Envelope.category_id).all()
        )
        child_totals: Dict[int, Decimal] = {}
        for category in categories:
            if category.parent_id is not None:
                child_totals[category.parent_id] = child_totals.get(category.parent_id, ZERO) + to_money(category.total)

        mismatches = []
        for category in categories:
            expected = to_money(envelope_totals.get(category.id)) + child_totals.get(category.id, ZERO)
            cached = to_money(category.total)
            if cached != expected:
                mismatches.append({"category_id": category.id, "cached": str(cached), "expected": str(expected)})
        return _check(CHECK_CATEGORY_TOTALS, mismatches)

    def _check_payee_totals(self, budget_id: int, expected: ExpectedState) -> Dict[str, Any]:
        mismatches = []
        payees = self.db.query(Payee).filter(Payee.budget_id == budget_id).order_by(Payee.id).all()
        for payee in payees:
            cached = to_money(payee.total_paid)
            if cached != expected.payee_totals[payee.id]:
                mismatches.append({
                    "payee_id": payee.id,
                    "cached": str(cached),
                    "expected": str(expected.payee_totals[payee.id]),
                })
        return _check(CHECK_PAYEE_TOTALS, mismatches)

    def _check_payee_last_payments(self, budget_id: int, expected: ExpectedState) -> Dict[str, Any]:
        mismatches = []
        payees = self.db.query(Payee).filter(Payee.budget_id == budget_id).order_by(Payee.id).all()
        for payee in payees:
            last_date, last_amount = expected.payee_last_payments[payee.id]
            cached_amount = to_money(payee.last_payment_amount) if payee.last_payment_amount is not None else None
            if payee.last_payment_date != last_date or cached_amount != last_amount:
                mismatches.append({
                    "payee_id": payee.id,
                    "cached": [str(payee.last_payment_date), str(cached_amount)],
                    "expected": [str(last_date), str(last_amount)],
                })
        return _check(CHECK_PAYEE_LAST_PAYMENTS, mismatches)

    def _check_flows(self, budget_id: int) -> Dict[str, Any]:
        mismatches = []
        transactions = self.db.query(Transaction).filter(
            Transaction.budget_id == budget_id,
            Transaction.is_deleted.is_(False),
        ).order_by(Transaction.id).all()
        for tx in transactions:
            try:
                flow_of(tx)
                validate_amount(tx.amount)
            except FlowError as exc:
                mismatches.append({"transaction_id": tx.id, "error": str(exc)})
        return _check(CHECK_TRANSACTION_FLOWS, mismatches)

    def _check_ownership(self, budget_id: int) -> Dict[str, Any]:
        mismatches = []
        references = (
            (Transaction.from_envelope_id, Envelope),
            (Transaction.to_envelope_id, Envelope),
            (Transaction.payee_id, Payee),
            (Transaction.income_source_id, IncomeSource),
        )
        for column, model in references:
            rows = self.db.query(Transaction.id, model.id).join(
                model, model.id == column
            ).filter(
                Transaction.budget_id == budget_id,
                Transaction.is_deleted.is_(False),
                model.budget_id != budget_id,
            ).all()
            for tx_id, entity_id in rows:
                mismatches.append({"transaction_id": tx_id, model.__tablename__: entity_id})
        return _check(CHECK_TRANSACTION_OWNERSHIP, mismatches)

    def _get_budget(self, budget_id: int) -> Budget:
        budget = self.db.query(Budget).filter(Budget.id == budget_id).first()
        if budget is None:
            raise NotFoundError(f"Budget {budget_id} not found")
        return budget


def get_budget_summary(db: Session, budget_id: int) -> Dict[str, Any]:
    return ConsistencyAuditor(db).budget_summary(budget_id)


def validate_budget_consistency(db: Session, budget_id: int) -> List[Dict[str, Any]]:
    return ConsistencyAuditor(db).validate(budget_id)


def refresh_budget_cache(db: Session, budget_id: int) -> Dict[str, int]:
    return ConsistencyAuditor(db).refresh(budget_id)


def assert_budget_consistent(db: Session, budget_id: int) -> None:
    ConsistencyAuditor(db).assert_consistent(budget_id)
