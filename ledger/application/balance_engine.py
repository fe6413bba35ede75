"""
Balance propagation engine

Applies and reverses the monetary effect of a transaction on Budget,
Envelope and Payee rows. Transitions:

    insert      absent -> active        apply
    amend       active -> active        reverse(old) + apply(new)
    soft-delete active -> soft_deleted  reverse
    restore     soft_deleted -> active  apply
    hard-delete soft_deleted -> absent  nothing (already reversed)

Per-type effect (sign = +1 to apply, -1 to reverse):

    income      budget.available += amount
    allocation  budget.available -= amount, to.balance += amount
    expense     from.balance -= amount (debt: from.target -= amount), payee.total_paid += amount
    transfer    from.balance -= amount, to.balance += amount
    payoff      snapshot from.balance/target, zero both, budget.available += excess

The engine only touches rows inside the caller's unit of work; finish() runs
the category cascade and refreshes payee last payments before commit.
"""
import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from ledger.application.category_cascade import CategoryAggregationCascade
from ledger.domain.envelope import ENVELOPE_TYPE_DEBT
from ledger.domain.errors import ConstraintViolation, InsufficientFundsError, NotFoundError
from ledger.domain.transaction import (
    TRANSACTION_TYPE_EXPENSE,
    IncomeFlow, AllocationFlow, ExpenseFlow, TransferFlow, PayoffFlow,
    flow_of,
)
from ledger.infrastructure.db.models import Budget, Envelope, Payee, Transaction
from ledger.utils.money import ZERO

logger = logging.getLogger(__name__)

FUNDS_MODE_STRICT = "strict"
FUNDS_MODE_OVERRIDE = "override"


def funds_mode(allow_insufficient: bool) -> str:
    return FUNDS_MODE_OVERRIDE if allow_insufficient else FUNDS_MODE_STRICT


class BalancePropagationEngine:
    """
    One engine instance per unit of work.

    Usage:
        engine = BalancePropagationEngine(db)
        engine.reverse(tx)          # old values
        ...update tx fields...
        engine.apply(tx)            # new values
        engine.finish()
    """

    def __init__(self, db: Session):
        self.db = db
        self.touched_category_ids: set[int] = set()
        self.touched_payee_ids: set[int] = set()

    def apply(self, tx: Transaction, enforce_funds: bool = True) -> None:
        """
        Apply the transaction's effect once.

        Args:
            tx: active transaction (current field values are used)
            enforce_funds: strict mode; False applies regardless of funds

        Raises:
            InsufficientFundsError: strict mode and the source lacks funds
            FlowError: stored reference shape is invalid
        """
        flow = flow_of(tx)
        amount = tx.amount

        if isinstance(flow, IncomeFlow):
            budget = self._get_budget(tx.budget_id)
            budget.available_amount += amount

        elif isinstance(flow, AllocationFlow):
            budget = self._get_budget(tx.budget_id)
            to_envelope = self._get_envelope(flow.to_envelope_id)
            if enforce_funds:
                self._require_funds(budget.available_amount, amount, "budget available amount")
            budget.available_amount -= amount
            self._change_balance(to_envelope, amount)

        elif isinstance(flow, ExpenseFlow):
            from_envelope = self._get_envelope(flow.from_envelope_id)
            payee = self._get_payee(flow.payee_id)
            if enforce_funds:
                self._require_funds(from_envelope.current_balance, amount, f"envelope {from_envelope.name!r}")
            self._change_balance(from_envelope, -amount)
            if from_envelope.envelope_type == ENVELOPE_TYPE_DEBT:
                from_envelope.target_amount = (from_envelope.target_amount or ZERO) - amount
            payee.total_paid += amount
            self.touched_payee_ids.add(payee.id)

        elif isinstance(flow, TransferFlow):
            from_envelope = self._get_envelope(flow.from_envelope_id)
            to_envelope = self._get_envelope(flow.to_envelope_id)
            if enforce_funds:
                self._require_funds(from_envelope.current_balance, amount, f"envelope {from_envelope.name!r}")
            self._change_balance(from_envelope, -amount)
            self._change_balance(to_envelope, amount)

        elif isinstance(flow, PayoffFlow):
            self._apply_payoff(tx, flow)

    def reverse(self, tx: Transaction) -> None:
        """
        Undo the transaction's effect using its current field values.

        Never checks funds: a reversal may leave an envelope negative.
        """
        flow = flow_of(tx)
        amount = tx.amount

        if isinstance(flow, IncomeFlow):
            budget = self._get_budget(tx.budget_id)
            budget.available_amount -= amount

        elif isinstance(flow, AllocationFlow):
            budget = self._get_budget(tx.budget_id)
            budget.available_amount += amount
            self._change_balance(self._get_envelope(flow.to_envelope_id), -amount)

        elif isinstance(flow, ExpenseFlow):
            from_envelope = self._get_envelope(flow.from_envelope_id)
            payee = self._get_payee(flow.payee_id)
            self._change_balance(from_envelope, amount)
            if from_envelope.envelope_type == ENVELOPE_TYPE_DEBT:
                from_envelope.target_amount = (from_envelope.target_amount or ZERO) + amount
            payee.total_paid -= amount
            self.touched_payee_ids.add(payee.id)

        elif isinstance(flow, TransferFlow):
            self._change_balance(self._get_envelope(flow.from_envelope_id), amount)
            self._change_balance(self._get_envelope(flow.to_envelope_id), -amount)

        elif isinstance(flow, PayoffFlow):
            self._reverse_payoff(tx, flow)

    def touch_payee(self, payee_id: int | None) -> None:
        """Mark a payee whose last payment may have changed without a balance change"""
        if payee_id is not None:
            self.touched_payee_ids.add(payee_id)

    def finish(self) -> None:
        """
        Close the unit: refresh payee last payments, then run the category cascade.
        """
        self.db.flush()
        for payee_id in sorted(self.touched_payee_ids):
            payee = self._get_payee(payee_id)
            refresh_last_payment(self.db, payee)
        CategoryAggregationCascade(self.db).recompute_many(self.touched_category_ids)
        self.touched_payee_ids.clear()
        self.touched_category_ids.clear()

    # --- payoff ---

    def _apply_payoff(self, tx: Transaction, flow: PayoffFlow) -> None:
        """
        Settle a debt envelope and store the pre-image on the transaction.

        excess = max(allocated - amount, 0) goes back to the budget.
        """
        envelope = self._get_envelope(flow.from_envelope_id)
        if envelope.envelope_type != ENVELOPE_TYPE_DEBT:
            raise ConstraintViolation("Payoff is only allowed for debt envelopes")
        budget = self._get_budget(tx.budget_id)

        allocated = envelope.current_balance
        excess = max(allocated - tx.amount, ZERO)

        tx.payoff_prior_balance = allocated
        tx.payoff_prior_target = envelope.target_amount or ZERO
        tx.payoff_excess = excess

        self._change_balance(envelope, -allocated)
        envelope.target_amount = ZERO
        budget.available_amount += excess

        logger.info(
            "Payoff %s settled envelope %s: allocated=%s owed=%s excess=%s",
            tx.id, envelope.id, allocated, tx.payoff_prior_target, excess,
        )

    def _reverse_payoff(self, tx: Transaction, flow: PayoffFlow) -> None:
        if tx.payoff_prior_balance is None or tx.payoff_prior_target is None or tx.payoff_excess is None:
            raise ConstraintViolation(f"Payoff {tx.id} has no stored pre-image and cannot be reversed")

        envelope = self._get_envelope(flow.from_envelope_id)
        budget = self._get_budget(tx.budget_id)

        self._change_balance(envelope, tx.payoff_prior_balance)
        envelope.target_amount = (envelope.target_amount or ZERO) + tx.payoff_prior_target
        budget.available_amount -= tx.payoff_excess

    # --- helpers ---

    def _change_balance(self, envelope: Envelope, delta: Decimal) -> None:
        envelope.current_balance += delta
        self.touched_category_ids.add(envelope.category_id)

    @staticmethod
    def _require_funds(available: Decimal, required: Decimal, source: str) -> None:
        if required > available:
            raise InsufficientFundsError(
                f"Insufficient funds in {source}: required {required}, available {available}",
                required=required,
                available=available,
            )

    def _get_budget(self, budget_id: int) -> Budget:
        budget = self.db.query(Budget).filter(Budget.id == budget_id).with_for_update().first()
        if budget is None:
            raise NotFoundError(f"Budget {budget_id} not found")
        return budget

    def _get_envelope(self, envelope_id: int) -> Envelope:
        envelope = self.db.query(Envelope).filter(Envelope.id == envelope_id).with_for_update().first()
        if envelope is None:
            raise NotFoundError(f"Envelope {envelope_id} not found")
        return envelope

    def _get_payee(self, payee_id: int) -> Payee:
        payee = self.db.query(Payee).filter(Payee.id == payee_id).with_for_update().first()
        if payee is None:
            raise NotFoundError(f"Payee {payee_id} not found")
        return payee


def latest_payment(db: Session, payee_id: int) -> Transaction | None:
    """Most recent active expense to a payee (date, then creation order)"""
    return db.query(Transaction).filter(
        Transaction.payee_id == payee_id,
        Transaction.transaction_type == TRANSACTION_TYPE_EXPENSE,
        Transaction.is_deleted.is_(False),
    ).order_by(
        Transaction.transaction_date.desc(),
        Transaction.created_at.desc(),
        Transaction.id.desc(),
    ).first()


def refresh_last_payment(db: Session, payee: Payee) -> bool:
    """
    Set payee.last_payment_date/amount from its latest active expense.

    Returns:
        True if the cached values changed
    """
    latest = latest_payment(db, payee.id)
    new_date = latest.transaction_date if latest else None
    new_amount = latest.amount if latest else None

    if payee.last_payment_date == new_date and payee.last_payment_amount == new_amount:
        return False
    payee.last_payment_date = new_date
    payee.last_payment_amount = new_amount
    return True
