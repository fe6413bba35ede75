"""
Audit trail for transaction mutations

Every create / update / soft-delete / restore appends one TransactionEvent in
the same unit of work as the balance change. A failed audit write fails the
whole operation.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from ledger.infrastructure.audit.repository import TransactionEventRepository
from ledger.infrastructure.db.models import Budget, Transaction
from ledger.utils.money import format_money

EVENT_CREATED = "created"
EVENT_UPDATED = "updated"
EVENT_DELETED = "deleted"
EVENT_RESTORED = "restored"

AUDITED_FIELDS = (
    "transaction_type",
    "amount",
    "transaction_date",
    "description",
    "from_envelope_id",
    "to_envelope_id",
    "payee_id",
    "income_source_id",
    "reference_number",
    "notes",
    "is_cleared",
    "is_reconciled",
    "is_deleted",
    "deleted_at",
    "deleted_by",
    "payoff_prior_balance",
    "payoff_prior_target",
    "payoff_excess",
)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def snapshot_transaction(tx: Transaction) -> Dict[str, Any]:
    """JSON-ready copy of the audited fields"""
    return {field: _json_value(getattr(tx, field)) for field in AUDITED_FIELDS}


def diff_states(old_state: Dict[str, Any], new_state: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """{field: {"old": ..., "new": ...}} for every field that changed"""
    return {
        field: {"old": old_state.get(field), "new": new_state.get(field)}
        for field in AUDITED_FIELDS
        if old_state.get(field) != new_state.get(field)
    }


def classify_event(old_state: Dict[str, Any] | None, new_state: Dict[str, Any]) -> str:
    """Event type from the is_deleted transition"""
    if old_state is None:
        return EVENT_CREATED
    was_deleted = bool(old_state.get("is_deleted"))
    is_deleted = bool(new_state.get("is_deleted"))
    if not was_deleted and is_deleted:
        return EVENT_DELETED
    if was_deleted and not is_deleted:
        return EVENT_RESTORED
    return EVENT_UPDATED


class AuditTrail:
    """Writes TransactionEvents for the engine's use cases"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = TransactionEventRepository(db)

    def record(
        self,
        tx: Transaction,
        old_state: Dict[str, Any] | None = None,
        new_state: Dict[str, Any] | None = None,
        performed_by: int | None = None,
        funds_mode: str | None = None,
    ) -> int | None:
        """
        Append an event for tx.

        Args:
            tx: the transaction (already flushed, has an id)
            old_state: snapshot before the mutation, None for a new transaction
            new_state: snapshot after the mutation (default: snapshot of tx)
            performed_by: acting user
            funds_mode: strict / override for balance-applying events

        Returns:
            event id, or None for an update that changed nothing
        """
        if new_state is None:
            new_state = snapshot_transaction(tx)

        event_type = classify_event(old_state, new_state)

        if event_type == EVENT_UPDATED:
            changes = diff_states(old_state, new_state)
            if not changes:
                return None
        elif event_type == EVENT_DELETED:
            changes = {"old": old_state}
        else:
            changes = {"new": new_state}

        return self.repo.append_event(
            transaction_id=tx.id,
            budget_id=tx.budget_id,
            event_type=event_type,
            changes=changes,
            description=self._describe(tx, event_type, changes),
            funds_mode=funds_mode,
            performed_by=performed_by,
        )

    def _describe(self, tx: Transaction, event_type: str, changes: Dict[str, Any]) -> str:
        budget = self.db.query(Budget).filter(Budget.id == tx.budget_id).first()
        amount = format_money(tx.amount, budget.currency if budget else "USD")

        if event_type == EVENT_UPDATED:
            return f"Transaction updated: {', '.join(sorted(changes))}"
        return f"Transaction {event_type}: {tx.transaction_type} of {amount}"
