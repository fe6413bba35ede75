"""
Transaction use cases - create / update / soft delete / restore

Each execute() is one atomic unit: flow validation, ownership checks,
balance propagation, category cascade and the audit event commit together
or not at all.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from ledger.application.audit import AuditTrail, snapshot_transaction
from ledger.application.balance_engine import BalancePropagationEngine, funds_mode
from ledger.application.flow_validator import FlowValidator, budget_today
from ledger.application.unit_of_work import atomic
from ledger.domain.errors import ConstraintViolation, FlowError, NotFoundError
from ledger.domain.transaction import (
    REFERENCE_FIELDS, TRANSACTION_TYPE_EXPENSE, TRANSACTION_TYPE_PAYOFF,
    flow_of, reference_columns,
)
from ledger.infrastructure.db.models import Budget, Transaction

logger = logging.getLogger(__name__)

# Fields whose change alters balances (reverse + apply)
FINANCIAL_FIELDS = ("transaction_type", "amount") + REFERENCE_FIELDS

# Fields that only describe the transaction
METADATA_FIELDS = ("description", "reference_number", "notes", "is_cleared", "is_reconciled")
REQUIRED_FIELDS = ("transaction_type", "amount", "transaction_date", "is_cleared", "is_reconciled")


def _to_decimal(amount) -> Decimal:
    return amount if isinstance(amount, Decimal) else Decimal(str(amount))


def get_transaction(db: Session, transaction_id: int, for_update: bool = False) -> Transaction:
    query = db.query(Transaction).filter(Transaction.id == transaction_id)
    if for_update:
        query = query.with_for_update()
    tx = query.first()
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return tx


class CreateTransactionUseCase:
    """
    Use case: record a new transaction

    income / allocation / expense / transfer / payoff share one entry point;
    the type decides which references are required.
    """

    def __init__(self, db: Session):
        self.db = db
        self.validator = FlowValidator(db)
        self.audit = AuditTrail(db)

    def execute(
        self,
        budget_id: int,
        transaction_type: str,
        amount: Decimal,
        transaction_date: date | None = None,
        from_envelope_id: int | None = None,
        to_envelope_id: int | None = None,
        payee_id: int | None = None,
        income_source_id: int | None = None,
        description: str | None = None,
        reference_number: str | None = None,
        notes: str | None = None,
        is_cleared: bool = False,
        is_reconciled: bool = False,
        actor_user_id: int | None = None,
        allow_insufficient: bool = False,
    ) -> Transaction:
        """
        Create a transaction and apply its effect.

        Args:
            budget_id: owning budget
            transaction_type: income / allocation / expense / transfer / payoff
            amount: > 0
            transaction_date: default today (TIMEZONE); at most one day ahead
            from_envelope_id, to_envelope_id, payee_id, income_source_id:
                references, exactly the set the type requires
            description, reference_number, notes: free text
            is_cleared, is_reconciled: bank reconciliation flags
            actor_user_id: who creates it
            allow_insufficient: apply even if the source lacks funds

        Returns:
            The committed Transaction

        Raises:
            FlowError: wrong reference shape, amount <= 0, date too far ahead
            NotFoundError: budget or reference does not exist
            ConstraintViolation: cross-budget / inactive reference, payoff on non-debt envelope
            InsufficientFundsError: strict mode and not enough funds
        """
        amount = _to_decimal(amount)
        if transaction_date is None:
            transaction_date = budget_today()

        flow = self.validator.validate(
            transaction_type,
            amount,
            transaction_date,
            from_envelope_id=from_envelope_id,
            to_envelope_id=to_envelope_id,
            payee_id=payee_id,
            income_source_id=income_source_id,
        )

        with atomic(self.db):
            budget = self.db.query(Budget).filter(Budget.id == budget_id).with_for_update().first()
            if budget is None:
                raise NotFoundError(f"Budget {budget_id} not found")
            self.validator.check_ownership(budget_id, flow)

            tx = Transaction(
                budget_id=budget_id,
                transaction_type=flow.transaction_type,
                amount=amount,
                transaction_date=transaction_date,
                description=description,
                reference_number=reference_number,
                notes=notes,
                is_cleared=is_cleared,
                is_reconciled=is_reconciled,
                is_deleted=False,
                created_by=actor_user_id,
                modified_by=actor_user_id,
                **reference_columns(flow),
            )
            self.db.add(tx)
            self.db.flush()

            engine = BalancePropagationEngine(self.db)
            engine.apply(tx, enforce_funds=not allow_insufficient)
            engine.finish()

            self.audit.record(tx, None, performed_by=actor_user_id, funds_mode=funds_mode(allow_insufficient))

        logger.info("Transaction %s created: %s %s in budget %s", tx.id, tx.transaction_type, amount, budget_id)
        return tx


class UpdateTransactionUseCase:
    """
    Use case: amend an active transaction

    A change to the amount, type or any reference reverses the old effect
    and applies the new one in the same unit. Payoff transactions accept
    only metadata edits.
    """

    def __init__(self, db: Session):
        self.db = db
        self.validator = FlowValidator(db)
        self.audit = AuditTrail(db)

    def execute(
        self,
        transaction_id: int,
        transaction_type: str = ...,
        amount: Decimal = ...,
        transaction_date: date = ...,
        from_envelope_id: int | None = ...,
        to_envelope_id: int | None = ...,
        payee_id: int | None = ...,
        income_source_id: int | None = ...,
        description: str | None = ...,
        reference_number: str | None = ...,
        notes: str | None = ...,
        is_cleared: bool = ...,
        is_reconciled: bool = ...,
        actor_user_id: int | None = None,
        allow_insufficient: bool = False,
    ) -> Transaction:
        """
        Apply a patch. Arguments left as ... are not changed; pass None to
        clear a reference (e.g. when changing the type).

        Raises:
            NotFoundError: transaction does not exist
            FlowError: patched shape/amount/date is invalid
            ConstraintViolation: transaction is deleted, payoff financial edit,
                cross-budget or inactive reference
            InsufficientFundsError: strict mode and the new effect lacks funds
        """
        patch = {
            key: value
            for key, value in {
                "transaction_type": transaction_type,
                "amount": amount,
                "transaction_date": transaction_date,
                "from_envelope_id": from_envelope_id,
                "to_envelope_id": to_envelope_id,
                "payee_id": payee_id,
                "income_source_id": income_source_id,
                "description": description,
                "reference_number": reference_number,
                "notes": notes,
                "is_cleared": is_cleared,
                "is_reconciled": is_reconciled,
            }.items()
            if value is not ...
        }
        nulled = [field for field in REQUIRED_FIELDS if field in patch and patch[field] is None]
        if nulled:
            raise FlowError(f"Cannot clear required fields: {', '.join(nulled)}")
        if "amount" in patch:
            patch["amount"] = _to_decimal(patch["amount"])

        with atomic(self.db):
            tx = get_transaction(self.db, transaction_id, for_update=True)
            if tx.is_deleted:
                raise ConstraintViolation("Deleted transactions cannot be edited; restore first")

            old_state = snapshot_transaction(tx)
            financial_changed = any(
                key in patch and patch[key] != getattr(tx, key) for key in FINANCIAL_FIELDS
            )
            new_type = patch.get("transaction_type", tx.transaction_type)

            if financial_changed and TRANSACTION_TYPE_PAYOFF in (tx.transaction_type, new_type):
                raise ConstraintViolation(
                    "Payoff transactions cannot change amount, type or envelope; delete and re-create instead"
                )

            new_date = patch.get("transaction_date", tx.transaction_date)
            flow = self.validator.validate(
                new_type,
                patch.get("amount", tx.amount),
                new_date,
                **{field: patch.get(field, getattr(tx, field)) for field in REFERENCE_FIELDS},
            )

            engine = BalancePropagationEngine(self.db)
            if financial_changed:
                self.validator.check_ownership(tx.budget_id, flow)
                engine.reverse(tx)
                tx.transaction_type = flow.transaction_type
                tx.amount = patch.get("amount", tx.amount)
                for field, value in reference_columns(flow).items():
                    setattr(tx, field, value)
                self.db.flush()
                engine.apply(tx, enforce_funds=not allow_insufficient)

            if new_date != tx.transaction_date:
                tx.transaction_date = new_date
                if tx.transaction_type == TRANSACTION_TYPE_EXPENSE:
                    engine.touch_payee(tx.payee_id)

            for field in METADATA_FIELDS:
                if field in patch:
                    setattr(tx, field, patch[field])

            new_state = snapshot_transaction(tx)
            if new_state != old_state:
                tx.modified_by = actor_user_id
            engine.finish()

            self.audit.record(
                tx,
                old_state,
                new_state,
                performed_by=actor_user_id,
                funds_mode=funds_mode(allow_insufficient) if financial_changed else None,
            )

        logger.info("Transaction %s updated (financial=%s)", transaction_id, financial_changed)
        return tx


class SoftDeleteTransactionUseCase:
    """Use case: soft delete a transaction and reverse its effect"""

    def __init__(self, db: Session):
        self.db = db
        self.audit = AuditTrail(db)

    def execute(self, transaction_id: int, actor_user_id: int | None = None) -> bool:
        """
        Returns:
            True if deleted, False if it was already deleted

        Raises:
            NotFoundError: transaction does not exist
        """
        with atomic(self.db):
            tx = get_transaction(self.db, transaction_id, for_update=True)
            if tx.is_deleted:
                return False

            old_state = snapshot_transaction(tx)

            engine = BalancePropagationEngine(self.db)
            engine.reverse(tx)

            tx.is_deleted = True
            tx.deleted_at = datetime.now(timezone.utc)
            tx.deleted_by = actor_user_id
            engine.finish()

            self.audit.record(tx, old_state, performed_by=actor_user_id)

        logger.info("Transaction %s soft-deleted", transaction_id)
        return True


class RestoreTransactionUseCase:
    """Use case: restore a soft-deleted transaction and reapply its effect"""

    def __init__(self, db: Session):
        self.db = db
        self.validator = FlowValidator(db)
        self.audit = AuditTrail(db)

    def execute(
        self,
        transaction_id: int,
        actor_user_id: int | None = None,
        allow_insufficient: bool = False,
    ) -> bool:
        """
        Returns:
            True if restored, False if it was not deleted

        Raises:
            NotFoundError: transaction does not exist
            FlowError: the stored row has an invalid reference shape
            InsufficientFundsError: strict mode and the effect lacks funds
        """
        with atomic(self.db):
            tx = get_transaction(self.db, transaction_id, for_update=True)
            if not tx.is_deleted:
                return False

            old_state = snapshot_transaction(tx)
            self.validator.check_ownership(tx.budget_id, flow_of(tx), require_active=False)

            tx.is_deleted = False
            tx.deleted_at = None
            tx.deleted_by = None
            tx.modified_by = actor_user_id

            engine = BalancePropagationEngine(self.db)
            engine.apply(tx, enforce_funds=not allow_insufficient)
            engine.finish()

            self.audit.record(tx, old_state, performed_by=actor_user_id, funds_mode=funds_mode(allow_insufficient))

        logger.info("Transaction %s restored", transaction_id)
        return True
