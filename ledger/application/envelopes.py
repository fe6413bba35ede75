"""
Envelope use cases - create / update / move / delete

Balances are never edited directly: they change only through transactions.
Changing category or is_active re-runs the category cascade.
"""
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ledger.application.categories import get_category, get_system_category
from ledger.application.category_cascade import CategoryAggregationCascade
from ledger.application.display_order import DisplayOrderSequencer, scope_of
from ledger.application.unit_of_work import atomic
from ledger.domain.category import validate_color, validate_name
from ledger.domain.envelope import (
    ENVELOPE_TYPE_DEBT, ENVELOPE_TYPE_REGULAR, DEFAULT_CATEGORY_BY_TYPE,
    validate_envelope_type, check_category_placement, check_notification,
)
from ledger.domain.errors import ConstraintViolation, NotFoundError
from ledger.infrastructure.db.models import Budget, Envelope, Transaction
from ledger.utils.money import ZERO

logger = logging.getLogger(__name__)


def get_envelope(db: Session, envelope_id: int) -> Envelope:
    envelope = db.query(Envelope).filter(Envelope.id == envelope_id).first()
    if envelope is None:
        raise NotFoundError(f"Envelope {envelope_id} not found")
    return envelope


def _resolve_category(db: Session, budget_id: int, envelope_type: str, category_id: int | None):
    if category_id is None:
        category = get_system_category(db, budget_id, DEFAULT_CATEGORY_BY_TYPE[envelope_type])
    else:
        category = get_category(db, category_id)
        if category.budget_id != budget_id:
            raise ConstraintViolation("Category belongs to another budget")
    check_category_placement(envelope_type, category.name, category.is_system)
    return category


def _apply_debt_fields(envelope: Envelope) -> None:
    """Non-debt envelopes carry no debt data"""
    if envelope.envelope_type != ENVELOPE_TYPE_DEBT:
        envelope.debt_balance = ZERO
        envelope.minimum_payment = None
        envelope.due_date = None
    elif envelope.target_amount is None:
        envelope.target_amount = envelope.debt_balance or ZERO


class CreateEnvelopeUseCase:
    """Use case: create an envelope (balance starts at zero)"""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        budget_id: int,
        name: str,
        envelope_type: str = ENVELOPE_TYPE_REGULAR,
        category_id: int | None = None,
        description: str | None = None,
        color: str | None = None,
        icon: str | None = None,
        target_amount: Decimal | None = None,
        debt_balance: Decimal | None = None,
        minimum_payment: Decimal | None = None,
        due_date: date | None = None,
        should_notify: bool = False,
        notify_date: date | None = None,
        notify_amount: Decimal | None = None,
        position: int | None = None,
    ) -> Envelope:
        """
        Args:
            budget_id: owning budget
            name: unique within the budget
            envelope_type: regular / savings / debt
            category_id: default is the type's system category
            target_amount: savings goal, or amount owed for debt (defaults to debt_balance)
            debt_balance, minimum_payment, due_date: debt envelopes only
            should_notify, notify_date, notify_amount: thresholds for the notifier
            position: display position inside the category (default: last)

        Raises:
            NotFoundError: budget or category missing
            ConstraintViolation: bad type / placement / color / notification, duplicate name
        """
        name = validate_name(name)
        validate_envelope_type(envelope_type)
        validate_color(color)
        check_notification(should_notify, notify_date, notify_amount)

        with atomic(self.db):
            if self.db.query(Budget).filter(Budget.id == budget_id).first() is None:
                raise NotFoundError(f"Budget {budget_id} not found")
            category = _resolve_category(self.db, budget_id, envelope_type, category_id)

            envelope = Envelope(
                budget_id=budget_id,
                category_id=category.id,
                name=name,
                envelope_type=envelope_type,
                description=description,
                color=color,
                icon=icon,
                is_active=True,
                current_balance=ZERO,
                target_amount=target_amount,
                debt_balance=debt_balance or ZERO,
                minimum_payment=minimum_payment,
                due_date=due_date,
                should_notify=should_notify,
                notify_date=notify_date,
                notify_amount=notify_amount,
            )
            _apply_debt_fields(envelope)
            self.db.add(envelope)
            DisplayOrderSequencer(self.db).insert_at(envelope, position)

        logger.info("Envelope %s (%s) created in budget %s", envelope.id, envelope_type, budget_id)
        return envelope


class UpdateEnvelopeUseCase:
    """
    Use case: update an envelope

    envelope_type is fixed after creation. A category change appends the
    envelope to the new category and recomputes both categories.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        envelope_id: int,
        name: str = ...,
        description: str | None = ...,
        color: str | None = ...,
        icon: str | None = ...,
        category_id: int | None = ...,
        is_active: bool = ...,
        target_amount: Decimal | None = ...,
        debt_balance: Decimal = ...,
        minimum_payment: Decimal | None = ...,
        due_date: date | None = ...,
        should_notify: bool = ...,
        notify_date: date | None = ...,
        notify_amount: Decimal | None = ...,
    ) -> Envelope:
        with atomic(self.db):
            envelope = get_envelope(self.db, envelope_id)
            touched = set()

            if name is not ...:
                name = validate_name(name)
                duplicate = self.db.query(Envelope).filter(
                    Envelope.budget_id == envelope.budget_id,
                    Envelope.name == name,
                    Envelope.id != envelope.id,
                ).first()
                if duplicate:
                    raise ConstraintViolation(f"Envelope {name!r} already exists")
                envelope.name = name
            if description is not ...:
                envelope.description = description
            if color is not ...:
                validate_color(color)
                envelope.color = color
            if icon is not ...:
                envelope.icon = icon

            for field, value in (
                ("target_amount", target_amount),
                ("debt_balance", debt_balance),
                ("minimum_payment", minimum_payment),
                ("due_date", due_date),
                ("should_notify", should_notify),
                ("notify_date", notify_date),
                ("notify_amount", notify_amount),
            ):
                if value is not ...:
                    setattr(envelope, field, value)
            _apply_debt_fields(envelope)
            check_notification(envelope.should_notify, envelope.notify_date, envelope.notify_amount)

            if category_id is not ... and category_id != envelope.category_id:
                category = _resolve_category(self.db, envelope.budget_id, envelope.envelope_type, category_id)
                sequencer = DisplayOrderSequencer(self.db)
                old_scope = scope_of(envelope)
                touched.update({envelope.category_id, category.id})
                envelope.category_id = category.id
                sequencer.remove(envelope, old_scope)
                sequencer.insert_at(envelope)

            if is_active is not ... and is_active != envelope.is_active:
                envelope.is_active = is_active
                touched.add(envelope.category_id)

            self.db.flush()
            CategoryAggregationCascade(self.db).recompute_many(touched)

        return envelope


class MoveEnvelopeUseCase:
    """Use case: move an envelope to a position inside its category"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, envelope_id: int, position: int) -> Envelope:
        with atomic(self.db):
            envelope = get_envelope(self.db, envelope_id)
            DisplayOrderSequencer(self.db).move(envelope, position)
        return envelope


class DeleteEnvelopeUseCase:
    """
    Use case: delete an envelope

    Refused while any transaction (active or soft-deleted) references it.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, envelope_id: int) -> None:
        with atomic(self.db):
            envelope = get_envelope(self.db, envelope_id)
            referenced = self.db.query(Transaction.id).filter(
                or_(
                    Transaction.from_envelope_id == envelope_id,
                    Transaction.to_envelope_id == envelope_id,
                )
            ).first()
            if referenced:
                raise ConstraintViolation("Envelope is referenced by transactions and cannot be deleted")

            category_id = envelope.category_id
            old_scope = scope_of(envelope)
            self.db.delete(envelope)
            self.db.flush()
            DisplayOrderSequencer(self.db).remove(envelope, old_scope)
            CategoryAggregationCascade(self.db).recompute_many([category_id])

        logger.info("Envelope %s deleted", envelope_id)
