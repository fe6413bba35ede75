"""
Payee use cases

total_paid and last_payment_* are owned by the balance engine and are never
set here.
"""
import logging

from sqlalchemy.orm import Session

from ledger.application.unit_of_work import atomic
from ledger.domain.category import validate_name
from ledger.domain.errors import ConstraintViolation, NotFoundError
from ledger.infrastructure.db.models import Budget, Payee, Transaction

logger = logging.getLogger(__name__)


def get_payee(db: Session, payee_id: int) -> Payee:
    payee = db.query(Payee).filter(Payee.id == payee_id).first()
    if payee is None:
        raise NotFoundError(f"Payee {payee_id} not found")
    return payee


class CreatePayeeUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        budget_id: int,
        name: str,
        description: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        address: str | None = None,
    ) -> Payee:
        name = validate_name(name)
        with atomic(self.db):
            if self.db.query(Budget).filter(Budget.id == budget_id).first() is None:
                raise NotFoundError(f"Budget {budget_id} not found")
            payee = Payee(
                budget_id=budget_id,
                name=name,
                description=description,
                email=email,
                phone=phone,
                address=address,
                is_active=True,
            )
            self.db.add(payee)
            self.db.flush()
        return payee


class UpdatePayeeUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        payee_id: int,
        name: str = ...,
        description: str | None = ...,
        email: str | None = ...,
        phone: str | None = ...,
        address: str | None = ...,
        is_active: bool = ...,
    ) -> Payee:
        with atomic(self.db):
            payee = get_payee(self.db, payee_id)
            if name is not ...:
                payee.name = validate_name(name)
            for field, value in (
                ("description", description),
                ("email", email),
                ("phone", phone),
                ("address", address),
                ("is_active", is_active),
            ):
                if value is not ...:
                    setattr(payee, field, value)
        return payee


class DeletePayeeUseCase:
    """Use case: delete a payee no transaction references"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, payee_id: int) -> None:
        with atomic(self.db):
            payee = get_payee(self.db, payee_id)
            if self.db.query(Transaction.id).filter(Transaction.payee_id == payee_id).first():
                raise ConstraintViolation("Payee is referenced by transactions; deactivate it instead")
            self.db.delete(payee)
        logger.info("Payee %s deleted", payee_id)
