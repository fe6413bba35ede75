"""
Income source use cases
"""
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from ledger.application.unit_of_work import atomic
from ledger.domain.category import validate_name
from ledger.domain.errors import ConstraintViolation, NotFoundError
from ledger.infrastructure.db.models import Budget, IncomeSource, Transaction

logger = logging.getLogger(__name__)


def get_income_source(db: Session, income_source_id: int) -> IncomeSource:
    source = db.query(IncomeSource).filter(IncomeSource.id == income_source_id).first()
    if source is None:
        raise NotFoundError(f"Income source {income_source_id} not found")
    return source


def _check_notification(should_notify: bool, next_expected_date: date | None) -> None:
    if should_notify and next_expected_date is None:
        raise ConstraintViolation("Notification requires the next expected date")


class CreateIncomeSourceUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        budget_id: int,
        name: str,
        description: str | None = None,
        expected_monthly_amount: Decimal | None = None,
        should_notify: bool = False,
        next_expected_date: date | None = None,
    ) -> IncomeSource:
        name = validate_name(name)
        _check_notification(should_notify, next_expected_date)
        if expected_monthly_amount is not None and expected_monthly_amount < 0:
            raise ConstraintViolation("Expected monthly amount cannot be negative")

        with atomic(self.db):
            if self.db.query(Budget).filter(Budget.id == budget_id).first() is None:
                raise NotFoundError(f"Budget {budget_id} not found")
            source = IncomeSource(
                budget_id=budget_id,
                name=name,
                description=description,
                is_active=True,
                expected_monthly_amount=expected_monthly_amount,
                should_notify=should_notify,
                next_expected_date=next_expected_date,
            )
            self.db.add(source)
            self.db.flush()
        return source


class UpdateIncomeSourceUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        income_source_id: int,
        name: str = ...,
        description: str | None = ...,
        is_active: bool = ...,
        expected_monthly_amount: Decimal | None = ...,
        should_notify: bool = ...,
        next_expected_date: date | None = ...,
    ) -> IncomeSource:
        with atomic(self.db):
            source = get_income_source(self.db, income_source_id)
            if name is not ...:
                source.name = validate_name(name)
            for field, value in (
                ("description", description),
                ("is_active", is_active),
                ("expected_monthly_amount", expected_monthly_amount),
                ("should_notify", should_notify),
                ("next_expected_date", next_expected_date),
            ):
                if value is not ...:
                    setattr(source, field, value)
            _check_notification(source.should_notify, source.next_expected_date)
        return source


class DeleteIncomeSourceUseCase:
    """Use case: delete an income source no transaction references"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, income_source_id: int) -> None:
        with atomic(self.db):
            source = get_income_source(self.db, income_source_id)
            if self.db.query(Transaction.id).filter(Transaction.income_source_id == income_source_id).first():
                raise ConstraintViolation("Income source is referenced by transactions; deactivate it instead")
            self.db.delete(source)
        logger.info("Income source %s deleted", income_source_id)
