"""
Budget use cases

A new budget gets its system categories; deleting a budget removes
everything it owns.
"""
import logging

from sqlalchemy.orm import Session

from ledger.application.display_order import DisplayOrderSequencer
from ledger.application.unit_of_work import atomic
from ledger.domain.category import SYSTEM_CATEGORIES, validate_name
from ledger.domain.errors import ConstraintViolation, NotFoundError
from ledger.infrastructure.db.models import (
    Budget, Category, Envelope, Payee, IncomeSource, Transaction, TransactionEvent,
)

logger = logging.getLogger(__name__)


def get_budget(db: Session, budget_id: int) -> Budget:
    budget = db.query(Budget).filter(Budget.id == budget_id).first()
    if budget is None:
        raise NotFoundError(f"Budget {budget_id} not found")
    return budget


def _validate_currency(currency: str) -> str:
    currency = (currency or "").strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ConstraintViolation(f"Currency must be a 3-letter code, got {currency!r}")
    return currency


class EnsureSystemCategoriesUseCase:
    """
    Create the budget's system categories if missing

    Runs inside the caller's unit of work (no commit).
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, budget_id: int) -> list[Category]:
        sequencer = DisplayOrderSequencer(self.db)
        created = []
        for name in SYSTEM_CATEGORIES:
            existing = self.db.query(Category).filter(
                Category.budget_id == budget_id,
                Category.name == name,
                Category.is_system.is_(True),
            ).first()
            if existing:
                continue
            category = Category(budget_id=budget_id, name=name, is_system=True, parent_id=None)
            self.db.add(category)
            sequencer.insert_at(category)
            created.append(category)
        self.db.flush()
        return created


class CreateBudgetUseCase:
    """Use case: create a budget with its system categories"""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        user_id: int,
        name: str,
        description: str | None = None,
        currency: str = "USD",
    ) -> Budget:
        """
        Raises:
            ConstraintViolation: empty name, bad currency, duplicate name for the user
        """
        name = validate_name(name)
        currency = _validate_currency(currency)

        with atomic(self.db):
            duplicate = self.db.query(Budget).filter(Budget.user_id == user_id, Budget.name == name).first()
            if duplicate:
                raise ConstraintViolation(f"Budget {name!r} already exists")

            budget = Budget(user_id=user_id, name=name, description=description, currency=currency)
            self.db.add(budget)
            self.db.flush()
            EnsureSystemCategoriesUseCase(self.db).execute(budget.id)

        logger.info("Budget %s created for user %s", budget.id, user_id)
        return budget


class UpdateBudgetUseCase:
    """Use case: rename / describe a budget"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, budget_id: int, name: str = ..., description: str | None = ...) -> Budget:
        with atomic(self.db):
            budget = get_budget(self.db, budget_id)
            if name is not ...:
                budget.name = validate_name(name)
            if description is not ...:
                budget.description = description
        return budget


class DeleteBudgetUseCase:
    """
    Use case: delete a budget and everything it owns

    Rows are removed children-first so RESTRICT references from
    transactions never block the delete.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, budget_id: int) -> None:
        with atomic(self.db):
            get_budget(self.db, budget_id)

            tx_ids = self.db.query(Transaction.id).filter(Transaction.budget_id == budget_id)
            self.db.query(TransactionEvent).filter(
                TransactionEvent.transaction_id.in_(tx_ids.scalar_subquery())
            ).delete(synchronize_session=False)
            self.db.query(Transaction).filter(Transaction.budget_id == budget_id).delete(synchronize_session=False)
            self.db.query(Envelope).filter(Envelope.budget_id == budget_id).delete(synchronize_session=False)
            self.db.query(Payee).filter(Payee.budget_id == budget_id).delete(synchronize_session=False)
            self.db.query(IncomeSource).filter(IncomeSource.budget_id == budget_id).delete(synchronize_session=False)
            self.db.query(Category).filter(
                Category.budget_id == budget_id,
                Category.parent_id.isnot(None),
            ).delete(synchronize_session=False)
            self.db.query(Category).filter(Category.budget_id == budget_id).delete(synchronize_session=False)
            self.db.query(Budget).filter(Budget.id == budget_id).delete(synchronize_session=False)

        logger.info("Budget %s deleted", budget_id)
