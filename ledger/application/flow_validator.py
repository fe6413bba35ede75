"""
Flow validator - checks a transaction intent before any state change

Shape rules (which references a type needs) live in ledger.domain.transaction;
this module adds amount/date rules and resolves references against the budget.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ledger.config import get_settings
from ledger.domain.envelope import ENVELOPE_TYPE_DEBT
from ledger.domain.errors import ConstraintViolation, NotFoundError
from ledger.domain.transaction import (
    Flow, PayoffFlow, build_flow, validate_amount, validate_transaction_date,
)
from ledger.infrastructure.db.models import Envelope, Payee, IncomeSource


def budget_today() -> date:
    """Today in the configured TIMEZONE"""
    return datetime.now(ZoneInfo(get_settings().TIMEZONE)).date()


@dataclass
class ResolvedReferences:
    """Rows a flow points at, loaded for update"""
    from_envelope: Envelope | None = None
    to_envelope: Envelope | None = None
    payee: Payee | None = None
    income_source: IncomeSource | None = None


class FlowValidator:
    """
    Validates transaction intents

    validate()        - shape, amount and date (FlowError)
    check_ownership() - references exist, belong to the budget, are usable
                        (NotFoundError / ConstraintViolation)
    """

    def __init__(self, db: Session):
        self.db = db

    def validate(
        self,
        transaction_type: str,
        amount: Decimal,
        transaction_date: date,
        today: date | None = None,
        **references: int | None,
    ) -> Flow:
        """
        Args:
            transaction_type: income / allocation / expense / transfer / payoff
            amount: must be > 0
            transaction_date: at most one day ahead of today
            today: reference date (default: budget_today())
            **references: from_envelope_id, to_envelope_id, payee_id, income_source_id

        Returns:
            Flow variant for the type

        Raises:
            FlowError
        """
        flow = build_flow(transaction_type, **references)
        validate_amount(amount)
        validate_transaction_date(transaction_date, today or budget_today())
        return flow

    def check_ownership(self, budget_id: int, flow: Flow, require_active: bool = True) -> ResolvedReferences:
        """
        Load every referenced row and check it belongs to budget_id.

        Args:
            budget_id: the transaction's budget
            flow: validated flow
            require_active: reject inactive envelopes/payees/income sources

        Raises:
            NotFoundError: reference does not exist
            ConstraintViolation: cross-budget or inactive reference, payoff on non-debt envelope
        """
        resolved = ResolvedReferences()

        if getattr(flow, "from_envelope_id", None) is not None:
            resolved.from_envelope = self._load(Envelope, flow.from_envelope_id, budget_id, require_active)
        if getattr(flow, "to_envelope_id", None) is not None:
            resolved.to_envelope = self._load(Envelope, flow.to_envelope_id, budget_id, require_active)
        if getattr(flow, "payee_id", None) is not None:
            resolved.payee = self._load(Payee, flow.payee_id, budget_id, require_active)
        if getattr(flow, "income_source_id", None) is not None:
            resolved.income_source = self._load(IncomeSource, flow.income_source_id, budget_id, require_active)

        if isinstance(flow, PayoffFlow) and resolved.from_envelope.envelope_type != ENVELOPE_TYPE_DEBT:
            raise ConstraintViolation("Payoff is only allowed for debt envelopes")

        return resolved

    def _load(self, model, entity_id: int, budget_id: int, require_active: bool):
        entity = self.db.query(model).filter(model.id == entity_id).with_for_update().first()
        label = model.__tablename__.rstrip("s").replace("_", " ")
        if entity is None:
            raise NotFoundError(f"{label.capitalize()} {entity_id} not found")
        if entity.budget_id != budget_id:
            raise ConstraintViolation(f"{label.capitalize()} {entity_id} belongs to another budget")
        if require_active and not entity.is_active:
            raise ConstraintViolation(f"{label.capitalize()} {entity_id} is inactive")
        return entity
