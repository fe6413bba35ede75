"""
Transaction flows - one frozen dataclass per transaction type

Each flow carries only the references its type permits, so a constructed
flow always has a valid shape:

    type        from_envelope  to_envelope  payee     income_source
    income      -              -            -         required
    allocation  -              required     -         -
    expense     required       -            required  -
    transfer    required (!=to) required    -         -
    payoff      required       -            -         -
"""
from dataclasses import dataclass, fields
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, ClassVar, Dict

from ledger.domain.errors import FlowError

TRANSACTION_TYPE_INCOME = "income"
TRANSACTION_TYPE_ALLOCATION = "allocation"
TRANSACTION_TYPE_EXPENSE = "expense"
TRANSACTION_TYPE_TRANSFER = "transfer"
TRANSACTION_TYPE_PAYOFF = "payoff"

MAX_TRANSACTION_AMOUNT = Decimal("999999.99")
MAX_DAYS_AHEAD = 1
CENT = Decimal("0.01")

REFERENCE_FIELDS = ("from_envelope_id", "to_envelope_id", "payee_id", "income_source_id")


@dataclass(frozen=True)
class IncomeFlow:
    income_source_id: int

    transaction_type: ClassVar[str] = TRANSACTION_TYPE_INCOME


@dataclass(frozen=True)
class AllocationFlow:
    to_envelope_id: int

    transaction_type: ClassVar[str] = TRANSACTION_TYPE_ALLOCATION


@dataclass(frozen=True)
class ExpenseFlow:
    from_envelope_id: int
    payee_id: int

    transaction_type: ClassVar[str] = TRANSACTION_TYPE_EXPENSE


@dataclass(frozen=True)
class TransferFlow:
    from_envelope_id: int
    to_envelope_id: int

    transaction_type: ClassVar[str] = TRANSACTION_TYPE_TRANSFER

    def __post_init__(self):
        if self.from_envelope_id == self.to_envelope_id:
            raise FlowError("Transfer source and destination envelopes must differ")


@dataclass(frozen=True)
class PayoffFlow:
    from_envelope_id: int

    transaction_type: ClassVar[str] = TRANSACTION_TYPE_PAYOFF


Flow = IncomeFlow | AllocationFlow | ExpenseFlow | TransferFlow | PayoffFlow

FLOW_TYPES: Dict[str, type] = {
    cls.transaction_type: cls
    for cls in (IncomeFlow, AllocationFlow, ExpenseFlow, TransferFlow, PayoffFlow)
}

TRANSACTION_TYPES = tuple(FLOW_TYPES)


def _field_names(flow) -> tuple[str, ...]:
    return tuple(f.name for f in fields(flow))


def build_flow(transaction_type: str, **references: int | None) -> Flow:
    """
    Build a flow from raw reference columns.

    Args:
        transaction_type: one of TRANSACTION_TYPES
        **references: from_envelope_id, to_envelope_id, payee_id, income_source_id
            (missing keys are treated as None)

    Returns:
        The flow variant for the type

    Raises:
        FlowError: unknown type, missing required or present forbidden reference
    """
    flow_cls = FLOW_TYPES.get(transaction_type)
    if flow_cls is None:
        raise FlowError(f"Unknown transaction type: {transaction_type!r}")

    unknown = set(references) - set(REFERENCE_FIELDS)
    if unknown:
        raise FlowError(f"Unknown reference fields: {', '.join(sorted(unknown))}")

    required = {f.name for f in fields(flow_cls)}
    for field in REFERENCE_FIELDS:
        value = references.get(field)
        if field in required and value is None:
            raise FlowError(f"{transaction_type} transaction requires {field}")
        if field not in required and value is not None:
            raise FlowError(f"{transaction_type} transaction must not have {field}")

    return flow_cls(**{field: references[field] for field in required})


def flow_of(tx) -> Flow:
    """Flow of a stored transaction row"""
    return build_flow(
        tx.transaction_type,
        **{field: getattr(tx, field) for field in REFERENCE_FIELDS},
    )


def reference_columns(flow: Flow) -> Dict[str, Any]:
    """All four reference columns for a flow (absent ones as None)"""
    values = dict.fromkeys(REFERENCE_FIELDS)
    for field in _field_names(flow):
        values[field] = getattr(flow, field)
    return values


def envelope_ids(flow: Flow) -> list[int]:
    """Envelopes touched by a flow"""
    return [
        getattr(flow, field)
        for field in ("from_envelope_id", "to_envelope_id")
        if field in _field_names(flow)
    ]


def validate_amount(amount: Decimal) -> None:
    """
    Raises:
        FlowError: amount <= 0, finer than a cent or above MAX_TRANSACTION_AMOUNT
    """
    if amount <= 0:
        raise FlowError("Amount must be greater than zero")
    if amount != amount.quantize(CENT):
        raise FlowError("Amount must have at most two decimal places")
    if amount > MAX_TRANSACTION_AMOUNT:
        raise FlowError(f"Amount must not exceed {MAX_TRANSACTION_AMOUNT}")


def validate_transaction_date(transaction_date: date, today: date) -> None:
    """
    Raises:
        FlowError: date more than MAX_DAYS_AHEAD days after today
    """
    if transaction_date > today + timedelta(days=MAX_DAYS_AHEAD):
        raise FlowError("Transaction date cannot be more than one day in the future")
