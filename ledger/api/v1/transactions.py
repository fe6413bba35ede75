"""
Transaction API endpoints
"""
from datetime import date, datetime
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ledger.api.deps import get_db, get_current_user_id, require_budget
from ledger.application.transactions import (
    CreateTransactionUseCase, UpdateTransactionUseCase,
    SoftDeleteTransactionUseCase, RestoreTransactionUseCase,
    get_transaction,
)
from ledger.application.unit_of_work import retry_on_conflict
from ledger.infrastructure.audit.repository import TransactionEventRepository
from ledger.infrastructure.db.models import Transaction
from ledger.utils.validation import parse_amount


router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])


# === Request models ===

class CreateTransactionRequest(BaseModel):
    budget_id: int
    transaction_type: str
    amount: str  # Decimal as string
    transaction_date: date | None = None
    from_envelope_id: int | None = None
    to_envelope_id: int | None = None
    payee_id: int | None = None
    income_source_id: int | None = None
    description: str | None = None
    reference_number: str | None = None
    notes: str | None = None
    is_cleared: bool = False
    is_reconciled: bool = False
    allow_insufficient: bool = False


class UpdateTransactionRequest(BaseModel):
    transaction_type: str | None = None
    amount: str | None = None
    transaction_date: date | None = None
    from_envelope_id: int | None = None
    to_envelope_id: int | None = None
    payee_id: int | None = None
    income_source_id: int | None = None
    description: str | None = None
    reference_number: str | None = None
    notes: str | None = None
    is_cleared: bool | None = None
    is_reconciled: bool | None = None
    allow_insufficient: bool = False


class RestoreTransactionRequest(BaseModel):
    allow_insufficient: bool = False


class TransactionResponse(BaseModel):
    id: int
    budget_id: int
    transaction_type: str
    amount: str
    transaction_date: date
    from_envelope_id: int | None = None
    to_envelope_id: int | None = None
    payee_id: int | None = None
    income_source_id: int | None = None
    description: str | None = None
    reference_number: str | None = None
    notes: str | None = None
    is_cleared: bool
    is_reconciled: bool
    is_deleted: bool


class TransactionEventResponse(BaseModel):
    id: int
    event_type: str
    description: str | None = None
    changes: dict
    funds_mode: str | None = None
    performed_by: int | None = None
    performed_at: datetime


class ResultResponse(BaseModel):
    changed: bool


# === Helpers ===

def _to_response(tx: Transaction) -> TransactionResponse:
    return TransactionResponse(
        id=tx.id,
        budget_id=tx.budget_id,
        transaction_type=tx.transaction_type,
        amount=str(tx.amount),
        transaction_date=tx.transaction_date,
        from_envelope_id=tx.from_envelope_id,
        to_envelope_id=tx.to_envelope_id,
        payee_id=tx.payee_id,
        income_source_id=tx.income_source_id,
        description=tx.description,
        reference_number=tx.reference_number,
        notes=tx.notes,
        is_cleared=tx.is_cleared,
        is_reconciled=tx.is_reconciled,
        is_deleted=tx.is_deleted,
    )


def _amount(value: str):
    try:
        return parse_amount(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _owned_transaction(db: Session, transaction_id: int, user_id: int) -> Transaction:
    tx = get_transaction(db, transaction_id)
    require_budget(db, tx.budget_id, user_id)
    return tx


# === Endpoints ===

@router.post("", response_model=TransactionResponse, status_code=201)
def create_transaction(
    req: CreateTransactionRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Create a transaction (income / allocation / expense / transfer / payoff)"""
    require_budget(db, req.budget_id, user_id)
    data = req.model_dump()
    data["amount"] = _amount(req.amount)

    tx = retry_on_conflict(
        CreateTransactionUseCase(db).execute,
        actor_user_id=user_id,
        **data,
    )
    return _to_response(tx)


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction_endpoint(
    transaction_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return _to_response(_owned_transaction(db, transaction_id, user_id))


@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: int,
    req: UpdateTransactionRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Amend a transaction; only the fields sent are changed"""
    _owned_transaction(db, transaction_id, user_id)

    patch = req.model_dump(exclude_unset=True)
    allow_insufficient = patch.pop("allow_insufficient", False)
    if patch.get("amount") is not None:
        patch["amount"] = _amount(patch["amount"])

    tx = retry_on_conflict(
        UpdateTransactionUseCase(db).execute,
        transaction_id,
        actor_user_id=user_id,
        allow_insufficient=allow_insufficient,
        **patch,
    )
    return _to_response(tx)


@router.delete("/{transaction_id}", response_model=ResultResponse)
def delete_transaction(
    transaction_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Soft delete (reverses the balance effect)"""
    _owned_transaction(db, transaction_id, user_id)
    changed = retry_on_conflict(SoftDeleteTransactionUseCase(db).execute, transaction_id, actor_user_id=user_id)
    return ResultResponse(changed=changed)


@router.post("/{transaction_id}/restore", response_model=ResultResponse)
def restore_transaction(
    transaction_id: int,
    req: RestoreTransactionRequest | None = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Restore a soft-deleted transaction (reapplies the balance effect)"""
    _owned_transaction(db, transaction_id, user_id)
    changed = retry_on_conflict(
        RestoreTransactionUseCase(db).execute,
        transaction_id,
        actor_user_id=user_id,
        allow_insufficient=req.allow_insufficient if req else False,
    )
    return ResultResponse(changed=changed)


@router.get("/{transaction_id}/events", response_model=list[TransactionEventResponse])
def list_transaction_events(
    transaction_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Audit trail of a transaction, newest first"""
    _owned_transaction(db, transaction_id, user_id)
    events = TransactionEventRepository(db).list_events(transaction_id)
    return [
        TransactionEventResponse(
            id=e.id,
            event_type=e.event_type,
            description=e.description,
            changes=e.changes,
            funds_mode=e.funds_mode,
            performed_by=e.performed_by,
            performed_at=e.performed_at,
        )
        for e in events
    ]
