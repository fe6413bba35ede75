"""
Envelope API endpoints
"""
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ledger.api.deps import get_db, get_current_user_id, require_budget
from ledger.application.envelopes import (
    CreateEnvelopeUseCase, UpdateEnvelopeUseCase, MoveEnvelopeUseCase, DeleteEnvelopeUseCase,
    get_envelope,
)
from ledger.infrastructure.db.models import Envelope
from ledger.utils.validation import parse_amount_fields


router = APIRouter(prefix="/api/v1/envelopes", tags=["envelopes"])

AMOUNT_FIELDS = ("target_amount", "debt_balance", "minimum_payment", "notify_amount")


class CreateEnvelopeRequest(BaseModel):
    budget_id: int
    name: str
    envelope_type: str = "regular"
    category_id: int | None = None
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    target_amount: str | None = None
    debt_balance: str | None = None
    minimum_payment: str | None = None
    due_date: date | None = None
    should_notify: bool = False
    notify_date: date | None = None
    notify_amount: str | None = None
    position: int | None = None


class UpdateEnvelopeRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    category_id: int | None = None
    is_active: bool | None = None
    target_amount: str | None = None
    debt_balance: str | None = None
    minimum_payment: str | None = None
    due_date: date | None = None
    should_notify: bool | None = None
    notify_date: date | None = None
    notify_amount: str | None = None


class MoveRequest(BaseModel):
    position: int


class EnvelopeResponse(BaseModel):
    id: int
    budget_id: int
    category_id: int
    name: str
    envelope_type: str
    is_active: bool
    display_order: int
    current_balance: str
    target_amount: str | None = None
    debt_balance: str


def _to_response(envelope: Envelope) -> EnvelopeResponse:
    return EnvelopeResponse(
        id=envelope.id,
        budget_id=envelope.budget_id,
        category_id=envelope.category_id,
        name=envelope.name,
        envelope_type=envelope.envelope_type,
        is_active=envelope.is_active,
        display_order=envelope.display_order,
        current_balance=str(envelope.current_balance),
        target_amount=str(envelope.target_amount) if envelope.target_amount is not None else None,
        debt_balance=str(envelope.debt_balance),
    )


def _parse_amounts(data: dict) -> dict:
    try:
        return parse_amount_fields(data, AMOUNT_FIELDS)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _owned_envelope(db: Session, envelope_id: int, user_id: int) -> Envelope:
    envelope = get_envelope(db, envelope_id)
    require_budget(db, envelope.budget_id, user_id)
    return envelope


@router.post("", response_model=EnvelopeResponse, status_code=201)
def create_envelope(
    req: CreateEnvelopeRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, req.budget_id, user_id)
    envelope = CreateEnvelopeUseCase(db).execute(**_parse_amounts(req.model_dump()))
    return _to_response(envelope)


@router.get("", response_model=list[EnvelopeResponse])
def list_envelopes(
    budget_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, budget_id, user_id)
    envelopes = db.query(Envelope).filter(
        Envelope.budget_id == budget_id
    ).order_by(Envelope.category_id, Envelope.display_order).all()
    return [_to_response(e) for e in envelopes]


@router.patch("/{envelope_id}", response_model=EnvelopeResponse)
def update_envelope(
    envelope_id: int,
    req: UpdateEnvelopeRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    _owned_envelope(db, envelope_id, user_id)
    patch = _parse_amounts(req.model_dump(exclude_unset=True))
    envelope = UpdateEnvelopeUseCase(db).execute(envelope_id, **patch)
    return _to_response(envelope)


@router.post("/{envelope_id}/move", response_model=EnvelopeResponse)
def move_envelope(
    envelope_id: int,
    req: MoveRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    _owned_envelope(db, envelope_id, user_id)
    return _to_response(MoveEnvelopeUseCase(db).execute(envelope_id, req.position))


@router.delete("/{envelope_id}", status_code=204)
def delete_envelope(
    envelope_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    _owned_envelope(db, envelope_id, user_id)
    DeleteEnvelopeUseCase(db).execute(envelope_id)
