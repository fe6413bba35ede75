"""
Payee and income source API endpoints (thin CRUD)
"""
from datetime import date
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ledger.api.deps import get_db, get_current_user_id, require_budget
from ledger.application.income_sources import (
    CreateIncomeSourceUseCase, UpdateIncomeSourceUseCase, DeleteIncomeSourceUseCase,
    get_income_source,
)
from ledger.application.payees import (
    CreatePayeeUseCase, UpdatePayeeUseCase, DeletePayeeUseCase,
    get_payee,
)
from ledger.infrastructure.db.models import Payee, IncomeSource
from ledger.utils.validation import parse_amount_fields


payees_router = APIRouter(prefix="/api/v1/payees", tags=["payees"])
income_sources_router = APIRouter(prefix="/api/v1/income-sources", tags=["income-sources"])


# === Payees ===

class CreatePayeeRequest(BaseModel):
    budget_id: int
    name: str
    description: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class UpdatePayeeRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    is_active: bool | None = None


class PayeeResponse(BaseModel):
    id: int
    budget_id: int
    name: str
    is_active: bool
    total_paid: str
    last_payment_date: date | None = None
    last_payment_amount: str | None = None


def _payee_response(payee: Payee) -> PayeeResponse:
    return PayeeResponse(
        id=payee.id,
        budget_id=payee.budget_id,
        name=payee.name,
        is_active=payee.is_active,
        total_paid=str(payee.total_paid),
        last_payment_date=payee.last_payment_date,
        last_payment_amount=str(payee.last_payment_amount) if payee.last_payment_amount is not None else None,
    )


@payees_router.post("", response_model=PayeeResponse, status_code=201)
def create_payee(
    req: CreatePayeeRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, req.budget_id, user_id)
    return _payee_response(CreatePayeeUseCase(db).execute(**req.model_dump()))


@payees_router.patch("/{payee_id}", response_model=PayeeResponse)
def update_payee(
    payee_id: int,
    req: UpdatePayeeRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, get_payee(db, payee_id).budget_id, user_id)
    payee = UpdatePayeeUseCase(db).execute(payee_id, **req.model_dump(exclude_unset=True))
    return _payee_response(payee)


@payees_router.delete("/{payee_id}", status_code=204)
def delete_payee(
    payee_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, get_payee(db, payee_id).budget_id, user_id)
    DeletePayeeUseCase(db).execute(payee_id)


# === Income sources ===

class CreateIncomeSourceRequest(BaseModel):
    budget_id: int
    name: str
    description: str | None = None
    expected_monthly_amount: str | None = None
    should_notify: bool = False
    next_expected_date: date | None = None


class UpdateIncomeSourceRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None
    expected_monthly_amount: str | None = None
    should_notify: bool | None = None
    next_expected_date: date | None = None


class IncomeSourceResponse(BaseModel):
    id: int
    budget_id: int
    name: str
    is_active: bool
    expected_monthly_amount: str | None = None


def _income_source_response(source: IncomeSource) -> IncomeSourceResponse:
    expected = source.expected_monthly_amount
    return IncomeSourceResponse(
        id=source.id,
        budget_id=source.budget_id,
        name=source.name,
        is_active=source.is_active,
        expected_monthly_amount=str(expected) if expected is not None else None,
    )


def _parse_expected(data: dict) -> dict:
    try:
        return parse_amount_fields(data, ["expected_monthly_amount"])
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@income_sources_router.post("", response_model=IncomeSourceResponse, status_code=201)
def create_income_source(
    req: CreateIncomeSourceRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, req.budget_id, user_id)
    source = CreateIncomeSourceUseCase(db).execute(**_parse_expected(req.model_dump()))
    return _income_source_response(source)


@income_sources_router.patch("/{income_source_id}", response_model=IncomeSourceResponse)
def update_income_source(
    income_source_id: int,
    req: UpdateIncomeSourceRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, get_income_source(db, income_source_id).budget_id, user_id)
    patch = _parse_expected(req.model_dump(exclude_unset=True))
    source = UpdateIncomeSourceUseCase(db).execute(income_source_id, **patch)
    return _income_source_response(source)


@income_sources_router.delete("/{income_source_id}", status_code=204)
def delete_income_source(
    income_source_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, get_income_source(db, income_source_id).budget_id, user_id)
    DeleteIncomeSourceUseCase(db).execute(income_source_id)
