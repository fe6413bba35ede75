"""
Budget API endpoints (CRUD + summary / consistency / refresh)
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ledger.api.deps import get_db, get_current_user_id, get_owned_budget
from ledger.application.budgets import CreateBudgetUseCase, UpdateBudgetUseCase, DeleteBudgetUseCase
from ledger.application.consistency import ConsistencyAuditor
from ledger.application.unit_of_work import retry_on_conflict
from ledger.infrastructure.db.models import Budget


router = APIRouter(prefix="/api/v1/budgets", tags=["budgets"])


class CreateBudgetRequest(BaseModel):
    name: str
    description: str | None = None
    currency: str = "USD"


class UpdateBudgetRequest(BaseModel):
    name: str | None = None
    description: str | None = None


class BudgetResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    currency: str
    available_amount: str


class BudgetSummaryResponse(BaseModel):
    available_amount: str
    total_allocated: str
    total_in_envelopes: str
    total_income: str
    total_expenses: str
    envelope_count: int
    negative_envelope_count: int


class ConsistencyCheckResponse(BaseModel):
    check_name: str
    is_valid: bool
    details: dict


def _to_response(budget: Budget) -> BudgetResponse:
    return BudgetResponse(
        id=budget.id,
        name=budget.name,
        description=budget.description,
        currency=budget.currency,
        available_amount=str(budget.available_amount),
    )


@router.post("", response_model=BudgetResponse, status_code=201)
def create_budget(
    req: CreateBudgetRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    budget = CreateBudgetUseCase(db).execute(
        user_id=user_id,
        name=req.name,
        description=req.description,
        currency=req.currency,
    )
    return _to_response(budget)


@router.get("", response_model=list[BudgetResponse])
def list_budgets(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    budgets = db.query(Budget).filter(Budget.user_id == user_id).order_by(Budget.id).all()
    return [_to_response(b) for b in budgets]


@router.patch("/{budget_id}", response_model=BudgetResponse)
def update_budget(
    req: UpdateBudgetRequest,
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
):
    budget = UpdateBudgetUseCase(db).execute(budget.id, **req.model_dump(exclude_unset=True))
    return _to_response(budget)


@router.delete("/{budget_id}", status_code=204)
def delete_budget(
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
):
    DeleteBudgetUseCase(db).execute(budget.id)


@router.get("/{budget_id}/summary", response_model=BudgetSummaryResponse)
def get_budget_summary(
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
):
    summary = ConsistencyAuditor(db).budget_summary(budget.id)
    return BudgetSummaryResponse(
        **{k: str(v) if not isinstance(v, int) else v for k, v in summary.items()}
    )


@router.get("/{budget_id}/consistency", response_model=list[ConsistencyCheckResponse])
def validate_budget_consistency(
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
):
    """Compare cached aggregates with the transaction log (read-only)"""
    return ConsistencyAuditor(db).validate(budget.id)


@router.post("/{budget_id}/refresh")
def refresh_budget_cache(
    budget: Budget = Depends(get_owned_budget),
    db: Session = Depends(get_db),
) -> dict[str, int]:
    """Recompute every cached aggregate from the transaction log"""
    return retry_on_conflict(ConsistencyAuditor(db).refresh, budget.id)
