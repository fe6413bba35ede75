"""
Category API endpoints
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ledger.api.deps import get_db, get_current_user_id, require_budget
from ledger.application.categories import (
    CreateCategoryUseCase, UpdateCategoryUseCase, MoveCategoryUseCase,
    ReorderCategoriesUseCase, DeleteCategoryUseCase,
    get_category,
)
from ledger.infrastructure.db.models import Category


router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


class CreateCategoryRequest(BaseModel):
    budget_id: int
    name: str
    parent_id: int | None = None
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    position: int | None = None


class UpdateCategoryRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    parent_id: int | None = None
    is_system: bool | None = None


class MoveRequest(BaseModel):
    position: int


class ReorderRequest(BaseModel):
    budget_id: int
    parent_id: int | None = None
    category_ids: list[int] | None = None


class CategoryResponse(BaseModel):
    id: int
    budget_id: int
    parent_id: int | None = None
    name: str
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    is_system: bool
    display_order: int
    total: str


def _to_response(category: Category) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        budget_id=category.budget_id,
        parent_id=category.parent_id,
        name=category.name,
        description=category.description,
        color=category.color,
        icon=category.icon,
        is_system=category.is_system,
        display_order=category.display_order,
        total=str(category.total),
    )


def _owned_category(db: Session, category_id: int, user_id: int) -> Category:
    category = get_category(db, category_id)
    require_budget(db, category.budget_id, user_id)
    return category


@router.post("", response_model=CategoryResponse, status_code=201)
def create_category(
    req: CreateCategoryRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, req.budget_id, user_id)
    return _to_response(CreateCategoryUseCase(db).execute(**req.model_dump()))


@router.get("", response_model=list[CategoryResponse])
def list_categories(
    budget_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, budget_id, user_id)
    categories = db.query(Category).filter(
        Category.budget_id == budget_id
    ).order_by(Category.parent_id.isnot(None), Category.parent_id, Category.display_order).all()
    return [_to_response(c) for c in categories]


@router.patch("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: int,
    req: UpdateCategoryRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    _owned_category(db, category_id, user_id)
    category = UpdateCategoryUseCase(db).execute(category_id, **req.model_dump(exclude_unset=True))
    return _to_response(category)


@router.post("/{category_id}/move", response_model=CategoryResponse)
def move_category(
    category_id: int,
    req: MoveRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    _owned_category(db, category_id, user_id)
    return _to_response(MoveCategoryUseCase(db).execute(category_id, req.position))


@router.post("/reorder", response_model=list[CategoryResponse])
def reorder_categories(
    req: ReorderRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    require_budget(db, req.budget_id, user_id)
    categories = ReorderCategoriesUseCase(db).execute(**req.model_dump())
    return [_to_response(c) for c in categories]


@router.delete("/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    _owned_category(db, category_id, user_id)
    DeleteCategoryUseCase(db).execute(category_id)
