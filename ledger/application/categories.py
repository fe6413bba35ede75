"""
Category use cases - create / update / move / reorder / delete

Categories nest one level deep. System categories can only be recolored or
re-described.
"""
import logging

from sqlalchemy.orm import Session

from ledger.application.category_cascade import CategoryAggregationCascade
from ledger.application.display_order import DisplayOrderSequencer, scope_of
from ledger.application.unit_of_work import atomic
from ledger.domain.category import validate_color, validate_name
from ledger.domain.envelope import DEFAULT_CATEGORY_BY_TYPE
from ledger.domain.errors import ConstraintViolation, NotFoundError
from ledger.infrastructure.db.models import Budget, Category, Envelope

logger = logging.getLogger(__name__)


def get_category(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def get_system_category(db: Session, budget_id: int, name: str) -> Category:
    category = db.query(Category).filter(
        Category.budget_id == budget_id,
        Category.name == name,
        Category.is_system.is_(True),
    ).first()
    if category is None:
        raise NotFoundError(f"System category {name!r} missing in budget {budget_id}")
    return category


def _check_parent(db: Session, budget_id: int, parent_id: int | None, category: Category | None = None) -> None:
    """
    Raises:
        ConstraintViolation: parent in another budget, parent is itself a child,
            self-parenting, or category with children becoming a child
    """
    if parent_id is None:
        return
    parent = get_category(db, parent_id)
    if parent.budget_id != budget_id:
        raise ConstraintViolation("Parent category belongs to another budget")
    if parent.parent_id is not None:
        raise ConstraintViolation("Categories can only be nested one level deep")
    if category is not None:
        if parent.id == category.id:
            raise ConstraintViolation("Category cannot be its own parent")
        has_children = db.query(Category).filter(Category.parent_id == category.id).first()
        if has_children:
            raise ConstraintViolation("Category with subcategories cannot become a subcategory")


def _check_unique_name(db: Session, budget_id: int, parent_id: int | None, name: str, *exclude_ids: int):
    query = db.query(Category).filter(
        Category.budget_id == budget_id,
        Category.name == name,
        Category.parent_id.is_(None) if parent_id is None else Category.parent_id == parent_id,
    )
    if exclude_ids:
        query = query.filter(Category.id.notin_(exclude_ids))
    if query.first():
        raise ConstraintViolation(f"Category {name!r} already exists here")


class CreateCategoryUseCase:
    """Use case: create a category (optionally under a parent, at a position)"""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        budget_id: int,
        name: str,
        parent_id: int | None = None,
        description: str | None = None,
        color: str | None = None,
        icon: str | None = None,
        position: int | None = None,
    ) -> Category:
        name = validate_name(name)
        validate_color(color)

        with atomic(self.db):
            if self.db.query(Budget).filter(Budget.id == budget_id).first() is None:
                raise NotFoundError(f"Budget {budget_id} not found")
            _check_parent(self.db, budget_id, parent_id)
            _check_unique_name(self.db, budget_id, parent_id, name)

            category = Category(
                budget_id=budget_id,
                parent_id=parent_id,
                name=name,
                description=description,
                color=color,
                icon=icon,
                is_system=False,
            )
            self.db.add(category)
            DisplayOrderSequencer(self.db).insert_at(category, position)

        logger.info("Category %s created in budget %s", category.id, budget_id)
        return category


class UpdateCategoryUseCase:
    """
    Use case: update a category

    Changing parent_id moves the category to the end of the new scope and
    recomputes both parents' totals.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        category_id: int,
        name: str = ...,
        description: str | None = ...,
        color: str | None = ...,
        icon: str | None = ...,
        parent_id: int | None = ...,  # sentinel: ... means "not provided"
        is_system: bool = ...,
    ) -> Category:
        with atomic(self.db):
            category = get_category(self.db, category_id)

            if is_system is not ... and is_system != category.is_system:
                raise ConstraintViolation("is_system cannot be changed")

            if name is not ...:
                name = validate_name(name)
                if name != category.name:
                    if category.is_system:
                        raise ConstraintViolation("System categories cannot be renamed")
                    target_parent = category.parent_id if parent_id is ... else parent_id
                    _check_unique_name(self.db, category.budget_id, target_parent, name, category.id)
                    category.name = name

            if description is not ...:
                category.description = description
            if color is not ...:
                validate_color(color)
                category.color = color
            if icon is not ...:
                category.icon = icon

            if parent_id is not ... and parent_id != category.parent_id:
                if category.is_system:
                    raise ConstraintViolation("System categories cannot be nested")
                _check_parent(self.db, category.budget_id, parent_id, category)
                _check_unique_name(self.db, category.budget_id, parent_id, category.name, category.id)

                sequencer = DisplayOrderSequencer(self.db)
                old_scope = scope_of(category)
                old_parent_id = category.parent_id
                category.parent_id = parent_id
                sequencer.remove(category, old_scope)
                sequencer.insert_at(category)

                CategoryAggregationCascade(self.db).recompute_many([old_parent_id, parent_id])

        return category


class MoveCategoryUseCase:
    """Use case: move a category to a position among its siblings"""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, category_id: int, position: int) -> Category:
        with atomic(self.db):
            category = get_category(self.db, category_id)
            DisplayOrderSequencer(self.db).move(category, position)
        return category


class ReorderCategoriesUseCase:
    """
    Use case: re-sequence one scope of categories

    With category_ids the scope takes exactly that order; without, the
    existing order is compacted to 0..n-1.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        budget_id: int,
        parent_id: int | None = None,
        category_ids: list[int] | None = None,
    ) -> list[Category]:
        with atomic(self.db):
            sequencer = DisplayOrderSequencer(self.db)
            categories = sequencer.reorder(Category, budget_id=budget_id, parent_id=parent_id)

            if category_ids is not None:
                by_id = {c.id: c for c in categories}
                if sorted(category_ids) != sorted(by_id):
                    raise ConstraintViolation("Reorder list must contain every category of the scope exactly once")
                categories = [by_id[cid] for cid in category_ids]
                for index, category in enumerate(categories):
                    category.display_order = index

        return categories


class DeleteCategoryUseCase:
    """
    Use case: delete a non-system category

    Its envelopes fall back to their type's system category (Uncategorized
    for regular envelopes); its subcategories become top-level.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, category_id: int) -> None:
        with atomic(self.db):
            category = get_category(self.db, category_id)
            if category.is_system:
                raise ConstraintViolation("System categories cannot be deleted")

            budget_id = category.budget_id
            sequencer = DisplayOrderSequencer(self.db)
            touched = {category.parent_id}

            envelopes = self.db.query(Envelope).filter(
                Envelope.category_id == category_id
            ).order_by(Envelope.display_order, Envelope.id).all()
            for envelope in envelopes:
                fallback = get_system_category(self.db, budget_id, DEFAULT_CATEGORY_BY_TYPE[envelope.envelope_type])
                envelope.category_id = fallback.id
                sequencer.insert_at(envelope)
                touched.add(fallback.id)

            children = self.db.query(Category).filter(
                Category.parent_id == category_id
            ).order_by(Category.display_order, Category.id).all()
            for child in children:
                # the parent being deleted may share the child's name
                _check_unique_name(self.db, budget_id, None, child.name, child.id, category_id)
                child.parent_id = None
                sequencer.insert_at(child)

            old_scope = scope_of(category)
            self.db.flush()
            self.db.delete(category)
            sequencer.remove(category, old_scope)

            CategoryAggregationCascade(self.db).recompute_many(touched)

        logger.info("Category %s deleted, %d envelopes reassigned", category_id, len(envelopes))
