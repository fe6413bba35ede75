"""
Tests for dense display ordering of categories and envelopes
"""
import pytest

from ledger.application.categories import (
    CreateCategoryUseCase, MoveCategoryUseCase, ReorderCategoriesUseCase, DeleteCategoryUseCase,
)
from ledger.application.display_order import DisplayOrderSequencer, scope_of
from ledger.application.envelopes import (
    CreateEnvelopeUseCase, MoveEnvelopeUseCase, DeleteEnvelopeUseCase, UpdateEnvelopeUseCase,
)
from ledger.domain.errors import ConstraintViolation
from ledger.infrastructure.db.models import Category, Envelope

SYSTEM = ["Uncategorized", "Savings", "Debt", "Loans", "Credit Cards"]


def _categories(db, budget_id, parent_id=None):
    query = db.query(Category).filter(Category.budget_id == budget_id)
    query = query.filter(Category.parent_id.is_(None) if parent_id is None else Category.parent_id == parent_id)
    return [c.name for c in query.order_by(Category.display_order).all()]


def _orders(db, model, **scope):
    query = db.query(model)
    for column, value in scope.items():
        attr = getattr(model, column)
        query = query.filter(attr.is_(None) if value is None else attr == value)
    return sorted(item.display_order for item in query.all())


class TestCategoryOrder:

    def test_system_categories_seeded_in_order(self, db_session, budget):
        assert _categories(db_session, budget.id) == SYSTEM
        assert _orders(db_session, Category, budget_id=budget.id, parent_id=None) == [0, 1, 2, 3, 4]

    def test_new_category_goes_last(self, db_session, budget):
        food = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Food")
        assert food.display_order == 5

    def test_insert_at_position_shifts_others(self, db_session, budget):
        CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Food", position=1)
        assert _categories(db_session, budget.id) == ["Uncategorized", "Food"] + SYSTEM[1:]
        assert _orders(db_session, Category, budget_id=budget.id, parent_id=None) == list(range(6))

    @pytest.mark.parametrize("position, expected_index", [(99, 5), (-3, 0)])
    def test_position_is_clamped(self, db_session, budget, position, expected_index):
        food = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Food", position=position)
        assert food.display_order == expected_index

    def test_scopes_are_independent(self, db_session, budget):
        home = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Home")
        a = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Rent", parent_id=home.id)
        b = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Power", parent_id=home.id)
        assert (a.display_order, b.display_order) == (0, 1)
        assert home.display_order == 5

    def test_move_down_and_up(self, db_session, budget):
        food = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Food")

        MoveCategoryUseCase(db_session).execute(food.id, 0)
        assert _categories(db_session, budget.id) == ["Food"] + SYSTEM

        MoveCategoryUseCase(db_session).execute(food.id, 3)
        assert _categories(db_session, budget.id) == ["Uncategorized", "Savings", "Debt", "Food", "Loans", "Credit Cards"]
        assert _orders(db_session, Category, budget_id=budget.id, parent_id=None) == list(range(6))

    def test_delete_closes_gap(self, db_session, budget):
        food = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Food", position=0)
        DeleteCategoryUseCase(db_session).execute(food.id)
        assert _categories(db_session, budget.id) == SYSTEM
        assert _orders(db_session, Category, budget_id=budget.id, parent_id=None) == [0, 1, 2, 3, 4]

    def test_reorder_explicit(self, db_session, budget):
        ids = {c.name: c.id for c in db_session.query(Category).filter(Category.budget_id == budget.id)}
        order = [ids[name] for name in reversed(SYSTEM)]

        ReorderCategoriesUseCase(db_session).execute(budget.id, category_ids=order)

        assert _categories(db_session, budget.id) == list(reversed(SYSTEM))

    def test_reorder_rejects_incomplete_list(self, db_session, budget):
        first = db_session.query(Category).filter(Category.budget_id == budget.id).first()
        with pytest.raises(ConstraintViolation):
            ReorderCategoriesUseCase(db_session).execute(budget.id, category_ids=[first.id])
        assert _categories(db_session, budget.id) == SYSTEM

    def test_reorder_compacts_gaps_and_ties(self, db_session, budget):
        categories = db_session.query(Category).filter(Category.budget_id == budget.id).order_by(Category.id).all()
        for category, order in zip(categories, [10, 20, 20, 40, 40]):
            category.display_order = order
        db_session.commit()

        ReorderCategoriesUseCase(db_session).execute(budget.id)

        assert _categories(db_session, budget.id) == SYSTEM
        assert _orders(db_session, Category, budget_id=budget.id, parent_id=None) == [0, 1, 2, 3, 4]


class TestEnvelopeOrder:

    @pytest.fixture
    def envelopes(self, db_session, budget):
        use_case = CreateEnvelopeUseCase(db_session)
        return [use_case.execute(budget_id=budget.id, name=name) for name in ("Rent", "Food", "Fuel")]

    def _names(self, db, category_id):
        return [
            e.name for e in db.query(Envelope).filter(Envelope.category_id == category_id).order_by(Envelope.display_order)
        ]

    def test_appended_in_creation_order(self, envelopes):
        assert [e.display_order for e in envelopes] == [0, 1, 2]

    def test_insert_at_position(self, db_session, budget, envelopes):
        gym = CreateEnvelopeUseCase(db_session).execute(budget_id=budget.id, name="Gym", position=1)
        assert gym.display_order == 1
        assert self._names(db_session, gym.category_id) == ["Rent", "Gym", "Food", "Fuel"]

    def test_move(self, db_session, envelopes):
        rent = envelopes[0]
        MoveEnvelopeUseCase(db_session).execute(rent.id, 2)
        assert self._names(db_session, rent.category_id) == ["Food", "Fuel", "Rent"]

    def test_delete_closes_gap(self, db_session, envelopes):
        category_id = envelopes[0].category_id
        DeleteEnvelopeUseCase(db_session).execute(envelopes[1].id)
        assert self._names(db_session, category_id) == ["Rent", "Fuel"]
        assert _orders(db_session, Envelope, category_id=category_id) == [0, 1]

    def test_category_change_leaves_dense_sequences(self, db_session, budget, envelopes):
        travel = CreateCategoryUseCase(db_session).execute(budget_id=budget.id, name="Travel")
        old_category_id = envelopes[0].category_id

        UpdateEnvelopeUseCase(db_session).execute(envelopes[0].id, category_id=travel.id)

        assert self._names(db_session, old_category_id) == ["Food", "Fuel"]
        assert _orders(db_session, Envelope, category_id=old_category_id) == [0, 1]
        assert envelopes[0].display_order == 0


def test_scope_of():
    assert scope_of(Category(budget_id=1, parent_id=None)) == {"budget_id": 1, "parent_id": None}
    assert scope_of(Envelope(category_id=3)) == {"category_id": 3}
    with pytest.raises(TypeError):
        scope_of(object())


def test_sequencer_reorder_envelopes(db_session, budget, groceries, dining):
    groceries.display_order = 7
    dining.display_order = 3
    db_session.flush()

    ordered = DisplayOrderSequencer(db_session).reorder(Envelope, category_id=groceries.category_id)
    db_session.commit()

    assert [e.name for e in ordered] == ["Dining out", "Groceries"]
    assert (dining.display_order, groceries.display_order) == (0, 1)
