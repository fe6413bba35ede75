"""
Category aggregation cascade

category.total = sum(active envelope balances in the category) + sum(child totals)

Categories nest exactly one level, so a recompute touches at most two
levels: the touched categories first, then their parents.
"""
import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func
from sqlalchemy.orm import Session

from ledger.infrastructure.db.models import Category, Envelope
from ledger.utils.money import to_money

logger = logging.getLogger(__name__)


class CategoryAggregationCascade:
    """Recomputes cached Category.total values inside the caller's unit of work"""

    def __init__(self, db: Session):
        self.db = db

    def recompute(self, category_id: int) -> Decimal | None:
        """
        Recompute one category from its envelopes and (already up to date) children.

        Returns:
            New total, or None if the category does not exist
        """
        category = self.db.query(Category).filter(Category.id == category_id).with_for_update().first()
        if category is None:
            return None

        self.db.flush()

        envelopes_total = self.db.query(
            func.coalesce(func.sum(Envelope.current_balance), 0)
        ).filter(
            Envelope.category_id == category_id,
            Envelope.is_active.is_(True),
        ).scalar()

        children_total = self.db.query(
            func.coalesce(func.sum(Category.total), 0)
        ).filter(
            Category.parent_id == category_id,
        ).scalar()

        total = to_money(envelopes_total) + to_money(children_total)
        if category.total != total:
            logger.debug("Category %s total %s -> %s", category_id, category.total, total)
            category.total = total
        return total

    def recompute_many(self, category_ids: Iterable[int | None]) -> None:
        """
        Recompute touched categories, then each one's parent.

        Call once at the end of the unit of work with every category whose
        envelopes changed balance, membership or is_active.
        """
        touched = {cid for cid in category_ids if cid is not None}
        if not touched:
            return

        categories = self.db.query(Category).filter(Category.id.in_(touched)).all()

        # Children before parents: a touched top-level category sums its
        # children's totals, so those must be fresh first.
        children = [c for c in categories if c.parent_id is not None]
        parents = {c.parent_id for c in children} | {c.id for c in categories if c.parent_id is None}

        for category in children:
            self.recompute(category.id)
        for parent_id in sorted(parents):
            self.recompute(parent_id)

    def recompute_budget(self, budget_id: int) -> int:
        """
        Recompute every category of a budget.

        Returns:
            Number of categories whose total changed
        """
        categories = self.db.query(Category).filter(Category.budget_id == budget_id).all()
        before = {c.id: c.total for c in categories}

        for category in sorted(categories, key=lambda c: c.parent_id is None):
            self.recompute(category.id)

        return sum(1 for c in categories if c.total != before[c.id])
