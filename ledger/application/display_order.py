"""
Display order sequencer

Keeps display_order a dense 0..n-1 sequence inside each scope:
    categories: (budget_id, parent_id)
    envelopes:  category_id

Every operation loads the scope, re-sequences it in memory and writes the
new positions back. No cascading updates.
"""
from sqlalchemy.orm import Session

from ledger.infrastructure.db.models import Category, Envelope


def scope_of(item) -> dict:
    """Scope columns of a category or envelope (its current in-memory values)"""
    if isinstance(item, Category):
        return {"budget_id": item.budget_id, "parent_id": item.parent_id}
    if isinstance(item, Envelope):
        return {"category_id": item.category_id}
    raise TypeError(f"{type(item).__name__} has no display order scope")


class DisplayOrderSequencer:
    """Dense ordering for categories and envelopes"""

    def __init__(self, db: Session):
        self.db = db

    def insert_at(self, item, position: int | None = None) -> int:
        """
        Place item into its scope.

        With no position the item goes last (max + 1). Otherwise items at
        position and after move down by one. The position is clamped to
        [0, len(scope)].

        Returns:
            The item's display_order
        """
        siblings = self._siblings(type(item), scope_of(item), exclude=item)
        if position is None or position > len(siblings):
            position = len(siblings)
        position = max(position, 0)

        siblings.insert(position, item)
        self._renumber(siblings)
        return item.display_order

    def move(self, item, new_position: int) -> int:
        """
        Move item within its scope.

        Items between the old and new position shift by one towards the
        vacated slot. The position is clamped to the scope.

        Returns:
            The item's display_order
        """
        siblings = self._siblings(type(item), scope_of(item), exclude=item)
        new_position = min(max(new_position, 0), len(siblings))

        siblings.insert(new_position, item)
        self._renumber(siblings)
        return item.display_order

    def remove(self, item, scope: dict | None = None) -> None:
        """
        Close the gap item leaves behind.

        Args:
            item: item being deleted or moved to another scope
            scope: the scope it leaves (default: its current scope)
        """
        siblings = self._siblings(type(item), scope or scope_of(item), exclude=item)
        self._renumber(siblings)

    def reorder(self, model, **scope) -> list:
        """
        Rebuild a dense sequence from the existing order.

        Ties are broken by creation time, then id.

        Usage:
            sequencer.reorder(Category, budget_id=1, parent_id=None)
            sequencer.reorder(Envelope, category_id=7)
        """
        siblings = self._siblings(model, scope)
        self._renumber(siblings)
        return siblings

    def _siblings(self, model, scope: dict, exclude=None) -> list:
        self.db.flush()
        query = self.db.query(model)
        for column, value in scope.items():
            attr = getattr(model, column)
            query = query.filter(attr.is_(None) if value is None else attr == value)
        if exclude is not None and exclude.id is not None:
            query = query.filter(model.id != exclude.id)
        return query.order_by(model.display_order, model.created_at, model.id).with_for_update().all()

    @staticmethod
    def _renumber(items: list) -> None:
        for index, entry in enumerate(items):
            if entry.display_order != index:
                entry.display_order = index
