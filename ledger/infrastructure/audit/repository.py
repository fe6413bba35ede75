"""
Transaction event repository - append-only audit storage

Events are written in the caller's session and never updated.
"""
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from ledger.infrastructure.db.models import TransactionEvent


class TransactionEventRepository:
    """
    Repository for transaction_events
    """

    def __init__(self, db: Session):
        self.db = db

    def append_event(
        self,
        transaction_id: int,
        budget_id: int,
        event_type: str,
        changes: Dict[str, Any],
        description: Optional[str] = None,
        funds_mode: Optional[str] = None,
        performed_by: Optional[int] = None,
        performed_at: Optional[datetime] = None,
    ) -> int:
        """
        Append an event for a transaction

        Args:
            transaction_id: transaction the event belongs to
            budget_id: owning budget
            event_type: created / updated / deleted / restored
            changes: {field: {"old": ..., "new": ...}} (stored as JSONB)
            description: human readable summary
            funds_mode: strict / override, for balance-affecting events
            performed_by: acting user (optional)
            performed_at: when it happened (default: now)

        Returns:
            event_id

        Example:
            >>> repo = TransactionEventRepository(db)
            >>> event_id = repo.append_event(
            ...     transaction_id=42,
            ...     budget_id=1,
            ...     event_type="updated",
            ...     changes={"amount": {"old": "50.00", "new": "75.00"}},
            ... )
        """
        if performed_at is None:
            performed_at = datetime.now(timezone.utc)

        event = TransactionEvent(
            transaction_id=transaction_id,
            budget_id=budget_id,
            event_type=event_type,
            description=description,
            changes=changes,
            funds_mode=funds_mode,
            performed_by=performed_by,
            performed_at=performed_at,
        )

        self.db.add(event)
        self.db.flush()  # get the id without committing

        return event.id

    def get_event(self, event_id: int) -> Optional[TransactionEvent]:
        return self.db.query(TransactionEvent).filter(TransactionEvent.id == event_id).first()

    def list_events(
        self,
        transaction_id: int,
        limit: int = 100,
        event_types: Optional[List[str]] = None,
    ) -> List[TransactionEvent]:
        """
        Events of a transaction, newest first

        Args:
            transaction_id: transaction id
            limit: max events (default: 100)
            event_types: filter by type (optional)
        """
        query = self.db.query(TransactionEvent).filter(
            TransactionEvent.transaction_id == transaction_id
        )

        if event_types:
            query = query.filter(TransactionEvent.event_type.in_(event_types))

        return query.order_by(TransactionEvent.id.desc()).limit(limit).all()

    def count_events(
        self,
        budget_id: int,
        event_types: Optional[List[str]] = None
    ) -> int:
        query = self.db.query(TransactionEvent).filter(TransactionEvent.budget_id == budget_id)

        if event_types:
            query = query.filter(TransactionEvent.event_type.in_(event_types))

        return query.count()
