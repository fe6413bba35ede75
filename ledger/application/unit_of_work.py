"""
Atomic unit of work for ledger mutations

Validation, balance propagation, category cascade and audit logging all run
inside one session transaction: either everything commits or nothing does.
"""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from ledger.config import get_settings
from ledger.domain.errors import ConcurrencyConflict, ConstraintViolation
from ledger.infrastructure.db.session import is_serialization_failure

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session):
    """
    Commit on success, roll back on any error.

    Driver errors are translated:
        serialization failure / deadlock -> ConcurrencyConflict
        IntegrityError                   -> ConstraintViolation

    Usage:
        with atomic(self.db):
            ...
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConstraintViolation(str(exc.orig)) from exc
    except DBAPIError as exc:
        db.rollback()
        if is_serialization_failure(exc):
            raise ConcurrencyConflict("Concurrent update detected, retry the operation") from exc
        raise
    except Exception:
        db.rollback()
        raise


def retry_on_conflict(operation, *args, attempts: int | None = None, **kwargs):
    """
    Run operation(*args, **kwargs), retrying on ConcurrencyConflict.

    The whole operation is re-run with the same intent; every attempt starts
    from a clean session state because atomic() rolled the failed one back.

    Args:
        operation: callable performing one atomic unit
        attempts: max attempts (default: CONCURRENCY_MAX_RETRIES)

    Raises:
        ConcurrencyConflict: still conflicting after the last attempt
    """
    if attempts is None:
        attempts = get_settings().CONCURRENCY_MAX_RETRIES

    for attempt in range(1, attempts + 1):
        try:
            return operation(*args, **kwargs)
        except ConcurrencyConflict:
            if attempt == attempts:
                raise
            logger.warning("Concurrency conflict, retrying (%d/%d)", attempt, attempts)
