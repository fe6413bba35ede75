"""
Ledger error taxonomy

Every error raised by the engine derives from LedgerError so the API layer
can map it to an HTTP status in one place.
"""
from decimal import Decimal


class LedgerError(Exception):
    """Base class for ledger errors"""
    pass


class NotFoundError(LedgerError):
    """Referenced entity does not exist"""
    pass


class FlowError(LedgerError, ValueError):
    """
    Transaction reference shape does not match its type

    Raised before any state change.
    """
    pass


class ConstraintViolation(LedgerError):
    """
    Operation breaks a structural rule: cross-budget reference, deleting a
    system category, amending a payoff, deleting a referenced envelope...
    """
    pass


class InsufficientFundsError(LedgerError):
    """
    Business-level funds check failed (strict mode only)

    Recoverable: the caller may resubmit with allow_insufficient=True.
    """

    def __init__(self, message: str, required: Decimal, available: Decimal):
        super().__init__(message)
        self.required = required
        self.available = available


class ConcurrencyConflict(LedgerError):
    """Serialization failure under concurrent writes; safe to retry"""
    pass


class ConsistencyDriftError(LedgerError):
    """Cached aggregates disagree with values recomputed from the log"""

    def __init__(self, budget_id: int, failed_checks: list[dict]):
        names = ", ".join(c["check_name"] for c in failed_checks)
        super().__init__(f"Budget {budget_id} has drifted: {names}")
        self.budget_id = budget_id
        self.failed_checks = failed_checks
