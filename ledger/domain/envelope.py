"""
Envelope domain rules

Types:
- regular: everyday spending, lives in any non-reserved category
- savings: lives in the "Savings" system category
- debt:    lives in "Debt", "Loans" or "Credit Cards"; current_balance is
           allocated-but-unpaid money, target_amount is the amount still owed
"""
from decimal import Decimal

from ledger.domain.category import (
    CATEGORY_UNCATEGORIZED, CATEGORY_SAVINGS, CATEGORY_DEBT, DEBT_CATEGORIES,
)
from ledger.domain.errors import ConstraintViolation

ENVELOPE_TYPE_REGULAR = "regular"
ENVELOPE_TYPE_SAVINGS = "savings"
ENVELOPE_TYPE_DEBT = "debt"

ENVELOPE_TYPES = (ENVELOPE_TYPE_REGULAR, ENVELOPE_TYPE_SAVINGS, ENVELOPE_TYPE_DEBT)

# Category an envelope falls back to when none is given (or its category is deleted)
DEFAULT_CATEGORY_BY_TYPE = {
    ENVELOPE_TYPE_REGULAR: CATEGORY_UNCATEGORIZED,
    ENVELOPE_TYPE_SAVINGS: CATEGORY_SAVINGS,
    ENVELOPE_TYPE_DEBT: CATEGORY_DEBT,
}

RESERVED_CATEGORIES = (CATEGORY_SAVINGS,) + DEBT_CATEGORIES


def validate_envelope_type(envelope_type: str) -> None:
    if envelope_type not in ENVELOPE_TYPES:
        raise ConstraintViolation(
            f"Envelope type must be one of {', '.join(ENVELOPE_TYPES)}, got {envelope_type!r}"
        )


def check_category_placement(envelope_type: str, category_name: str, category_is_system: bool) -> None:
    """
    Raises:
        ConstraintViolation: envelope type does not belong in the category
    """
    reserved = category_is_system and category_name in RESERVED_CATEGORIES

    if envelope_type == ENVELOPE_TYPE_SAVINGS:
        if not (category_is_system and category_name == CATEGORY_SAVINGS):
            raise ConstraintViolation("Savings envelopes must be in the Savings category")
    elif envelope_type == ENVELOPE_TYPE_DEBT:
        if not (category_is_system and category_name in DEBT_CATEGORIES):
            raise ConstraintViolation(
                "Debt envelopes must be in the Debt, Loans or Credit Cards category"
            )
    elif reserved:
        raise ConstraintViolation(f"Regular envelopes cannot be placed in {category_name}")


def check_notification(should_notify: bool, notify_date, notify_amount: Decimal | None) -> None:
    if should_notify and notify_date is None and notify_amount is None:
        raise ConstraintViolation("Notification requires a date or an amount")
