"""
Category domain rules

System categories are seeded for every budget, cannot be deleted or renamed,
and keep is_system=True forever.
"""
import re

from ledger.domain.errors import ConstraintViolation

CATEGORY_UNCATEGORIZED = "Uncategorized"
CATEGORY_SAVINGS = "Savings"
CATEGORY_DEBT = "Debt"
CATEGORY_LOANS = "Loans"
CATEGORY_CREDIT_CARDS = "Credit Cards"

SYSTEM_CATEGORIES = [
    CATEGORY_UNCATEGORIZED,
    CATEGORY_SAVINGS,
    CATEGORY_DEBT,
    CATEGORY_LOANS,
    CATEGORY_CREDIT_CARDS,
]

DEBT_CATEGORIES = (CATEGORY_DEBT, CATEGORY_LOANS, CATEGORY_CREDIT_CARDS)

_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


def validate_color(color: str | None) -> None:
    if color is not None and not _COLOR_RE.match(color):
        raise ConstraintViolation(f"Color must be a #RRGGBB hex value, got {color!r}")


def validate_name(name: str) -> str:
    """Strip and check a display name (categories, envelopes, payees...)"""
    name = (name or "").strip()
    if not name:
        raise ConstraintViolation("Name cannot be empty")
    if len(name) > 100:
        raise ConstraintViolation("Name must be at most 100 characters")
    return name
