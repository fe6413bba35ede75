"""
Money helpers shared by the engine and the audit trail.

Usage:
    from ledger.utils.money import to_money, format_money

    to_money(0.1 + 0.2)            -> Decimal("0.30")
    format_money(1200.5, "USD")    -> "1 200.50 USD"
"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """
    Normalize a DB/driver value to a 2-place Decimal.

    Aggregates come back as Decimal on PostgreSQL and may come back as float
    on SQLite; both end up as the same Decimal here. None -> 0.00.
    """
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount, currency: str = "USD", decimals: int = 2) -> str:
    """
    Format an amount with space thousands separators and the currency code.

    Args:
        amount: int / float / Decimal / str
        currency: ISO currency code
        decimals: digits after the point

    Returns:
        "15 000.00 USD"
    """
    if isinstance(amount, str):
        amount = Decimal(amount)
    fmt = f"{{:,.{decimals}f}}"
    formatted = fmt.format(amount).replace(",", " ")
    return f"{formatted} {currency}"
