"""
Amount parsing for API input

Amounts travel as strings ("100.50", "100,50") and become Decimal here.
Sign and range are checked later by the engine, which knows the context.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Iterable

MONEY_PLACES = 2


def normalize_decimal_input(value: str) -> str:
    """
    Example:
        >>> normalize_decimal_input(" 100,50 ")
        "100.50"
    """
    return value.strip().replace(",", ".")


def validate_decimal_amount(value: str, max_decimal_places: int = MONEY_PLACES) -> tuple[bool, str | None]:
    """
    Check an amount string without converting it

    Returns:
        (is_valid, error_message)

    Example:
        >>> validate_decimal_amount("100.505")
        (False, "At most 2 decimal places")
    """
    normalized = normalize_decimal_input(value)

    try:
        Decimal(normalized)
    except (InvalidOperation, ValueError):
        return False, "Invalid amount"

    if not re.fullmatch(rf"-?\d+(\.\d{{1,{max_decimal_places}}})?", normalized):
        return False, f"At most {max_decimal_places} decimal places"

    return True, None


def parse_amount(value: str, max_decimal_places: int = MONEY_PLACES) -> Decimal:
    """
    Raises:
        ValueError: not a valid amount
    """
    is_valid, error = validate_decimal_amount(value, max_decimal_places)
    if not is_valid:
        raise ValueError(error)
    return Decimal(normalize_decimal_input(value))


def parse_amount_fields(data: dict, fields: Iterable[str]) -> dict:
    """
    Convert the given amount fields of a request dict in place.

    Missing and None fields are left alone, so the same call works for
    create payloads and partial updates.

    Raises:
        ValueError: "<field>: <reason>" for the first invalid field
    """
    for field in fields:
        if data.get(field) is None:
            continue
        try:
            data[field] = parse_amount(data[field])
        except ValueError as e:
            raise ValueError(f"{field}: {e}") from e
    return data
