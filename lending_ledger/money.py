"""
Money Arithmetic Module

Decimal helpers shared by every ledger computation. NEVER uses float for
monetary values: amounts are Decimal, rounded half-up to cents at every
output boundary.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Optional, Union
import re

from .config import get_config

# Set global decimal context for financial precision
getcontext().prec = 28

ZERO = Decimal('0')
ONE_HUNDRED = Decimal('100')

Amount = Union[Decimal, int, float, str]


class InvalidInputError(ValueError):
    """Raised when caller-supplied data breaks a structural invariant"""


def to_decimal(value: Amount, field: str = "value") -> Decimal:
    """
    Convert a caller-supplied number to Decimal

    Accepts Decimal, int, float (through its repr) and strings in either
    "1234.56", "1,234.56" or Brazilian "1.234,56" notation.

    Raises:
        InvalidInputError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be a number, got {value!r}")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        result = _decimal_from_string(value, field)
    else:
        raise InvalidInputError(f"{field} must be a number, got {type(value).__name__}")

    if not result.is_finite():
        raise InvalidInputError(f"{field} must be finite, got {value!r}")
    return result


def _decimal_from_string(value: str, field: str) -> Decimal:
    # Keep digits, separators and sign only
    cleaned = re.sub(r'[^\d.,\-+]', '', value.strip())
    if not cleaned:
        raise InvalidInputError(f"{field} must be a non-empty number, got {value!r}")

    if ',' in cleaned and '.' in cleaned:
        # Whichever separator comes last is the decimal separator
        if cleaned.rfind(',') > cleaned.rfind('.'):
            cleaned = cleaned.replace('.', '').replace(',', '.')
        else:
            cleaned = cleaned.replace(',', '')
    elif ',' in cleaned and cleaned.count(',') == 1:
        parts = cleaned.split(',')
        if len(parts[1]) <= 2:  # Decimal separator
            cleaned = cleaned.replace(',', '.')
        else:  # Thousands separator
            cleaned = cleaned.replace(',', '')

    try:
        return Decimal(cleaned)
    except InvalidOperation:
        raise InvalidInputError(f"Cannot convert {field} {value!r} to Decimal") from None


def optional_decimal(value: Optional[Amount], field: str = "value") -> Decimal:
    """Convert an optional numeric field, treating a missing value as zero"""
    if value is None or value == "":
        return ZERO
    return to_decimal(value, field)


def round_money(value: Decimal) -> Decimal:
    """Round to cents using round-half-up"""
    places = Decimal('0.1') ** get_config().money_decimal_places
    return value.quantize(places, rounding=ROUND_HALF_UP)


def clamp(value: Decimal) -> Decimal:
    """Clamp negative intermediate results to zero"""
    return value if value > ZERO else ZERO


def settlement_tolerance() -> Decimal:
    """Remainders at or below this amount count as settled"""
    return Decimal(get_config().settlement_tolerance)


def is_settled(value: Decimal) -> bool:
    """Check whether an outstanding amount is within the settlement tolerance"""
    return value <= settlement_tolerance()


def percent(rate: Decimal) -> Decimal:
    """Convert a plain percentage (5 means 5%) into a fraction"""
    return rate / ONE_HUNDRED


def require_non_negative(value: Decimal, field: str) -> Decimal:
    """Validate that a rate or amount is not negative"""
    if value < ZERO:
        raise InvalidInputError(f"{field} cannot be negative, got {value}")
    return value
