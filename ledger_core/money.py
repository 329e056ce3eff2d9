"""
Money Amount Module

Monetary quantities are held as integer counts of minor units (cents) so
that balance arithmetic is exact. Decimal major-unit input is converted
exactly once, rounding half away from zero. NEVER uses float arithmetic.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from dataclasses import dataclass
from typing import Union

from .errors import ValidationError


MINOR_UNITS_PER_MAJOR = 100
MAJOR_PRECISION = Decimal("0.01")  # Two fractional digits
MINIMUM_AMOUNT = Decimal("0.01")

# Largest value a signed 64-bit SQLite INTEGER column can hold
MAX_MINOR_UNITS = 2 ** 63 - 1
MAXIMUM_AMOUNT = Decimal(MAX_MINOR_UNITS) / MINOR_UNITS_PER_MAJOR

MajorAmount = Union[Decimal, int, float, str]


def to_decimal(value: MajorAmount) -> Decimal:
    """
    Convert an incoming major-unit value to Decimal

    Floats go through str() so that 0.1 becomes Decimal('0.1') rather than
    its binary expansion.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValidationError("Amount must be a number")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"Cannot convert '{value}' to an amount")
    else:
        raise ValidationError("Amount must be a number")

    if not result.is_finite():
        raise ValidationError("Amount must be a finite number")
    return result


@dataclass(frozen=True, order=True)
class Money:
    """
    Immutable non-negative amount in minor units
    """
    minor_units: int

    def __post_init__(self):
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise ValidationError("Minor units must be an integer")
        if self.minor_units < 0:
            raise ValidationError("Amount cannot be negative")
        if self.minor_units > MAX_MINOR_UNITS:
            raise ValidationError(f"Amount cannot exceed {MAXIMUM_AMOUNT}")

    @classmethod
    def from_major(cls, value: MajorAmount) -> "Money":
        """Multiply by 100 and round half away from zero"""
        try:
            minor = (to_decimal(value) * MINOR_UNITS_PER_MAJOR).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        except InvalidOperation:
            # More digits than the decimal context can hold
            raise ValidationError(f"Amount cannot exceed {MAXIMUM_AMOUNT}")
        return cls(int(minor))

    def to_major(self) -> Decimal:
        """Major units with exactly two places; exact since the source is an integer"""
        return (Decimal(self.minor_units) / MINOR_UNITS_PER_MAJOR).quantize(MAJOR_PRECISION)

    def to_string(self) -> str:
        """Format for display"""
        return str(self.to_major())

    def __str__(self) -> str:
        return self.to_string()


def parse_amount(value: MajorAmount) -> Money:
    """
    Validate a transaction amount and convert it to minor units

    Accepts values between 0.01 and MAXIMUM_AMOUNT with no more than two
    fractional digits, the same constraints enforced at the API boundary.

    Args:
        value: Amount in major units

    Returns:
        Money in minor units

    Raises:
        ValidationError: If the amount is out of range or too precise
    """
    amount = to_decimal(value)

    if amount < MINIMUM_AMOUNT:
        raise ValidationError(f"Amount must be at least {MINIMUM_AMOUNT}")

    if amount > MAXIMUM_AMOUNT:
        raise ValidationError(f"Amount cannot exceed {MAXIMUM_AMOUNT}")

    # In range, so quantize fits the default 28-digit context
    if amount.quantize(MAJOR_PRECISION) != amount:
        raise ValidationError("Amount cannot have more than 2 decimal places")

    return Money.from_major(amount)
