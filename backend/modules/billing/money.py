"""
Monetary amount validation.

Pure helpers used by the invoice entity. Amounts are Decimals; anything
else is converted through str() so floats don't leak binary rounding.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from shared.exceptions import ValidationError


# Allowed drift between a total and the sum of its parts
MONEY_TOLERANCE = Decimal("0.01")

CENTS = Decimal("0.01")


def to_amount(value: Any, field_name: str = "amount") -> Decimal:
    """
    Coerce a value to Decimal.

    Raises:
        ValidationError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} must be a number", field=field_name)

    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be a finite number", field=field_name)
    return amount


def quantize_amount(value: Any) -> Decimal:
    """Round an amount to cents."""
    return to_amount(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def validate_non_negative(amount: Any, field_name: str) -> None:
    """Reject amounts below zero."""
    if to_amount(amount, field_name) < 0:
        raise ValidationError(
            f"{field_name} cannot be negative",
            field=field_name,
            details={"value": str(amount)},
        )


def validate_positive(amount: Any, field_name: str) -> None:
    """Reject amounts that are zero or below."""
    if to_amount(amount, field_name) <= 0:
        raise ValidationError(
            f"{field_name} must be greater than zero",
            field=field_name,
            details={"value": str(amount)},
        )


def validate_sums_to_total(
    parts: Iterable[Any],
    total: Any,
    field_name: str = "total_amount",
    tolerance: Decimal = MONEY_TOLERANCE,
) -> None:
    """
    Check that parts add up to total within tolerance.

    Signed parts are allowed, so a discount is passed as a negative part.
    The tolerance bound is inclusive.

    Raises:
        ValidationError: If |sum(parts) - total| > tolerance
    """
    expected = sum((to_amount(p, field_name) for p in parts), Decimal("0"))
    actual = to_amount(total, field_name)
    difference = abs(expected - actual)
    if difference > tolerance:
        raise ValidationError(
            f"{field_name} does not match the sum of its parts",
            field=field_name,
            details={
                "expected": str(expected),
                "actual": str(actual),
                "difference": str(difference),
            },
        )
