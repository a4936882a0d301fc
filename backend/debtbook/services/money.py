# Overview: Money normalization helpers; every amount downstream is an integer in minor units.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from ..errors import ValidationFailure


# One minor unit absorbs rounding noise inherited from float-era records
MONEY_TOLERANCE = 1

DEFAULT_MINOR_UNITS_PER_MAJOR = 100


def _to_decimal(value) -> Decimal:
    if isinstance(value, bool):
        raise ValidationFailure("Amount must be numeric, not boolean")
    if value is None:
        return Decimal(0)
    try:
        # str() keeps floats like 10.1 from turning into 10.0999999...
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationFailure(f"Amount must be numeric: {value!r}")
    if not amount.is_finite():
        raise ValidationFailure(f"Amount must be finite: {value!r}")
    return amount


def normalize(value) -> int:
    """
    Round an amount already expressed in minor units to the nearest integer.

    Halves round away from zero (ROUND_HALF_UP), so 10.5 -> 11 and -10.5 -> -11.
    None is treated as 0.
    """
    return int(_to_decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_minor_units(major, multiplier: int = DEFAULT_MINOR_UNITS_PER_MAJOR) -> int:
    """Convert a major-unit amount (e.g. 12.34 naira) to integer minor units (1234 kobo)."""
    if multiplier <= 0:
        raise ValidationFailure("multiplier must be positive")
    return normalize(_to_decimal(major) * multiplier)


def to_major_units(minor, multiplier: int = DEFAULT_MINOR_UNITS_PER_MAJOR) -> Decimal:
    """Convert integer minor units back to a major-unit Decimal for display."""
    if multiplier <= 0:
        raise ValidationFailure("multiplier must be positive")
    return Decimal(normalize(minor)) / Decimal(multiplier)


def within_tolerance(a, b, tolerance: int = MONEY_TOLERANCE) -> bool:
    return abs(normalize(a) - normalize(b)) <= tolerance


def require_positive(amount, field: str = "amount") -> int:
    """Normalize and reject amounts <= 0."""
    value = normalize(amount)
    if value <= 0:
        raise ValidationFailure(f"{field} must be greater than zero")
    return value


def require_non_negative(amount, field: str = "amount") -> int:
    value = normalize(amount)
    if value < 0:
        raise ValidationFailure(f"{field} cannot be negative")
    return value
