"""Fixed-point percentage arithmetic on integer minor currency units."""
from decimal import Decimal
from typing import Union

# Percentages carry two decimal places, so 12.50% is 1250 basis points
BASIS_POINTS_PER_PERCENT = 100
FULL_SCALE = 100 * BASIS_POINTS_PER_PERCENT

Percentage = Union[Decimal, int, str]


def to_basis_points(percentage: Percentage) -> int:
    """Convert a percentage to integer basis points, exactly.

    Raises ValueError for values with more than two decimal places.
    """
    scaled = Decimal(str(percentage)) * BASIS_POINTS_PER_PERCENT
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Percentage {percentage} has more than two decimal places")
    return int(scaled)


def apply_percentage(amount: int, percentage: Percentage) -> int:
    """floor(amount × percentage / 100) without touching floating point."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError("Amounts must be integers in minor currency units")
    if amount < 0:
        raise ValueError("Amounts must not be negative")
    return amount * to_basis_points(percentage) // FULL_SCALE
