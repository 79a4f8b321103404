"""
Pricing calculations.

Converts dollar-per-minute rates into whole cents.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, str, Decimal]


def cents_per_minute(rate: Number, floor: Number = 0) -> int:
    """Whole cents charged per billable minute.

    The configured rate is raised to the floor first, then rounded
    half-up to the nearest cent.

    Args:
        rate: Configured dollars per minute
        floor: Category minimum dollars per minute

    Returns:
        Cents per minute (never negative)
    """
    effective = max(Decimal(str(rate)), Decimal(str(floor)))
    cents = (effective * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, int(cents))


def format_cents(cents: int) -> str:
    """Format cents as dollars, e.g. 585 -> "$5.85"."""
    return f"${Decimal(cents) / 100:,.2f}"
