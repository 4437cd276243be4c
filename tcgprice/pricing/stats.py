"""
TCG Price Aggregator - Price Point Statistics

Turns a flat list of listing prices into mean / median / min / max.
Shared by every adapter so one platform's statistics are computed the
same way regardless of whether the numbers came from an API or a crawl.

All money values use Decimal, never float.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

CENT = Decimal("0.01")


class PriceStats(NamedTuple):
    average: Decimal
    median: Decimal
    min: Decimal
    max: Decimal
    count: int


def to_cents(value: Decimal) -> Decimal:
    """Round a money value to two places, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def median_of(values: list[Decimal]) -> Decimal:
    """
    Median via sorted middle. Even-length lists average the two middle values.

    Raises:
        ValueError: If values is empty.
    """
    if not values:
        raise ValueError("median of empty list")
    ordered = sorted(values)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[middle - 1] + ordered[middle]) / 2
    return ordered[middle]


def mean_of(values: list[Decimal]) -> Decimal:
    if not values:
        raise ValueError("mean of empty list")
    return sum(values, Decimal("0")) / len(values)


def compute_price_stats(points: Iterable[Decimal | None]) -> PriceStats | None:
    """
    Compute statistics over strictly positive price points.

    None and non-positive values are dropped first. Returns None when
    nothing usable remains so callers can raise NotFound.

    Examples:
        >>> compute_price_stats([Decimal("40"), Decimal("45"), Decimal("50")]).average
        Decimal('45.00')
    """
    values = [p for p in points if p is not None and p > 0]
    if not values:
        return None

    return PriceStats(
        average=to_cents(mean_of(values)),
        median=to_cents(median_of(values)),
        min=to_cents(min(values)),
        max=to_cents(max(values)),
        count=len(values),
    )
