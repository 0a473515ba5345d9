from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal


def individual_total(prices: Sequence[Decimal | None]) -> Decimal | None:
    """Sum of the individual prices, or None if any of them is unknown."""
    if not prices or any(p is None for p in prices):
        return None
    return sum((p for p in prices if p is not None), Decimal(0))


def savings_percentage(bundle_price: Decimal | None, individual_prices: Sequence[Decimal | None]) -> int:
    """Whole-percent saving of the bundle over buying every individual.

    Halves round away from zero. Never negative.
    """
    total = individual_total(individual_prices)
    if bundle_price is None or total is None or total <= 0:
        return 0
    pct = ((1 - bundle_price / total) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return max(0, int(pct))
