from __future__ import annotations

from decimal import Decimal

from okupsell.store.pricing import individual_total, savings_percentage


def D(s: str) -> Decimal:
    return Decimal(s)


def test_bundle_savings_example() -> None:
    # 1 - 6.99 / 8.97 = 0.2207...
    assert savings_percentage(D("6.99"), [D("2.99"), D("1.99"), D("3.99")]) == 22


def test_savings_zero_when_a_price_is_missing() -> None:
    assert savings_percentage(None, [D("2.99"), D("1.99"), D("3.99")]) == 0
    assert savings_percentage(D("6.99"), [D("2.99"), None, D("3.99")]) == 0
    assert savings_percentage(D("6.99"), []) == 0


def test_savings_zero_when_individual_sum_is_zero() -> None:
    assert savings_percentage(D("1.00"), [D("0"), D("0")]) == 0


def test_savings_never_negative() -> None:
    assert savings_percentage(D("12.00"), [D("2.99"), D("1.99"), D("3.99")]) == 0


def test_savings_rounds_halves_away_from_zero() -> None:
    # 1 - 1.87 / 2 = 0.065 -> 6.5%
    assert savings_percentage(D("1.87"), [D("2")]) == 7


def test_free_bundle_saves_everything() -> None:
    assert savings_percentage(D("0"), [D("2.99")]) == 100


def test_individual_total() -> None:
    assert individual_total([D("2.99"), D("1.99"), D("3.99")]) == D("8.97")
    assert individual_total([D("2.99"), None]) is None
    assert individual_total([]) is None
