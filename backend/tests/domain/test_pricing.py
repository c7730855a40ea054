"""Tests for exact price conversion to minor currency units."""

from decimal import Decimal

import pytest

from storefront.domain.pricing import InexactPriceError, to_minor_units, total_minor_units

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("price", "expected"),
    [
        (Decimal("9.99"), 999),
        (Decimal("15"), 1500),
        (Decimal("15.00"), 1500),
        (Decimal("0"), 0),
        (Decimal("0.01"), 1),
        (Decimal("1234567.89"), 123456789),
    ],
)
def test_converts_exact_amounts(price, expected):
    assert to_minor_units(price) == expected


def test_trailing_zeros_beyond_minor_unit_are_exact():
    assert to_minor_units(Decimal("4.9900")) == 499


@pytest.mark.parametrize("price", [Decimal("4.999"), Decimal("0.001"), Decimal("10.125")])
def test_rejects_sub_minor_unit_amounts(price):
    with pytest.raises(InexactPriceError):
        to_minor_units(price)


def test_rejects_negative_amount():
    with pytest.raises(InexactPriceError, match="Negative"):
        to_minor_units(Decimal("-1.00"))


@pytest.mark.parametrize("price", [Decimal("NaN"), Decimal("Infinity")])
def test_rejects_non_finite_amounts(price):
    with pytest.raises(InexactPriceError):
        to_minor_units(price)


def test_float_input_is_not_silently_rounded():
    # 9.99 as a binary float is not exactly 9.99
    with pytest.raises(InexactPriceError):
        to_minor_units(9.99)


def test_zero_digit_currency():
    assert to_minor_units(Decimal("500"), minor_unit_digits=0) == 500
    with pytest.raises(InexactPriceError):
        to_minor_units(Decimal("500.5"), minor_unit_digits=0)


def test_three_digit_currency():
    assert to_minor_units(Decimal("1.234"), minor_unit_digits=3) == 1234


def test_total_sums_exact_conversions():
    assert total_minor_units([Decimal("9.99"), Decimal("15.00")]) == 2499


def test_total_fails_on_any_inexact_price():
    with pytest.raises(InexactPriceError):
        total_minor_units([Decimal("9.99"), Decimal("0.005")])
