"""Exact conversion of catalog prices to minor currency units.

Pure functions: no I/O, no rounding. A price that does not convert exactly
is a data problem in the catalog and must never be charged approximately.
"""

from decimal import Decimal, InvalidOperation


class InexactPriceError(ValueError):
    """Price is negative, non-finite, or finer than the currency's minor unit."""


def to_minor_units(price: Decimal, minor_unit_digits: int = 2) -> int:
    """Convert a decimal amount to an integer count of minor units.

    >>> to_minor_units(Decimal("9.99"))
    999
    """
    try:
        scaled = Decimal(price).scaleb(minor_unit_digits)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise InexactPriceError(f"Not a decimal amount: {price!r}") from exc

    if not scaled.is_finite():
        raise InexactPriceError(f"Not a finite amount: {price}")
    if scaled < 0:
        raise InexactPriceError(f"Negative amount: {price}")
    if scaled != scaled.to_integral_value():
        raise InexactPriceError(f"{price} has more than {minor_unit_digits} fraction digits")
    return int(scaled)


def total_minor_units(prices: list[Decimal], minor_unit_digits: int = 2) -> int:
    """Sum of exact minor-unit conversions."""
    return sum(to_minor_units(p, minor_unit_digits) for p in prices)
