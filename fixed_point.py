# fixed_point.py
"""Unsigned fixed-point helpers.

Prices are plain ``int`` values scaled by ``UNIT`` (1e18). Results must stay in
the unsigned 256-bit range; anything outside raises instead of wrapping.
Division floors (operands are never negative, so floor == truncation).
"""

from decimal import Decimal, ROUND_FLOOR
from typing import Union

from errors import DivisionByZero, FixedPointOverflow

UNIT = 10 ** 18
MAX_UINT = 2 ** 256 - 1


def checked(value: int) -> int:
    if value < 0:
        raise FixedPointOverflow(f"underflow: {value}")
    if value > MAX_UINT:
        raise FixedPointOverflow("overflow: result exceeds 2**256 - 1")
    return value


def add(a: int, b: int) -> int:
    return checked(a + b)


def sub(a: int, b: int) -> int:
    return checked(a - b)


def mul(a: int, b: int) -> int:
    return checked(a * b)


def div(a: int, b: int) -> int:
    if b == 0:
        raise DivisionByZero("division by zero")
    return checked(a) // checked(b)


def mul_div(a: int, b: int, denominator: int) -> int:
    """floor(a * b / denominator) with the product range-checked first."""
    return div(mul(a, b), denominator)


def rescale(value: int, from_unit: int, to_unit: int) -> int:
    """Move ``value`` from one full-unit scale to another, flooring."""
    return mul_div(value, to_unit, from_unit)


def to_fixed(number: Union[int, float, str, Decimal], unit: int = UNIT) -> int:
    """Convert a human price (``150``, ``"0.015"``) to its scaled integer.

    Floats go through ``str`` so ``0.1`` becomes exactly ``10**17``.
    """
    if isinstance(number, float):
        number = str(number)
    scaled = (Decimal(number) * unit).to_integral_value(rounding=ROUND_FLOOR)
    return checked(int(scaled))


def from_fixed(value: int, unit: int = UNIT) -> float:
    return float(Decimal(value) / Decimal(unit))
