"""
fixed_point.py - Integer fixed-point helpers for the stable engine

Every quantity handled by the engine is a plain Python int carrying an
implied scale (see the scale constants in core.py). Division is always
floor division and always comes last. Decimal is only used at the edges,
to convert human-readable quantities in and out.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, localcontext
from typing import Any, Union

from .core import DECIMALS, ValidationError


# Enough digits for a uint256 with 18 decimals.
_CONVERSION_PRECISION = 100


def mul_div(a: int, b: int, denominator: int) -> int:
    """
    Compute floor(a * b / denominator).

    The product is formed before dividing so small values are not truncated
    to zero early.
    """
    if denominator == 0:
        raise ValidationError("Division by zero in fixed-point arithmetic")
    return (a * b) // denominator


def to_fixed(value: Union[Decimal, str, int], decimals: int = DECIMALS) -> int:
    """
    Convert a human-readable quantity to a scaled integer, truncating.

    Floats are refused: their binary representation would leak into the
    low-order digits.

    Examples:
        to_fixed("1.8") == 1_800_000_000_000_000_000
        to_fixed(2000, decimals=8) == 200_000_000_000
    """
    if isinstance(value, (bool, float)):
        raise ValidationError(
            f"Fixed-point conversion needs Decimal, str or int, got {type(value).__name__}"
        )
    with localcontext() as ctx:
        ctx.prec = _CONVERSION_PRECISION
        d = Decimal(value)
        if d.is_nan() or d.is_infinite():
            raise ValidationError(f"Cannot convert non-finite value {value!r}")
        scaled = (d * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
        return int(scaled)


def from_fixed(value: int, decimals: int = DECIMALS) -> Decimal:
    """Convert a scaled integer back to a Decimal for display."""
    with localcontext() as ctx:
        ctx.prec = _CONVERSION_PRECISION
        return Decimal(value) / (Decimal(10) ** decimals)


def is_amount(value: Any) -> bool:
    """True for ints, bools excluded."""
    return isinstance(value, int) and not isinstance(value, bool)


def require_amount(value: Any, name: str = "amount") -> int:
    """Validate a strictly positive integer amount and return it."""
    if not is_amount(value):
        raise ValidationError(f"{name} must be an int, got {type(value).__name__}")
    if value <= 0:
        raise ValidationError(f"{name} must be greater than zero, got {value}")
    return value
