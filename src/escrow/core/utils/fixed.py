# src/escrow/core/utils/fixed.py
from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation, ROUND_DOWN
from typing import Any

DECIMALS = 18
SCALE = 10 ** DECIMALS

# wide enough for NUMERIC(78,0) order columns
_CTX = Context(prec=100, rounding=ROUND_DOWN)
_QUANT = Decimal(1).scaleb(-DECIMALS)


class FixedPointError(ValueError):
    pass


def _decimal(value: Any) -> Decimal:
    if value is None:
        raise FixedPointError("amount is missing")
    if isinstance(value, (bool, float)):
        raise FixedPointError(f"unsupported amount type: {type(value).__name__}")
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        raise FixedPointError(f"not a number: {value!r}") from None
    if not d.is_finite():
        raise FixedPointError(f"not a finite number: {value!r}")
    return d


def to_units(value: Any) -> int:
    """
    Parse a display-unit value (Decimal / int / str) into 10^18-scaled units.

    Digits past the 18th decimal are truncated toward zero.
    float is rejected: amounts must never pass through binary floating point.
    """
    d = _decimal(value)
    try:
        q = d.quantize(_QUANT, rounding=ROUND_DOWN, context=_CTX)
    except InvalidOperation:
        raise FixedPointError(f"amount out of range: {value!r}") from None
    return int(q.scaleb(DECIMALS, context=_CTX))


def parse_scaled(value: Any) -> int:
    """Parse a value that is already stored scaled by 10^18 (order store columns)."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    d = _decimal(value)
    if d != d.to_integral_value(context=_CTX):
        raise FixedPointError(f"not an integer amount: {value!r}")
    return int(d)


def from_units(units: int) -> Decimal:
    return Decimal(int(units)).scaleb(-DECIMALS, context=_CTX)


def mul_div(a: int, b: int, c: int) -> int:
    """floor(a * b / c) on non-negative scaled integers."""
    if c <= 0:
        raise FixedPointError("division by a non-positive amount")
    return (a * b) // c


def format_units(units: int, places: int = 8) -> str:
    # display only
    return f"{float(from_units(units)):.{places}f}"
