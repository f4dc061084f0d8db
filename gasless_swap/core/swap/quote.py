"""Slippage-bounded output quotes.

All unit conversion goes through ``Fraction`` so nothing is lost to float
representation or to the Decimal context precision at token-decimal
boundaries.
"""

from __future__ import annotations

import math
from decimal import Decimal
from fractions import Fraction
from typing import Union

from .models import Quote

Number = Union[Decimal, int, str]


def _exact(value: Number) -> Fraction:
    if isinstance(value, float):
        raise TypeError("float amounts are not accepted; pass Decimal or str")
    return Fraction(Decimal(value) if isinstance(value, str) else value)


def to_base_units(amount: Number, decimals: int) -> int:
    """Convert a human amount to integer base units, truncating extra digits."""
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    exact = _exact(amount)
    if exact < 0:
        raise ValueError("amount must be non-negative")
    return math.floor(exact * 10**decimals)


def compute_min_output(raw_output: Number, slippage_percent: Number, decimals: int) -> int:
    """
    Minimum acceptable output in the output token's smallest unit.

    ``floor(raw_output * (100 - slippage) / 100 * 10**decimals)``
    """
    slippage = _exact(slippage_percent)
    if not 0 <= slippage <= 100:
        raise ValueError(f"slippage must be within [0, 100], got {slippage_percent}")
    raw = _exact(raw_output)
    if raw < 0:
        raise ValueError("raw output must be non-negative")
    if decimals < 0:
        raise ValueError("decimals must be non-negative")

    return math.floor(raw * (100 - slippage) / 100 * 10**decimals)


def build_quote(raw_output: Decimal, slippage_percent: Decimal, decimals: int) -> Quote:
    return Quote(
        raw_output=raw_output,
        min_output=compute_min_output(raw_output, slippage_percent, decimals),
        decimals=decimals,
        slippage_percent=slippage_percent,
    )
