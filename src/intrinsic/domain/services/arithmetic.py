"""Null-propagating arithmetic over optional numbers.

Every derived figure in the engine is built from these helpers, so an unknown
operand always yields an unknown result instead of a number computed from a
guessed zero.
"""
from __future__ import annotations

import math
from typing import Optional

Number = Optional[float]


def is_valid_number(value: Number) -> bool:
    return value is not None and math.isfinite(value)


def has_non_zero_value(value: Number) -> bool:
    return is_valid_number(value) and value != 0.0


def add(a: Number, b: Number) -> Number:
    if a is None or b is None:
        return None
    return a + b


def sub(a: Number, b: Number) -> Number:
    if a is None or b is None:
        return None
    return a - b


def div_opt(num: Number, den: Number) -> Number:
    """Plain optional division; only a zero denominator is rejected."""
    if num is None or den is None:
        return None
    if den == 0.0:
        return None
    return num / den


def mul_opt(a: Number, b: Number) -> Number:
    if a is None or b is None:
        return None
    return a * b


def div_nonzero(num: Number, den: Number) -> Number:
    if not has_non_zero_value(num) or not has_non_zero_value(den):
        return None
    return num / den


def mul_nonzero(a: Number, b: Number) -> Number:
    if not has_non_zero_value(a) or not has_non_zero_value(b):
        return None
    return a * b


def null_if_zero_or_invalid(value: Number) -> Number:
    if not has_non_zero_value(value):
        return None
    return value


def null_if_negative(value: Number) -> Number:
    if not is_valid_number(value):
        return None
    if value < 0.0:
        return None
    return value


def round_half_away(value: Number) -> Number:
    """Round to the nearest integer, ties away from zero (``round`` uses ties-to-even)."""
    if not is_valid_number(value):
        return None
    return math.copysign(math.floor(abs(value) + 0.5), value)
