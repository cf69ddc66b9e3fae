"""Text formatting for metric values and their period-over-period changes."""
from __future__ import annotations

import math
from typing import Optional

from intrinsic.domain.models.periods import DerivedMetric
from intrinsic.domain.services.arithmetic import is_valid_number, round_half_away

NA_VALUE = "--"

_COMPACT_STEPS = ((10**12, "T"), (10**6, "M"), (10**3, "K"))


def format_amount(value: Optional[float], *, percent: bool = False) -> str:
    if value is None:
        return NA_VALUE
    shown = value * 100.0 if percent else value
    text = f"{shown:,.2f}"
    return f"{text}%" if percent else text


def format_integer(value: Optional[float]) -> str:
    rounded = round_half_away(value)
    if rounded is None:
        return NA_VALUE
    return f"{int(rounded):,}"


def format_compact(value: Optional[float]) -> str:
    """Whole amount abbreviated with K/M/T, truncating toward zero."""
    rounded = round_half_away(value)
    if rounded is None:
        return NA_VALUE
    whole = int(rounded)
    sign = "-" if whole < 0 else ""
    for step, suffix in _COMPACT_STEPS:
        if abs(whole) >= step:
            return f"{sign}{abs(whole) // step:,}{suffix}"
    return f"{whole:,}"


def format_change(change: Optional[float]) -> str:
    if not is_valid_number(change):
        return ""
    magnitude = abs(change)
    if magnitude >= 1000.0:
        thousands = int(math.floor(magnitude / 1000.0 + 0.5))
        return f"-{thousands}k%" if change < 0 else f"{thousands}k%"
    return f"{change:.1f}%"


def format_value(metric: DerivedMetric) -> str:
    if metric.display_kind == "percent":
        return format_amount(metric.value, percent=True)
    if metric.display_kind == "integer":
        return format_integer(metric.value)
    if metric.display_kind == "compact":
        return format_compact(metric.value)
    return format_amount(metric.value)


def change_style(change: Optional[float], invert: bool = False) -> str:
    """Rich style for a change: green when it improves, red when it worsens."""
    if not is_valid_number(change) or abs(change) < 1e-9:
        return "dim"
    positive = change > 0
    if invert:
        positive = not positive
    return "green" if positive else "red"


def format_clip_value(value: float) -> str:
    """Full-precision rendering used by the plain-text export."""
    return f"{value:.12g}"
