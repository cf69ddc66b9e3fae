"""Period-over-period change calculations."""
from __future__ import annotations

from intrinsic.domain.services.arithmetic import Number, is_valid_number


def percent_change(current: Number, previous: Number) -> Number:
    """Change of a raw magnitude, relative to the absolute previous value."""
    if not is_valid_number(current) or not is_valid_number(previous):
        return None
    if previous == 0.0:
        return None
    return (current - previous) / abs(previous) * 100.0


def ratio_percent_change(current: Number, previous: Number) -> Number:
    """Sign-aware change for ratios, which can legitimately be negative.

    Two negatives compare magnitudes so that a narrowing loss reads as an
    improvement; a flip from negative to positive is reported as a positive
    magnitude.
    """
    if not is_valid_number(current) or not is_valid_number(previous):
        return None
    if current == 0.0 or previous == 0.0:
        return None

    if previous < 0.0 and current < 0.0:
        return (abs(previous) - abs(current)) / abs(previous) * 100.0
    if previous < 0.0 and current > 0.0:
        return abs((current - previous) / previous * 100.0)
    return (current - previous) / previous * 100.0


def required_net_income_change_pct(required: Number, baseline: Number) -> Number:
    """Change from the current net income to the one a wished multiple implies.

    A loss-making baseline turning into a required profit is measured against
    the required figure so the sign of the improvement is not inverted.
    """
    if not is_valid_number(required) or not is_valid_number(baseline):
        return None
    if baseline == 0.0:
        return None
    if baseline < 0.0 and required > 0.0:
        return (required - baseline) / required * 100.0
    return (required - baseline) / abs(baseline) * 100.0
