"""Trailing-twelve-month aggregation over same-family periods."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from intrinsic.domain.models.periods import (
    PeriodRecord,
    find_by_label,
    period_family,
    period_label,
    ttm_window,
)
from intrinsic.domain.services.arithmetic import Number, is_valid_number

FieldAccessor = Callable[[PeriodRecord], Number]


def ttm_sum(
    periods: Sequence[PeriodRecord],
    from_index: int,
    family: str,
    required_count: int,
    accessor: FieldAccessor,
) -> Number:
    """Sum ``required_count`` consecutive ``family`` periods ending at ``from_index``.

    Walks backwards, skipping other families. A missing or non-finite value
    aborts with ``None``; so does running out of periods. Partial sums are
    never returned.
    """
    if from_index < 0 or required_count <= 0:
        return None

    collected = 0
    total = 0.0
    for idx in range(from_index, -1, -1):
        if collected >= required_count:
            break
        record = periods[idx]
        if period_family(record) != family:
            continue
        value = accessor(record)
        if not is_valid_number(value):
            return None
        total += value
        collected += 1

    if collected < required_count:
        return None
    return total


def field_accessor(name: str) -> FieldAccessor:
    return lambda record: getattr(record, name)


@dataclass(frozen=True)
class EffectiveFigures:
    """Earnings figures after applying the TTM preference.

    ``*_for_wished`` additionally require the TTM aggregate to be strictly
    positive before replacing the period's own value; only the reverse solver
    reads them.
    """

    net_income: Number
    eps: Number
    cash_flow_from_operations: Number
    net_income_for_wished: Number
    eps_for_wished: Number
    ttm_applied: bool


def _pick(prefer: bool, ttm_value: Number, own: Number) -> Number:
    return ttm_value if prefer and is_valid_number(ttm_value) else own


def _pick_positive(prefer: bool, ttm_value: Number, own: Number) -> Number:
    return ttm_value if prefer and is_valid_number(ttm_value) and ttm_value > 0.0 else own


def effective_figures(
    periods: Sequence[PeriodRecord],
    record: PeriodRecord,
    prefer_ttm: bool,
) -> EffectiveFigures:
    family = period_family(record)
    window = ttm_window(family)
    prefer = prefer_ttm and window > 0

    ttm_net_income: Optional[float] = None
    ttm_eps: Optional[float] = None
    ttm_cfo: Optional[float] = None
    if window > 0:
        index = find_by_label(periods, period_label(record))
        ttm_net_income = ttm_sum(periods, index, family, window, field_accessor("net_income"))
        ttm_eps = ttm_sum(periods, index, family, window, field_accessor("eps"))
        ttm_cfo = ttm_sum(periods, index, family, window, field_accessor("cash_flow_from_operations"))

    net_income = _pick(prefer, ttm_net_income, record.net_income)
    eps = _pick(prefer, ttm_eps, record.eps)
    return EffectiveFigures(
        net_income=net_income,
        eps=eps,
        cash_flow_from_operations=_pick(prefer, ttm_cfo, record.cash_flow_from_operations),
        net_income_for_wished=_pick_positive(prefer, ttm_net_income, record.net_income),
        eps_for_wished=_pick_positive(prefer, ttm_eps, record.eps),
        ttm_applied=prefer and any(is_valid_number(v) for v in (ttm_net_income, ttm_eps, ttm_cfo)),
    )


def own_figures(record: PeriodRecord) -> EffectiveFigures:
    """Figures of a record taken as-is, used for prior-year comparisons."""
    return EffectiveFigures(
        net_income=record.net_income,
        eps=record.eps,
        cash_flow_from_operations=record.cash_flow_from_operations,
        net_income_for_wished=record.net_income,
        eps_for_wished=record.eps,
        ttm_applied=False,
    )
