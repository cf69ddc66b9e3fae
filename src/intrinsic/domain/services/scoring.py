"""Composite 0-10 attractiveness score for generic companies."""
from __future__ import annotations

from intrinsic.domain.services.arithmetic import Number, is_valid_number
from intrinsic.domain.services.ttm import EffectiveFigures
from intrinsic.domain.services.valuation import Valuation

EV_CFO_CAP = 50.0
PE_CAP = 50.0
PB_CAP = 20.0


def ratio_score(ratio: Number, max_ratio: float) -> Number:
    """10 at a zero ratio, falling linearly to 0 at ``max_ratio``."""
    if not is_valid_number(ratio):
        return None
    if ratio < 0.0:
        return None
    if ratio < max_ratio:
        return 10.0 * (1.0 - ratio / max_ratio)
    return 0.0


def _non_positive(value: Number) -> bool:
    return value is not None and value <= 0.0


def composite_score(valuation: Valuation, figures: EffectiveFigures, shares: Number, book_value: Number) -> Number:
    if valuation.ratio_price is None:
        return None
    if not (
        is_valid_number(figures.net_income)
        and is_valid_number(shares)
        and is_valid_number(valuation.ev_over_market_cap_raw)
        and is_valid_number(valuation.pb)
    ):
        return None

    if (
        _non_positive(figures.eps)
        or _non_positive(book_value)
        or _non_positive(figures.cash_flow_from_operations)
        or _non_positive(figures.net_income)
    ):
        return 0.0
    if valuation.enterprise_value is not None and valuation.enterprise_value <= 0.0:
        return 10.0

    pe_score = ratio_score(valuation.pe, PE_CAP)
    pb_score = ratio_score(valuation.pb, PB_CAP)
    if pe_score is None or pb_score is None:
        return None
    if valuation.ev_over_cfo_raw is not None:
        ev_score = ratio_score(valuation.ev_over_cfo_raw, EV_CFO_CAP)
        if ev_score is None:
            return None
        return 0.4 * ev_score + 0.3 * pe_score + 0.3 * pb_score
    return 0.5 * pe_score + 0.5 * pb_score
