"""Market-price based multiples and reverse solves for a wished P/E."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from intrinsic.domain.services.arithmetic import (
    Number,
    div_nonzero,
    div_opt,
    is_valid_number,
    mul_nonzero,
    mul_opt,
    null_if_negative,
    null_if_zero_or_invalid,
    round_half_away,
)
from intrinsic.domain.services.comparison import percent_change, required_net_income_change_pct
from intrinsic.domain.services.ttm import EffectiveFigures


@dataclass(frozen=True)
class Valuation:
    """Multiples at a user price. ``*_raw`` keep the sign for the score heuristic."""

    ratio_price: Number = None
    market_cap: Number = None
    enterprise_value: Number = None
    pe: Number = None
    pb: Number = None
    ev_over_cfo_raw: Number = None
    ev_over_market_cap_raw: Number = None
    ev_over_net_income_raw: Number = None

    @property
    def ev_over_cfo(self) -> Number:
        return null_if_negative(self.ev_over_cfo_raw)

    @property
    def ev_over_market_cap(self) -> Number:
        return null_if_negative(self.ev_over_market_cap_raw)

    @property
    def ev_over_net_income(self) -> Number:
        return null_if_negative(self.ev_over_net_income_raw)


@dataclass(frozen=True)
class ReverseSolve:
    """What a wished P/E implies for the price and for net income."""

    required_eps: Number = None
    shares_for_wished: Number = None
    required_net_income: Number = None
    implied_price: Number = None
    implied_price_change: Number = None
    required_net_income_change: Number = None


def enterprise_value(market_cap: Number, total_liabilities: Number, cash: Number) -> Number:
    """``market cap + liabilities - cash``, only when all three are non-zero."""
    liabilities = null_if_zero_or_invalid(total_liabilities)
    cash_value = null_if_zero_or_invalid(cash)
    if market_cap is None or liabilities is None or cash_value is None:
        return None
    return market_cap + liabilities - cash_value


def value_at_price(
    price: Number,
    shares: Number,
    book_value: Number,
    figures: EffectiveFigures,
    *,
    total_liabilities: Number = None,
    cash: Number = None,
) -> Valuation:
    ratio_price = null_if_zero_or_invalid(price)
    market_cap = mul_nonzero(ratio_price, shares)
    ev = enterprise_value(market_cap, total_liabilities, cash)
    return Valuation(
        ratio_price=ratio_price,
        market_cap=market_cap,
        enterprise_value=ev,
        pe=div_nonzero(ratio_price, figures.eps),
        pb=div_nonzero(ratio_price, book_value),
        ev_over_cfo_raw=div_nonzero(ev, figures.cash_flow_from_operations),
        ev_over_market_cap_raw=div_nonzero(ev, market_cap),
        ev_over_net_income_raw=div_nonzero(ev, figures.net_income),
    )


def implied_price_for_multiple(wished_multiple: Number, eps_to_use: Number, base_eps: Number) -> Number:
    """Rounded price at which ``eps_to_use`` trades at ``wished_multiple``.

    The gate is on ``base_eps`` (the period's own EPS), not on ``eps_to_use``,
    so a structurally loss-making period yields nothing even if its TTM is
    positive.
    """
    if not (is_valid_number(wished_multiple) and is_valid_number(eps_to_use) and is_valid_number(base_eps)):
        return None
    if wished_multiple == 0.0 or base_eps <= 0.0:
        return None
    return round_half_away(wished_multiple * eps_to_use)


def solve_wished_multiple(
    price: Optional[float],
    wished_multiple: Optional[float],
    figures: EffectiveFigures,
    base_eps: Number,
) -> ReverseSolve:
    required_eps = div_opt(price, wished_multiple)
    shares_for_wished = div_opt(figures.net_income_for_wished, figures.eps_for_wished)
    required_net_income = mul_opt(required_eps, shares_for_wished)
    implied_price = implied_price_for_multiple(wished_multiple, figures.eps_for_wished, base_eps)
    return ReverseSolve(
        required_eps=required_eps,
        shares_for_wished=shares_for_wished,
        required_net_income=required_net_income,
        implied_price=implied_price,
        implied_price_change=percent_change(implied_price, price),
        required_net_income_change=required_net_income_change_pct(
            required_net_income, figures.net_income_for_wished
        ),
    )
