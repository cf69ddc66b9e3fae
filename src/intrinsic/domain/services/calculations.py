"""Domain service layer deriving per-period financial metrics.

This module implements:
- Generic company metrics (margins, returns, liquidity, leverage, multiples, score)
- Bank metrics (tangible equity, PPOP, asset quality, capital ratios)
- Insurer metrics (underwriting ratios, returns, multiples)

Each entity type has one pure function computing a flat ``label -> value`` map
for a record; the same function runs on the prior-year record so that every
metric carries its period-over-period change. Missing inputs yield ``None``,
never an exception and never a zero.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from intrinsic.domain.models.periods import (
    DerivedMetric,
    EntityType,
    MetricBundle,
    PeriodRecord,
    UserInputs,
    find_prior_year_same_period,
    period_label,
)
from intrinsic.domain.services.arithmetic import (
    Number,
    add,
    div_nonzero,
    round_half_away,
    sub,
)
from intrinsic.domain.services.comparison import percent_change, ratio_percent_change
from intrinsic.domain.services.scoring import composite_score
from intrinsic.domain.services.ttm import EffectiveFigures, effective_figures, own_figures
from intrinsic.domain.services.valuation import (
    ReverseSolve,
    solve_wished_multiple,
    value_at_price,
)

logger = logging.getLogger(__name__)

RAW = "raw"
RATIO = "ratio"

Values = Dict[str, Number]


@dataclass(frozen=True)
class _Slot:
    label: str
    kind: str
    change: Optional[str] = RAW
    invert: bool = False
    input_dependent: bool = False


def _valuation_slot(label: str, kind: str = "ratio", change: str = RATIO, invert: bool = True) -> _Slot:
    return _Slot(label, kind, change, invert=invert, input_dependent=True)


_TARGET_SLOTS = {
    "P needed": "implied_price_change",
    "NP needed": "required_net_income_change",
    "NI needed": "required_net_income_change",
}

GENERIC_LAYOUT: Dict[str, Tuple[_Slot, ...]] = {
    "score": (
        _Slot("Score", "ratio", RATIO, input_dependent=True),
        _Slot("P needed", "compact", None, input_dependent=True),
        _Slot("NP needed", "compact", None, input_dependent=True),
    ),
    "valuation": (
        _valuation_slot("P / E"),
        _valuation_slot("P / BV"),
        _valuation_slot("EV", kind="compact", change=RAW, invert=False),
        _valuation_slot("EVcap"),
        _valuation_slot("EV / CFop"),
        _valuation_slot("EV / NP"),
    ),
    "balance": (
        _Slot("CA", "amount"),
        _Slot("NCA", "amount"),
        _Slot("Cash", "amount"),
        _Slot("TA", "amount"),
        _Slot("CL", "amount"),
        _Slot("NCL", "amount"),
        _Slot("E", "amount"),
        _Slot("TL", "amount"),
        _Slot("WC", "amount"),
        _Slot("WC / NCL", "ratio", RATIO),
        _Slot("Shs~", "integer"),
        _Slot("BV", "ratio", RATIO),
    ),
    "quality": (
        _Slot("Liq.", "ratio", RATIO),
        _Slot("Sol.", "ratio", RATIO),
        _Slot("Lev.", "ratio", RATIO),
        _Slot("CFop", "amount"),
        _Slot("CFinv", "amount"),
        _Slot("CFfin", "amount"),
    ),
    "performance": (
        _Slot("R", "amount"),
        _Slot("NP", "amount"),
        _Slot("EPS", "ratio"),
        _Slot("Mnet", "percent", RATIO),
        _Slot("ROA", "percent", RATIO),
        _Slot("ROE", "percent", RATIO),
    ),
}

BANK_LAYOUT: Dict[str, Tuple[_Slot, ...]] = {
    "target": (
        _Slot("P needed", "compact", None, input_dependent=True),
        _Slot("NI needed", "compact", None, input_dependent=True),
    ),
    "valuation": (
        _valuation_slot("P / E"),
        _valuation_slot("P / TBV"),
    ),
    "balance": (
        _Slot("TA", "amount"),
        _Slot("TL", "amount"),
        _Slot("Loans", "amount"),
        _Slot("Deposits", "amount"),
        _Slot("Goodwill", "amount"),
        _Slot("Loans / Dep.", "percent", RATIO),
        _Slot("E", "amount"),
        _Slot("TE", "amount"),
        _Slot("Lev.", "ratio", RATIO),
        _Slot("TBV", "ratio", RATIO),
    ),
    "earnings": (
        _Slot("NII", "amount"),
        _Slot("NonII", "amount"),
        _Slot("NIExp", "amount"),
        _Slot("PPOP", "amount"),
        _Slot("LLP", "amount"),
        _Slot("LLP / PPOP", "percent", RATIO),
        _Slot("NI", "amount"),
        _Slot("EPS", "ratio"),
        _Slot("ROA", "percent", RATIO),
        _Slot("ROTE", "percent", RATIO),
        _Slot("PPOP / A", "percent", RATIO),
    ),
    "asset_quality": (
        _Slot("RWA", "amount"),
        _Slot("CET1", "amount"),
        _Slot("Prov%", "percent", RATIO),
        _Slot("CET1%", "percent", RATIO),
        _Slot("NPL", "amount"),
        _Slot("NCO", "amount"),
        _Slot("NPL%", "percent", RATIO),
        _Slot("NCO%", "percent", RATIO),
    ),
}

INSURER_LAYOUT: Dict[str, Tuple[_Slot, ...]] = {
    "target": (
        _Slot("P needed", "compact", None, input_dependent=True),
        _Slot("NI needed", "compact", None, input_dependent=True),
    ),
    "valuation": (
        _valuation_slot("P / E"),
        _valuation_slot("P / BV"),
    ),
    "balance": (
        _Slot("TA", "amount"),
        _Slot("Reserves", "amount"),
        _Slot("Debt", "amount"),
        _Slot("TL", "amount"),
        _Slot("E", "amount"),
        _Slot("Debt / E", "ratio", RATIO),
        _Slot("Lev.", "ratio", RATIO),
        _Slot("Shs~", "integer"),
        _Slot("BV", "ratio", RATIO),
    ),
    "underwriting": (
        _Slot("Premiums", "amount"),
        _Slot("Claims", "amount"),
        _Slot("Interest", "amount"),
        _Slot("UW exp.", "amount"),
        _Slot("Expenses", "amount"),
        _Slot("NI", "amount"),
        _Slot("EPS", "ratio"),
        _Slot("Mnet", "percent", RATIO),
        _Slot("Loss%", "percent", RATIO),
        _Slot("Exp.%", "percent", RATIO),
        _Slot("Comb.%", "percent", RATIO),
        _Slot("ROA", "percent", RATIO),
        _Slot("ROE", "percent", RATIO),
    ),
}


def shares_approx(figures: EffectiveFigures) -> Number:
    """Share count implied by net income over EPS; not stored directly."""
    return round_half_away(div_nonzero(figures.net_income, figures.eps))


# ----------------------------
# Per-entity value maps
# ----------------------------

def generic_values(
    record: PeriodRecord, figures: EffectiveFigures, inputs: UserInputs
) -> Tuple[Values, ReverseSolve]:
    total_assets = add(record.current_assets, record.non_current_assets)
    total_liabilities = add(record.current_liabilities, record.non_current_liabilities)
    equity = sub(total_assets, total_liabilities)
    working_capital = sub(record.current_assets, record.current_liabilities)
    shares = shares_approx(figures)
    book_value = div_nonzero(equity, shares)

    valuation = value_at_price(
        inputs.price,
        shares,
        book_value,
        figures,
        total_liabilities=total_liabilities,
        cash=record.cash_and_equivalents,
    )
    solve = solve_wished_multiple(inputs.price, inputs.wished_multiple, figures, record.eps)

    values: Values = {
        "Score": composite_score(valuation, figures, shares, book_value),
        "P needed": solve.implied_price,
        "NP needed": solve.required_net_income,
        "P / E": valuation.pe,
        "P / BV": valuation.pb,
        "EV": valuation.enterprise_value,
        "EVcap": valuation.ev_over_market_cap,
        "EV / CFop": valuation.ev_over_cfo,
        "EV / NP": valuation.ev_over_net_income,
        "Market cap": valuation.market_cap,
        "CA": record.current_assets,
        "NCA": record.non_current_assets,
        "Cash": record.cash_and_equivalents,
        "TA": total_assets,
        "CL": record.current_liabilities,
        "NCL": record.non_current_liabilities,
        "E": equity,
        "TL": total_liabilities,
        "WC": working_capital,
        "WC / NCL": div_nonzero(working_capital, record.non_current_liabilities),
        "Shs~": shares,
        "BV": book_value,
        "Liq.": div_nonzero(record.current_assets, record.current_liabilities),
        "Sol.": div_nonzero(total_assets, total_liabilities),
        "Lev.": div_nonzero(total_liabilities, equity),
        "CFop": record.cash_flow_from_operations,
        "CFinv": record.cash_flow_from_investing,
        "CFfin": record.cash_flow_from_financing,
        "R": record.revenue,
        "NP": record.net_income,
        "EPS": record.eps,
        "Mnet": div_nonzero(record.net_income, record.revenue),
        "ROA": div_nonzero(record.net_income, total_assets),
        "ROE": div_nonzero(record.net_income, equity),
    }
    return values, solve


def bank_values(
    record: PeriodRecord, figures: EffectiveFigures, inputs: UserInputs
) -> Tuple[Values, ReverseSolve]:
    equity = sub(record.total_assets, record.total_liabilities)
    tangible_equity = sub(equity, record.goodwill)
    ppop = sub(add(record.net_interest_income, record.non_interest_income), record.non_interest_expense)
    shares = shares_approx(figures)
    tbv_per_share = div_nonzero(tangible_equity, shares)

    valuation = value_at_price(inputs.price, shares, tbv_per_share, figures)
    solve = solve_wished_multiple(inputs.price, inputs.wished_multiple, figures, record.eps)

    loans = record.total_loans
    values: Values = {
        "P needed": solve.implied_price,
        "NI needed": solve.required_net_income,
        "P / E": valuation.pe,
        "P / TBV": valuation.pb,
        "Market cap": valuation.market_cap,
        "TA": record.total_assets,
        "TL": record.total_liabilities,
        "Loans": loans,
        "Deposits": record.total_deposits,
        "Goodwill": record.goodwill,
        "Loans / Dep.": div_nonzero(loans, record.total_deposits),
        "E": equity,
        "TE": tangible_equity,
        "Lev.": div_nonzero(record.total_assets, tangible_equity),
        "TBV": tbv_per_share,
        "Shs~": shares,
        "NII": record.net_interest_income,
        "NonII": record.non_interest_income,
        "NIExp": record.non_interest_expense,
        "PPOP": ppop,
        "LLP": record.loan_loss_provisions,
        "LLP / PPOP": div_nonzero(record.loan_loss_provisions, ppop),
        "NI": record.net_income,
        "EPS": record.eps,
        "ROA": div_nonzero(record.net_income, record.total_assets),
        "ROTE": div_nonzero(record.net_income, tangible_equity),
        "PPOP / A": div_nonzero(ppop, record.total_assets),
        "RWA": record.risk_weighted_assets,
        "CET1": record.common_equity_tier1,
        "Prov%": div_nonzero(record.loan_loss_provisions, loans),
        "CET1%": div_nonzero(record.common_equity_tier1, record.risk_weighted_assets),
        "NPL": record.non_performing_loans,
        "NCO": record.net_charge_offs,
        "NPL%": div_nonzero(record.non_performing_loans, loans),
        "NCO%": div_nonzero(record.net_charge_offs, loans),
    }
    return values, solve


def insurer_values(
    record: PeriodRecord, figures: EffectiveFigures, inputs: UserInputs
) -> Tuple[Values, ReverseSolve]:
    equity = sub(record.total_assets, record.total_liabilities)
    shares = shares_approx(figures)
    book_value = div_nonzero(equity, shares)
    premiums = record.earned_premiums

    valuation = value_at_price(inputs.price, shares, book_value, figures)
    solve = solve_wished_multiple(inputs.price, inputs.wished_multiple, figures, record.eps)

    values: Values = {
        "P needed": solve.implied_price,
        "NI needed": solve.required_net_income,
        "P / E": valuation.pe,
        "P / BV": valuation.pb,
        "Market cap": valuation.market_cap,
        "TA": record.total_assets,
        "Reserves": record.insurance_reserves,
        "Debt": record.total_debt,
        "TL": record.total_liabilities,
        "E": equity,
        "Debt / E": div_nonzero(record.total_debt, equity),
        "Lev.": div_nonzero(record.total_liabilities, equity),
        "Shs~": shares,
        "BV": book_value,
        "Premiums": premiums,
        "Claims": record.claims_incurred,
        "Interest": record.interest_expenses,
        "UW exp.": record.underwriting_expenses,
        "Expenses": record.total_expenses,
        "NI": record.net_income,
        "EPS": record.eps,
        "Mnet": div_nonzero(record.net_income, premiums),
        "Loss%": div_nonzero(record.claims_incurred, premiums),
        "Exp.%": div_nonzero(record.underwriting_expenses, premiums),
        "Comb.%": div_nonzero(add(record.claims_incurred, record.underwriting_expenses), premiums),
        "ROA": div_nonzero(record.net_income, record.total_assets),
        "ROE": div_nonzero(record.net_income, equity),
    }
    return values, solve


ValueBuilder = Callable[[PeriodRecord, EffectiveFigures, UserInputs], Tuple[Values, ReverseSolve]]

_ENTITY_DISPATCH: Dict[EntityType, Tuple[ValueBuilder, Dict[str, Tuple[_Slot, ...]]]] = {
    EntityType.GENERIC: (generic_values, GENERIC_LAYOUT),
    EntityType.BANK: (bank_values, BANK_LAYOUT),
    EntityType.INSURER: (insurer_values, INSURER_LAYOUT),
}


# ----------------------------
# Public entry points
# ----------------------------

def _check_preconditions(periods: Sequence[PeriodRecord], selected_index: int) -> None:
    if not 0 <= selected_index < len(periods):
        raise IndexError(f"Period index {selected_index} outside 0..{len(periods) - 1}.")
    kinds = {record.entity_type for record in periods}
    if len(kinds) > 1:
        names = ", ".join(sorted(kind.value for kind in kinds))
        raise ValueError(f"Period list mixes entity types ({names}); one ticker has one schema.")


def _change(slot: _Slot, current: Number, previous: Number, solve: ReverseSolve) -> Number:
    if slot.label in _TARGET_SLOTS:
        return getattr(solve, _TARGET_SLOTS[slot.label])
    if slot.change == RATIO:
        return ratio_percent_change(current, previous)
    if slot.change == RAW:
        return percent_change(current, previous)
    return None


def derive_metrics(
    periods: Sequence[PeriodRecord],
    selected_index: int,
    inputs: Optional[UserInputs] = None,
    prefer_ttm: bool = False,
    *,
    entity_type: Optional[EntityType] = None,
) -> MetricBundle:
    """Metric boxes for ``periods[selected_index]``.

    ``periods`` is the ticker's full chronological list; it is read for TTM
    windows and the prior-year record but never modified. ``entity_type``
    forces a layout other than the record's own.
    """
    _check_preconditions(periods, selected_index)
    inputs = inputs or UserInputs()
    record = periods[selected_index]
    kind = entity_type or record.entity_type
    build, layout = _ENTITY_DISPATCH[kind]

    figures = effective_figures(periods, record, prefer_ttm)
    current, solve = build(record, figures, inputs)

    previous_record = find_prior_year_same_period(periods, record)
    previous: Values = {}
    if previous_record is not None:
        previous, _ = build(previous_record, own_figures(previous_record), inputs)

    boxes: Dict[str, List[DerivedMetric]] = {}
    for box_name, slots in layout.items():
        boxes[box_name] = [
            DerivedMetric(
                label=slot.label,
                value=current.get(slot.label),
                percent_change=_change(slot, current.get(slot.label), previous.get(slot.label), solve),
                display_kind=slot.kind,
                invert_change=slot.invert,
                input_dependent=slot.input_dependent,
            )
            for slot in slots
        ]

    logger.debug(
        "Derived %d metrics for %s %s (ttm=%s)",
        sum(len(box) for box in boxes.values()),
        record.ticker,
        period_label(record),
        figures.ttm_applied,
    )
    return MetricBundle(
        ticker=record.ticker,
        period=period_label(record),
        entity_type=kind,
        boxes=boxes,
        ttm_applied=figures.ttm_applied,
    )


def derive_period_comparison(
    periods: Sequence[PeriodRecord],
    selected_index: int,
    inputs: Optional[UserInputs] = None,
    prefer_ttm: bool = False,
) -> Dict[str, Optional[float]]:
    """Map of metric label to its change against the prior-year same period."""
    return derive_metrics(periods, selected_index, inputs, prefer_ttm).changes()


def snapshot_values(
    periods: Sequence[PeriodRecord],
    selected_index: int,
    inputs: Optional[UserInputs] = None,
    prefer_ttm: bool = False,
) -> Values:
    """Flat label -> value map including figures outside the display layout."""
    _check_preconditions(periods, selected_index)
    record = periods[selected_index]
    build, _ = _ENTITY_DISPATCH[record.entity_type]
    values, _ = build(record, effective_figures(periods, record, prefer_ttm), inputs or UserInputs())
    return values


class MetricsEngine:
    """Stateless facade used by the CLI; safe to share across threads."""

    def derive(
        self,
        periods: Sequence[PeriodRecord],
        selected_index: int,
        inputs: Optional[UserInputs] = None,
        prefer_ttm: bool = False,
    ) -> MetricBundle:
        return derive_metrics(periods, selected_index, inputs, prefer_ttm)

    def compare(
        self,
        periods: Sequence[PeriodRecord],
        selected_index: int,
        inputs: Optional[UserInputs] = None,
        prefer_ttm: bool = False,
    ) -> Dict[str, Optional[float]]:
        return derive_period_comparison(periods, selected_index, inputs, prefer_ttm)
