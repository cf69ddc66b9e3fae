"""Tabular views of derived metrics across every period of a ticker."""
from __future__ import annotations

from typing import List, Optional, Sequence

import pandas as pd

from intrinsic.domain.models.periods import PeriodRecord, UserInputs, is_yearly
from intrinsic.domain.services.calculations import derive_metrics


def selectable_indices(periods: Sequence[PeriodRecord], yearly_only: bool = False) -> List[int]:
    """Indices into the full list that a viewer may select.

    The yearly filter only narrows what is browsable; TTM windows and the
    prior-year lookup keep reading the full list.
    """
    return [idx for idx, record in enumerate(periods) if not yearly_only or is_yearly(record)]


def metrics_frame(
    periods: Sequence[PeriodRecord],
    inputs: Optional[UserInputs] = None,
    prefer_ttm: bool = False,
    *,
    yearly_only: bool = False,
    with_changes: bool = False,
) -> pd.DataFrame:
    """One row per period, one column per metric label.

    Unknown values become ``NaN`` here, at the presentation boundary only.
    With ``with_changes`` each metric gets a companion ``<label> %`` column.
    """
    rows = []
    for idx in selectable_indices(periods, yearly_only):
        bundle = derive_metrics(periods, idx, inputs, prefer_ttm)
        row = {"period": bundle.period}
        for metric in bundle.metrics():
            row[metric.label] = metric.value
            if with_changes:
                row[f"{metric.label} %"] = metric.percent_change
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=["period"]).set_index("period")
    frame = pd.DataFrame(rows).set_index("period")
    return frame.apply(pd.to_numeric, errors="coerce")
