from __future__ import annotations

import pytest

from intrinsic.domain.models.periods import EntityType, PeriodRecord, UserInputs
from intrinsic.domain.services.calculations import (
    MetricsEngine,
    derive_metrics,
    derive_period_comparison,
)

from period_builders import close, make_bank, make_generic, make_insurer, make_quarters


def test_generic_end_to_end_scenario():
    bundle = derive_metrics([make_generic()], 0, UserInputs(price=50.0))
    v = bundle.value

    assert v("TA") == 6000.0
    assert v("TL") == 2800.0
    assert v("E") == 3200.0
    assert v("Shs~") == 10.0
    assert v("BV") == 320.0
    assert v("EV") == 3000.0
    assert v("P / E") == 50.0
    assert close(v("P / BV"), 0.15625)
    assert v("EVcap") == 6.0
    assert v("EV / NP") == 300.0
    assert v("EV / CFop") is None

    # Balance and quality
    assert v("WC") == 200.0
    assert close(v("WC / NCL"), 0.1)
    assert close(v("Liq."), 1.25)
    assert close(v("Sol."), 6000.0 / 2800.0)
    assert close(v("Lev."), 0.875)

    # Performance
    assert close(v("Mnet"), 0.1)
    assert close(v("ROA"), 10.0 / 6000.0)
    assert close(v("ROE"), 10.0 / 3200.0)

    # No CFO, so the score uses P/E and P/B only.
    assert close(v("Score"), 4.9609375)
    assert bundle.entity_type is EntityType.GENERIC
    assert not bundle.ttm_applied


def test_generic_layout_order():
    bundle = derive_metrics([make_generic()], 0)
    assert list(bundle.boxes) == ["score", "valuation", "balance", "quality", "performance"]
    assert [m.label for m in bundle.boxes["valuation"]] == ["P / E", "P / BV", "EV", "EVcap", "EV / CFop", "EV / NP"]
    assert all(m.input_dependent for m in bundle.boxes["valuation"])
    assert bundle.get("P / E").invert_change
    assert not bundle.get("EV").invert_change


def test_price_dependent_metrics_are_absent_without_price():
    bundle = derive_metrics([make_generic()], 0)
    assert bundle.value("P / E") is None
    assert bundle.value("EV") is None
    assert bundle.value("Score") is None
    assert bundle.value("TA") == 6000.0


def test_wished_multiple_targets():
    bundle = derive_metrics([make_generic()], 0, UserInputs(price=50.0, wished_multiple=10.0))
    assert bundle.value("P needed") == 10.0
    assert bundle.value("NP needed") == 50.0
    assert close(bundle.get("P needed").percent_change, -80.0)
    assert close(bundle.get("NP needed").percent_change, 400.0)


def test_prior_year_changes():
    periods = [
        make_generic(2023, revenue=80.0, net_income=8.0, eps=0.8),
        make_generic(2024),
    ]
    changes = derive_period_comparison(periods, 1, UserInputs(price=50.0))

    assert close(changes["R"], 25.0)
    assert close(changes["NP"], 25.0)
    assert close(changes["ROE"], 25.0)
    # P/E fell from 62.5 to 50 at the same price.
    assert close(changes["P / E"], -20.0)
    assert changes["TA"] == 0.0
    assert changes["Shs~"] == 0.0

    first = derive_period_comparison(periods, 0, UserInputs(price=50.0))
    assert all(change is None for change in first.values())


def test_prior_year_uses_its_own_figures_not_ttm():
    periods = make_quarters(year=2023, ticker="ACME", net_income=[5.0, 5.0, 5.0, 5.0], eps=[0.5] * 4)
    periods += make_quarters(year=2024, ticker="ACME", net_income=[5.0, 5.0, 5.0, 10.0], eps=[0.5, 0.5, 0.5, 1.0])
    bundle = derive_metrics(periods, 7, UserInputs(price=20.0), prefer_ttm=True)
    assert bundle.ttm_applied
    assert bundle.value("NP") == 10.0
    # Current P/E on TTM EPS 2.5 is 8; the 2023-Q4 P/E on its own EPS 0.5 is 40.
    assert bundle.value("P / E") == 8.0
    assert close(bundle.get("P / E").percent_change, -80.0)


def test_bank_metrics():
    bundle = derive_metrics([make_bank()], 0, UserInputs(price=15.0))
    v = bundle.value

    assert list(bundle.boxes) == ["target", "valuation", "balance", "earnings", "asset_quality"]
    assert v("E") == 1000.0
    assert v("TE") == 800.0
    assert v("PPOP") == 250.0
    assert v("Shs~") == 100.0
    assert v("TBV") == 8.0
    assert v("P / E") == 10.0
    assert close(v("P / TBV"), 1.875)
    assert close(v("Lev."), 12.5)
    assert close(v("Loans / Dep."), 0.75)
    assert close(v("LLP / PPOP"), 0.2)
    assert close(v("ROA"), 0.015)
    assert close(v("ROTE"), 0.1875)
    assert close(v("PPOP / A"), 0.025)
    assert close(v("Prov%"), 50.0 / 6000.0)
    assert close(v("CET1%"), 0.12)
    assert close(v("NPL%"), 0.02)
    assert close(v("NCO%"), 0.005)
    assert bundle.get("Score") is None


def test_insurer_metrics():
    record = make_insurer().with_write_time_fields()
    bundle = derive_metrics([record], 0, UserInputs(price=8.0))
    v = bundle.value

    assert list(bundle.boxes) == ["target", "valuation", "balance", "underwriting"]
    assert v("E") == 1000.0
    assert v("Shs~") == 100.0
    assert v("BV") == 10.0
    assert close(v("P / E"), 10.0)
    assert close(v("P / BV"), 0.8)
    assert close(v("Debt / E"), 0.5)
    assert close(v("Lev."), 4.0)
    assert v("UW exp.") == 280.0
    assert close(v("Mnet"), 0.08)
    assert close(v("Loss%"), 0.6)
    assert close(v("Exp.%"), 0.28)
    assert close(v("Comb.%"), 0.88)
    assert close(v("ROA"), 0.016)
    assert close(v("ROE"), 0.08)


def test_bank_record_under_generic_layout_yields_gaps():
    bundle = derive_metrics([make_bank()], 0, UserInputs(price=15.0), entity_type=EntityType.GENERIC)
    assert bundle.value("Mnet") is None
    assert bundle.value("R") is None
    assert bundle.value("TA") is None
    assert bundle.value("WC") is None
    assert bundle.value("EV") is None
    assert bundle.value("NP") == 150.0


def test_empty_record_yields_empty_metrics():
    record = PeriodRecord(ticker="NONE", year=2024, period_code="Y")
    bundle = derive_metrics([record], 0, UserInputs(price=10.0, wished_multiple=12.0))
    assert all(metric.value is None for metric in bundle.metrics())
    assert all(metric.percent_change is None for metric in bundle.metrics())


def test_derive_is_idempotent_and_does_not_mutate_input():
    periods = [make_generic(2023, net_income=8.0), make_generic(2024)]
    snapshot = list(periods)
    engine = MetricsEngine()
    first = engine.derive(periods, 1, UserInputs(price=50.0, wished_multiple=12.0), prefer_ttm=True)
    second = engine.derive(periods, 1, UserInputs(price=50.0, wished_multiple=12.0), prefer_ttm=True)
    assert first == second
    assert periods == snapshot
    assert engine.compare(periods, 1, UserInputs(price=50.0)) == derive_period_comparison(
        periods, 1, UserInputs(price=50.0)
    )


def test_preconditions_are_reported():
    with pytest.raises(IndexError):
        derive_metrics([make_generic()], 1)
    with pytest.raises(IndexError):
        derive_metrics([], 0)
    with pytest.raises(ValueError):
        derive_metrics([make_generic(), make_bank()], 0)
