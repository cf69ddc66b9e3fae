from __future__ import annotations

from intrinsic.domain.models.periods import DerivedMetric, UserInputs
from intrinsic.reports.formatting import (
    NA_VALUE,
    change_style,
    format_amount,
    format_change,
    format_compact,
    format_integer,
    format_value,
)
from intrinsic.reports.renderer import ReportRenderer

from period_builders import make_generic, make_quarters


def test_amount_and_integer_formats():
    assert format_amount(None) == NA_VALUE
    assert format_amount(1234.5) == "1,234.50"
    assert format_amount(0.1234, percent=True) == "12.34%"
    assert format_integer(2.5) == "3"
    assert format_integer(1234567.0) == "1,234,567"


def test_compact_format():
    assert format_compact(None) == NA_VALUE
    assert format_compact(999.0) == "999"
    assert format_compact(3000.0) == "3K"
    assert format_compact(2_500_000.0) == "2M"
    assert format_compact(-4_200_000_000_000.0) == "-4T"


def test_change_format():
    assert format_change(None) == ""
    assert format_change(12.345) == "12.3%"
    assert format_change(-0.04) == "-0.0%"
    assert format_change(2500.0) == "3k%"
    assert format_change(-1499.0) == "-1k%"


def test_value_format_follows_display_kind():
    assert format_value(DerivedMetric("ROE", 0.05, display_kind="percent")) == "5.00%"
    assert format_value(DerivedMetric("Shs~", 10.0, display_kind="integer")) == "10"
    assert format_value(DerivedMetric("EV", 3000.0, display_kind="compact")) == "3K"
    assert format_value(DerivedMetric("P / E", None, display_kind="ratio")) == NA_VALUE


def test_change_style_respects_inversion():
    assert change_style(10.0) == "green"
    assert change_style(10.0, invert=True) == "red"
    assert change_style(-10.0, invert=True) == "green"
    assert change_style(None) == "dim"
    assert change_style(0.0) == "dim"


def test_period_snapshot_lists_present_values():
    text = ReportRenderer().period_snapshot([make_generic(revenue=None)], 0, UserInputs(price=50.0))
    lines = text.splitlines()

    assert lines[:3] == ["ticker: ACME", "period: 2024-Y", "type: generic"]
    assert "current assets: 1000" in lines
    assert "eps: 1" in lines
    assert "P / E: 50" in lines
    assert "EV: 3000" in lines
    assert "Market cap: 500" in lines
    assert not any(line.startswith("revenue:") for line in lines)
    assert not any(line.startswith("EV / CFop:") for line in lines)
    assert text.endswith("\n")


def test_period_snapshot_marks_ttm():
    periods = make_quarters(ticker="ACME", net_income=[1.0, 1.0, 1.0, 1.0], eps=[0.1, 0.1, 0.1, 0.1])
    text = ReportRenderer().period_snapshot(periods, 3, prefer_ttm=True)
    assert "type: generic (ttm)" in text.splitlines()
