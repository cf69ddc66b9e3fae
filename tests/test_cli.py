from __future__ import annotations

import pytest
from typer.testing import CliRunner

from intrinsic.cli.commands import app

GENERIC_FIELDS = [
    "current_assets=1000",
    "non_current_assets=5000",
    "current_liabilities=800",
    "non_current_liabilities=2000",
    "revenue=100",
    "net_income=10",
    "eps=1.0",
    "cash_and_equivalents=300",
]


@pytest.fixture()
def cli(tmp_path):
    runner = CliRunner()
    env = {
        "INTRINSIC_DB_PATH": str(tmp_path / "db" / "intrinsic.db"),
        "OUTPUT_DIR": str(tmp_path / "exports"),
        "INTRINSIC_TTM": "0",
    }

    def invoke(*args: str):
        return runner.invoke(app, list(args), env=env)

    return invoke


def add_acme(cli, period: str = "2024-Y"):
    args = ["add", "acme", period]
    for item in GENERIC_FIELDS:
        args += ["--set", item]
    return cli(*args)


def test_add_then_show(cli):
    result = add_acme(cli)
    assert result.exit_code == 0, result.output
    assert "Stored ACME 2024-Y" in result.output

    shown = cli("show", "ACME", "--price", "50")
    assert shown.exit_code == 0, shown.output
    assert "ACME 2024-Y (generic)" in shown.output
    assert "P / E" in shown.output
    assert "50.00" in shown.output
    assert "3K" in shown.output


def test_add_updates_only_given_fields(cli):
    add_acme(cli)
    result = cli("add", "ACME", "2024-Y", "--set", "revenue=200")
    assert result.exit_code == 0, result.output
    exported = cli("export", "ACME", "--stdout")
    assert "revenue: 200" in exported.output
    assert "net income: 10" in exported.output


def test_add_rejects_bad_input(cli):
    add_acme(cli)
    mismatch = cli("add", "ACME", "2025-Y", "--type", "bank", "--set", "net_income=5")
    assert mismatch.exit_code == 1
    assert "cannot store a bank period" in mismatch.output

    unknown = cli("add", "ACME", "2025-Y", "--set", "total_loans=5")
    assert unknown.exit_code == 1
    assert "Unknown generic field" in unknown.output

    malformed = cli("add", "ACME", "2025", "--set", "revenue=5")
    assert malformed.exit_code == 1
    assert "Invalid period" in malformed.output

    not_a_number = cli("add", "ACME", "2025-Y", "--set", "revenue=lots")
    assert not_a_number.exit_code == 1


def test_show_unknown_ticker_fails(cli):
    result = cli("show", "NOPE")
    assert result.exit_code == 1
    assert "No periods stored for NOPE" in result.output


def test_show_yearly_filter(cli):
    add_acme(cli, "2024-Q1")
    result = cli("show", "ACME", "--yearly")
    assert result.exit_code == 1
    assert "No yearly periods stored" in result.output


def test_export_to_output_dir(cli, tmp_path):
    add_acme(cli)
    result = cli("export", "ACME", "--price", "50")
    assert result.exit_code == 0, result.output
    target = tmp_path / "exports" / "ACME_2024-Y.txt"
    text = target.read_text(encoding="utf-8")
    assert "P / E: 50" in text
    assert "period: 2024-Y" in text


def test_history_csv(cli, tmp_path):
    add_acme(cli, "2023-Y")
    add_acme(cli, "2024-Y")
    target = tmp_path / "history.csv"
    result = cli("history", "ACME", "--price", "50", "--csv", str(target))
    assert result.exit_code == 0, result.output
    header = target.read_text(encoding="utf-8").splitlines()[0]
    assert header.startswith("period,")
    assert "P / E" in header


def test_delete_and_tickers(cli):
    add_acme(cli, "2023-Y")
    add_acme(cli, "2024-Y")

    listed = cli("tickers")
    assert listed.exit_code == 0
    assert "ACME" in listed.output

    toggled = cli("portfolio", "ACME")
    assert "added to portfolio" in toggled.output
    assert "ACME" in cli("tickers", "--portfolio").output

    assert cli("delete", "ACME", "2023-Y").exit_code == 0
    last = cli("delete", "ACME", "2024-Y")
    assert last.exit_code == 0
    assert "was removed" in last.output
    assert "No tickers stored." in cli("tickers").output

    missing = cli("delete", "ACME", "2024-Y")
    assert missing.exit_code == 1


def test_editing_insurer_expenses_keeps_underwriting_consistent(cli):
    created = cli(
        "add", "INS", "2024-Y", "--type", "insurer",
        "--set", "total_expenses=900", "--set", "claims_incurred=600", "--set", "interest_expenses=20",
        "--set", "earned_premiums=1000",
    )
    assert created.exit_code == 0, created.output

    assert cli("add", "INS", "2024-Y", "--set", "total_expenses=1200").exit_code == 0
    lines = cli("export", "INS", "--stdout").output.splitlines()
    assert "total expenses: 1200" in lines
    assert "underwriting expenses: 580" in lines
    assert "UW exp.: 580" in lines

    # Editing underwriting alone rebuilds the total from its parts.
    assert cli("add", "INS", "2024-Y", "--set", "underwriting_expenses=300").exit_code == 0
    lines = cli("export", "INS", "--stdout").output.splitlines()
    assert "total expenses: 920" in lines
    assert "underwriting expenses: 300" in lines


def test_global_ttm_flag_sets_default(cli):
    for code in ("Q1", "Q2", "Q3", "Q4"):
        add_acme(cli, f"2024-{code}")

    plain = cli("show", "ACME")
    assert plain.exit_code == 0, plain.output
    assert "ACME 2024-Q4 (generic)" in plain.output

    trailing = cli("--ttm", "show", "ACME")
    assert trailing.exit_code == 0, trailing.output
    assert "ACME 2024-Q4 (generic, TTM)" in trailing.output

    # A per-command flag still wins over the run default.
    assert "(generic)" in cli("--ttm", "show", "ACME", "--no-ttm").output


def test_history_with_changes(cli, tmp_path):
    add_acme(cli, "2023-Y")
    cli("add", "ACME", "2024-Y", "--set", "revenue=125")
    target = tmp_path / "changes.csv"
    result = cli("history", "ACME", "--changes", "--csv", str(target))
    assert result.exit_code == 0, result.output
    header = target.read_text(encoding="utf-8").splitlines()[0].split(",")
    assert "R" in header
    assert "R %" in header
