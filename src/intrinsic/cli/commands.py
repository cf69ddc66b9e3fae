"""CLI command definitions for the financial metrics tracker."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, List, NoReturn, Optional, Sequence

import pandas as pd
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from config import Config
from intrinsic.domain.models.periods import (
    FLOAT_FIELDS,
    SCHEMA_FIELDS,
    EntityType,
    PeriodFormatError,
    PeriodRecord,
    UserInputs,
    find_by_label,
    parse_period,
)
from intrinsic.domain.services.arithmetic import round_half_away
from intrinsic.domain.services.calculations import MetricsEngine
from intrinsic.domain.services.history import metrics_frame, selectable_indices
from intrinsic.infrastructure.db.sqlite import (
    EntityTypeMismatchError,
    PeriodNotFoundError,
    SQLiteRepository,
)
from intrinsic.reports.formatting import NA_VALUE, change_style, format_change, format_value
from intrinsic.reports.renderer import ReportRenderer
from intrinsic.settings.loader import load_settings
from intrinsic.utils.logging import configure_logging

console = Console()
app = typer.Typer(help="Track fiscal periods per ticker and derive valuation metrics from the terminal.")

_CLEAR_VALUES = {"", "none", "null", NA_VALUE}


@dataclass
class AppContext:
    """Holds reusable process-wide objects for CLI commands."""

    config: Config
    repository: SQLiteRepository
    engine: MetricsEngine
    renderer: ReportRenderer


def _init_context(debug_override: Optional[bool] = None, ttm_override: Optional[bool] = None) -> AppContext:
    """Create a context with configuration, logging, and storage wiring."""
    config = load_settings(debug_override, ttm_override=ttm_override)
    configure_logging(debug=config.debug, sql_echo=config.sqlite_echo)
    config.database_path.parent.mkdir(parents=True, exist_ok=True)
    repository = SQLiteRepository(config.database_uri, echo=config.sqlite_echo)
    return AppContext(config=config, repository=repository, engine=MetricsEngine(), renderer=ReportRenderer())


@app.callback()
def main_callback(
    ctx: typer.Context,
    debug: Optional[bool] = typer.Option(
        None,
        "--debug/--no-debug",
        help="Temporarily toggle verbose logging without touching environment variables.",
    ),
    ttm: Optional[bool] = typer.Option(
        None,
        "--ttm/--no-ttm",
        help="Default TTM preference for this run; overrides INTRINSIC_TTM.",
    ),
) -> None:
    """Attach the lazily constructed application context to Typer."""
    ctx.obj = _init_context(debug_override=debug, ttm_override=ttm)


# ---- Internal helpers ----

def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]{escape(message)}[/bold red]")
    raise typer.Exit(code=1)


def _normalize_ticker(ticker: str) -> str:
    return ticker.strip().upper()


def _parse_assignments(kind: EntityType, assignments: Sequence[str]) -> Dict[str, Optional[float]]:
    """Turn ``field=value`` pairs into record updates; an empty value clears the field."""
    allowed = SCHEMA_FIELDS[kind]
    updates: Dict[str, Optional[float]] = {}
    for item in assignments:
        name, sep, raw = item.partition("=")
        name = name.strip().lower().replace("-", "_")
        if not sep:
            _fail(f"Expected field=value, got {item!r}.")
        if name not in allowed:
            _fail(f"Unknown {kind.value} field {name!r}; expected one of: {', '.join(allowed)}.")
        raw = raw.strip()
        if raw.lower() in _CLEAR_VALUES:
            updates[name] = None
            continue
        try:
            value = float(raw.replace(",", "").replace("_", ""))
        except ValueError:
            _fail(f"Field {name!r} needs a number, got {raw!r}.")
        updates[name] = value if name in FLOAT_FIELDS else round_half_away(value)
    return updates


def _load_periods(context: AppContext, ticker: str) -> List[PeriodRecord]:
    periods = context.repository.fetch_periods(ticker)
    if not periods:
        _fail(f"No periods stored for {ticker}.")
    return periods


def _select_index(periods: Sequence[PeriodRecord], period: Optional[str], yearly: bool) -> int:
    """Index of the requested period, or of the latest selectable one."""
    selectable = selectable_indices(periods, yearly)
    if not selectable:
        _fail("No yearly periods stored." if yearly else "No periods stored.")
    if period is None:
        return selectable[-1]
    try:
        year, code = parse_period(period)
    except PeriodFormatError as exc:
        _fail(str(exc))
    idx = find_by_label(periods, f"{year}-{code}")
    if idx not in selectable:
        _fail(f"Period {year}-{code} is not available for {periods[0].ticker}.")
    return idx


def _prefer_ttm(context: AppContext, ttm: Optional[bool]) -> bool:
    return context.config.prefer_ttm if ttm is None else ttm


def _change_text(change: Optional[float], invert: bool) -> Text:
    return Text(format_change(change), style=change_style(change, invert))


# ---- Commands ----

@app.command()
def add(
    ctx: typer.Context,
    ticker: str = typer.Argument(..., help="Ticker symbol, e.g. ACME"),
    period: str = typer.Argument(..., help="Fiscal period, e.g. 2024-Y or 2024-Q3"),
    entity_type: Optional[str] = typer.Option(
        None,
        "--type",
        help="Reporting schema: generic, bank or insurer. Defaults to the ticker's existing type.",
    ),
    assignments: List[str] = typer.Option(
        [],
        "--set",
        help="Raw field assignment field=value; repeat for several fields. An empty value clears the field.",
    ),
) -> None:
    """Create or update one period; unspecified fields keep their stored values."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    ticker = _normalize_ticker(ticker)

    try:
        year, code = parse_period(period)
        existing_kind = context.repository.get_entity_type(ticker)
        kind = EntityType.parse(entity_type) if entity_type else (existing_kind or EntityType.GENERIC)
    except ValueError as exc:
        _fail(str(exc))

    updates = _parse_assignments(kind, assignments)
    stored = context.repository.fetch_periods(ticker)
    idx = find_by_label(stored, f"{year}-{code}")
    if idx >= 0 and stored[idx].entity_type is kind:
        if "underwriting_expenses" in updates and "total_expenses" not in updates:
            # Rebuild the stored total from the edited parts.
            updates["total_expenses"] = None
        record = replace(stored[idx], **updates)
    else:
        record = PeriodRecord(ticker=ticker, year=year, period_code=code, entity_type=kind, **updates)

    try:
        saved = context.repository.upsert_period(record)
    except EntityTypeMismatchError as exc:
        _fail(str(exc))

    known = sum(1 for value in saved.payload().values() if value is not None)
    console.print(f"[bold green]Stored {ticker} {saved.label}[/bold green] ({kind.value}, {known} fields)")


@app.command()
def show(
    ctx: typer.Context,
    ticker: str = typer.Argument(..., help="Ticker symbol"),
    period: Optional[str] = typer.Option(None, "--period", help="Period to show; defaults to the latest."),
    price: Optional[float] = typer.Option(None, "--price", help="Share price used for multiples."),
    wished_pe: Optional[float] = typer.Option(None, "--wished-pe", help="Target P/E for the reverse solve."),
    ttm: Optional[bool] = typer.Option(None, "--ttm/--no-ttm", help="Use trailing-twelve-month figures."),
    yearly: bool = typer.Option(False, "--yearly", help="Only consider yearly (Y) periods."),
) -> None:
    """Display the derived metric boxes of one period with prior-year changes."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    ticker = _normalize_ticker(ticker)
    periods = _load_periods(context, ticker)
    idx = _select_index(periods, period, yearly)

    bundle = context.engine.derive(
        periods, idx, UserInputs(price=price, wished_multiple=wished_pe), _prefer_ttm(context, ttm)
    )
    suffix = ", TTM" if bundle.ttm_applied else ""
    console.rule(f"{ticker} {bundle.period} ({bundle.entity_type.value}{suffix})")

    for box_name, metrics in bundle.boxes.items():
        table = Table(title=box_name.replace("_", " ").title(), title_justify="left")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_column("Change", justify="right")
        for metric in metrics:
            label = f"{metric.label} *" if metric.input_dependent else metric.label
            table.add_row(label, format_value(metric), _change_text(metric.percent_change, metric.invert_change))
        console.print(table)


@app.command()
def history(
    ctx: typer.Context,
    ticker: str = typer.Argument(..., help="Ticker symbol"),
    price: Optional[float] = typer.Option(None, "--price", help="Share price used for multiples."),
    ttm: Optional[bool] = typer.Option(None, "--ttm/--no-ttm", help="Use trailing-twelve-month figures."),
    yearly: bool = typer.Option(False, "--yearly", help="Only list yearly (Y) periods."),
    with_changes: bool = typer.Option(False, "--changes", help="Add a prior-year change column per metric."),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Also write the metric table to CSV."),
) -> None:
    """Tabulate every derived metric across the ticker's periods."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    ticker = _normalize_ticker(ticker)
    periods = _load_periods(context, ticker)
    inputs = UserInputs(price=price)
    prefer_ttm = _prefer_ttm(context, ttm)

    frame = metrics_frame(periods, inputs, prefer_ttm, yearly_only=yearly, with_changes=with_changes)
    if frame.empty:
        _fail("No yearly periods stored." if yearly else "No periods stored.")

    # Display kinds come from the layout; the frame only carries numbers.
    latest = context.engine.derive(periods, len(periods) - 1, inputs, prefer_ttm)
    template = {metric.label: metric for metric in latest.metrics()}
    table = Table(title=f"{ticker} history", title_justify="left")
    table.add_column("Metric", style="cyan")
    for label in frame.index:
        table.add_column(str(label), justify="right")
    for column in frame.columns:
        cells = []
        for value in frame[column]:
            number = None if pd.isna(value) else float(value)
            if column in template:
                cells.append(format_value(replace(template[column], value=number)))
            else:
                cells.append(format_change(number))
        table.add_row(column, *cells)
    console.print(table)

    if csv_path is not None:
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(csv_path)
        console.print(f"CSV written to {csv_path}")


@app.command()
def export(
    ctx: typer.Context,
    ticker: str = typer.Argument(..., help="Ticker symbol"),
    period: Optional[str] = typer.Option(None, "--period", help="Period to export; defaults to the latest."),
    price: Optional[float] = typer.Option(None, "--price", help="Share price used for multiples."),
    wished_pe: Optional[float] = typer.Option(None, "--wished-pe", help="Target P/E for the reverse solve."),
    ttm: Optional[bool] = typer.Option(None, "--ttm/--no-ttm", help="Use trailing-twelve-month figures."),
    out: Optional[Path] = typer.Option(None, "--out", help="Destination file; defaults to OUTPUT_DIR/<ticker>_<period>.txt"),
    to_stdout: bool = typer.Option(False, "--stdout", help="Print the snapshot instead of writing a file."),
) -> None:
    """Export a period snapshot as plain ``label: value`` lines."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    ticker = _normalize_ticker(ticker)
    periods = _load_periods(context, ticker)
    idx = _select_index(periods, period, yearly=False)

    snapshot = context.renderer.period_snapshot(
        periods, idx, UserInputs(price=price, wished_multiple=wished_pe), _prefer_ttm(context, ttm)
    )
    if to_stdout:
        console.print(snapshot, markup=False, highlight=False, end="")
        return

    if out is None:
        context.config.ensure_directories()
        out = context.config.output_dir / f"{ticker}_{periods[idx].label}.txt"
    else:
        out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(snapshot, encoding="utf-8")
    console.print(f"Snapshot written to {out}")


@app.command()
def delete(
    ctx: typer.Context,
    ticker: str = typer.Argument(..., help="Ticker symbol"),
    period: str = typer.Argument(..., help="Fiscal period to delete, e.g. 2024-Q3"),
) -> None:
    """Delete one period; a ticker without periods is removed too."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    ticker = _normalize_ticker(ticker)
    try:
        ticker_removed = context.repository.delete_period(ticker, period)
    except (PeriodFormatError, PeriodNotFoundError) as exc:
        _fail(str(exc))

    console.print(f"Deleted {ticker} {period.strip().upper()}")
    if ticker_removed:
        console.print(f"[yellow]{ticker} has no periods left and was removed.[/yellow]")


@app.command()
def tickers(
    ctx: typer.Context,
    portfolio: bool = typer.Option(False, "--portfolio", help="Only list portfolio tickers."),
) -> None:
    """List stored tickers, most recently updated first."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    rows = context.repository.list_tickers(portfolio_only=portfolio)
    if not rows:
        console.print("No tickers stored.")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Ticker", style="cyan")
    table.add_column("Type")
    table.add_column("Periods", justify="right")
    table.add_column("Updated")
    table.add_column("Portfolio", justify="center")
    for row in rows:
        updated = datetime.fromtimestamp(row["last_update"]).strftime("%Y-%m-%d %H:%M")
        table.add_row(row["ticker"], row["entity_type"], str(row["periods"]), updated, "*" if row["portfolio"] else "")
    console.print(table)


@app.command()
def portfolio(
    ctx: typer.Context,
    ticker: str = typer.Argument(..., help="Ticker symbol"),
) -> None:
    """Toggle a ticker's portfolio flag."""
    if ctx.obj is None:
        raise typer.Exit(code=1)
    context: AppContext = ctx.obj
    ticker = _normalize_ticker(ticker)
    try:
        flagged = context.repository.toggle_portfolio(ticker)
    except LookupError as exc:
        _fail(str(exc))
    state = "added to" if flagged else "removed from"
    console.print(f"{ticker} {state} portfolio")
