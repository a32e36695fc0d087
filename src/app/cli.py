"""Click CLI for the factor screener.

Entry point: ``fscreen`` (installed via pyproject.toml) or ``python -m app.cli``.
"""

from __future__ import annotations

import math
import threading
from collections import Counter
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, timedelta
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from app.config import get_value
from app.logging import get_logger
from screener import scoring
from screener.engine import ScreenCancelled, ScreenerEngine
from screener.models import (
    Disposition,
    NormalizationMode,
    ScoringWeights,
    ScreenFilters,
    ScreenProgress,
    ScreenRequest,
    ScreenResult,
)

logger = get_logger(__name__)
console = Console()

# Short labels for the live disposition counters.
_DISPOSITION_LABELS: dict[Disposition, str] = {
    Disposition.INCLUDED: "inc",
    Disposition.SKIPPED_BLANK: "blank",
    Disposition.SKIPPED_NO_FUNDAMENTALS: "noFund",
    Disposition.SKIPPED_NO_PRICES: "noPrices",
    Disposition.SKIPPED_FILTERED_OUT: "filtered",
    Disposition.FAILED_FUNDAMENTALS: "failFund",
    Disposition.FAILED_PRICES: "failPrices",
    Disposition.FAILED: "fail",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error(message: str, code: int = 1) -> None:
    """Print a styled error message and exit."""
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise SystemExit(code)


def parse_tickers(value: str) -> list[str]:
    """Split a comma-separated list; trim, upper-case and de-duplicate in order."""
    seen: dict[str, None] = {}
    for part in value.split(","):
        t = part.strip().upper()
        if t:
            seen.setdefault(t, None)
    return list(seen)


def to_display_score(value: float, lo: float, hi: float) -> float:
    """Min-max scale a raw total into 0..100 for display (50 when flat)."""
    if not hi > lo:
        return 50.0
    t = (value - lo) / (hi - lo)
    return max(0.0, min(1.0, t)) * 100.0


def _sort_key(r: ScreenResult) -> float:
    total = r.score.total
    return -math.inf if math.isnan(total) else total


def _fmt(value: float, digits: int = 3) -> str:
    return "n/a" if math.isnan(value) else f"{value:.{digits}f}"


def _positive(ctx: click.Context, param: click.Parameter, value: Optional[float]):
    if value is not None and value <= 0:
        raise click.BadParameter("must be > 0")
    return value


def _non_negative(ctx: click.Context, param: click.Parameter, value: Optional[float]):
    if value is not None and value < 0:
        raise click.BadParameter("must be >= 0")
    return value


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(package_name="factor-screener")
def cli() -> None:
    """Factor Screener -- rank equities on value, quality, momentum, options and macro."""


# ---------------------------------------------------------------------------
# screen
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("tickers")
@click.option(
    "--days", type=click.IntRange(min=1), default=None,
    help="Lookback window in days for price history (default: from config, else 90).",
)
@click.option("--top", type=click.IntRange(min=1), default=10, show_default=True,
              help="How many top-ranked tickers to display.")
@click.option("--explain", "explain_ticker", default=None,
              help="Show the scoring breakdown for one ticker from the result set.")
@click.option("--min-fcf-yield", type=float, default=None, callback=_non_negative,
              help="Filter: minimum free cash flow yield (0.05 = 5%).")
@click.option("--max-pe", type=float, default=None, callback=_positive,
              help="Filter: maximum P/E ratio.")
@click.option("--min-roic", type=float, default=None, callback=_non_negative,
              help="Filter: minimum ROIC (0.10 = 10%).")
@click.option("--max-netdebt-ebitda", type=float, default=None, callback=_non_negative,
              help="Filter: maximum net debt / EBITDA.")
@click.option("--min-momentum", type=float, default=None,
              help="Filter: minimum 20-bar momentum (0.05 = +5%).")
@click.option(
    "--normalize", type=click.Choice(["none", "global", "sector"], case_sensitive=False),
    default="none", show_default=True,
    help="Re-score value/quality/momentum with per-run z-scores.",
)
def screen(
    tickers: str,
    days: Optional[int],
    top: int,
    explain_ticker: Optional[str],
    min_fcf_yield: Optional[float],
    max_pe: Optional[float],
    min_roic: Optional[float],
    max_netdebt_ebitda: Optional[float],
    min_momentum: Optional[float],
    normalize: str,
) -> None:
    """Screen and rank a comma-separated list of TICKERS."""
    symbols = parse_tickers(tickers)
    if not symbols:
        _error("Please provide one or more tickers (comma-separated).")

    lookback = days or int(get_value("screener.lookback_days", 90))
    end = date.today()
    start = end - timedelta(days=lookback)

    filters = ScreenFilters(
        min_fcf_yield=min_fcf_yield,
        max_pe=max_pe,
        min_roic=min_roic,
        max_net_debt_to_ebitda=max_netdebt_ebitda,
        min_momentum=min_momentum,
    )
    weights = ScoringWeights.from_mapping(get_value("screener.weights", {}))
    request = ScreenRequest(
        tickers=symbols,
        start=start,
        end=end,
        weights=weights,
        filters=None if filters.is_empty else filters,
        normalization=NormalizationMode.parse(normalize),
        min_group_size=int(get_value("screener.min_group_size", 5)),
    )

    try:
        engine = ScreenerEngine.from_config()
        results = _run_with_progress(engine, request)
    except ScreenCancelled as exc:
        console.print(
            f"[yellow]Screen cancelled; {len(exc.results)} ticker(s) completed before the stop.[/yellow]"
        )
        if exc.results:
            ordered = sorted(exc.results, key=_sort_key, reverse=True)
            _print_ranking(ordered, top, lookback, len(symbols))
        raise SystemExit(130)
    except Exception as exc:
        logger.exception("screen failed")
        _error(f"Screen failed: {exc}", code=2)

    if not results:
        console.print("[yellow]No results (no ticker had both prices and fundamentals).[/yellow]")
        raise SystemExit(1)

    ordered = sorted(results, key=_sort_key, reverse=True)

    if explain_ticker:
        target = explain_ticker.strip().upper()
        match = next((r for r in ordered if r.ticker == target), None)
        if match is None:
            console.print(f"[yellow]Ticker not found in results:[/yellow] [bold]{escape(target)}[/bold]")
            raise SystemExit(1)
        _print_explain(match, weights, start, end)
        return

    _print_ranking(ordered, top, lookback, len(symbols))


def _run_with_progress(engine: ScreenerEngine, request: ScreenRequest) -> list[ScreenResult]:
    counts: Counter[Disposition] = Counter()

    with Progress(
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        SpinnerColumn(),
        TextColumn("{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("Screening tickers", total=len(request.tickers))

        def on_progress(p: ScreenProgress) -> None:
            counts[p.disposition] += 1
            summary = " ".join(
                f"{label}={counts[d]}" for d, label in _DISPOSITION_LABELS.items()
            )
            head = f"Screening [bold]{escape(p.ticker)}[/bold]" if p.ticker else "Screening"
            progress.update(
                task_id,
                completed=p.completed,
                description=f"{head} ({p.completed}/{p.total})  [grey50]{summary}[/grey50]",
            )

        cancel = threading.Event()
        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="screen") as pool:
            future = pool.submit(engine.screen, request, on_progress, cancel)
            return _await_screen(future, cancel)


def _await_screen(future: Future, cancel: threading.Event) -> list[ScreenResult]:
    """Wait for the screen; on Ctrl+C signal cancellation and wait for wind-down.

    The wind-down ends in :class:`ScreenCancelled` carrying the partial results.
    """
    try:
        return future.result()
    except KeyboardInterrupt:
        cancel.set()
        console.print("[yellow]Cancelling; waiting for in-flight tickers...[/yellow]")
        return future.result()


def _print_ranking(ordered: list[ScreenResult], top: int, days: int, requested: int) -> None:
    finite = [r.score.total for r in ordered if not math.isnan(r.score.total)]
    lo, hi = (min(finite), max(finite)) if finite else (0.0, 0.0)
    shown = ordered[:top]

    table = Table(title="Screen Results")
    table.add_column("#", justify="right")
    table.add_column("Ticker", style="bold", no_wrap=True)
    table.add_column("Score", justify="right")
    table.add_column("Total (raw)", justify="right")
    table.add_column("Value", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Momentum", justify="right")
    table.add_column("Options", justify="right")
    table.add_column("Macro", justify="right")
    table.add_column("Sector")

    for i, r in enumerate(shown, start=1):
        s = r.score
        display = "n/a" if math.isnan(s.total) else f"{to_display_score(s.total, lo, hi):.1f}"
        table.add_row(
            str(i),
            escape(r.ticker),
            display,
            _fmt(s.total),
            _fmt(s.value),
            _fmt(s.quality),
            _fmt(s.momentum),
            _fmt(s.options),
            _fmt(s.macro),
            escape(r.fundamentals.sector),
        )

    console.print(f"[bold]Screen results[/bold] (days={days}, tickers={requested}, shown={len(shown)})")
    console.print(table)


def _print_explain(r: ScreenResult, weights: ScoringWeights, start: date, end: date) -> None:
    b = scoring.explain(r.fundamentals, r.prices, r.options, r.macro, weights)

    info = Table.grid(padding=(0, 2))
    info.add_column(style="bold")
    info.add_column()
    info.add_row("Ticker", escape(r.ticker))
    info.add_row("Sector", escape(r.fundamentals.sector))
    info.add_row("Bars", str(len(r.prices)))
    info.add_row("Range", f"{start}..{end}")
    info.add_row("Options snapshot", "[green]present[/green]" if r.options else "[yellow]none[/yellow]")
    console.print(Panel(info, title="explain", title_align="left"))

    f = r.fundamentals
    fundamentals = Table(title="Fundamentals")
    fundamentals.add_column("Fundamental")
    fundamentals.add_column("Value", justify="right")
    fundamentals.add_row("P/E", _fmt(f.pe))
    fundamentals.add_row("EV/EBITDA", _fmt(f.ev_to_ebitda))
    fundamentals.add_row("FCF Yield", _fmt(f.fcf_yield, 4))
    fundamentals.add_row("P/B", _fmt(f.pb))
    fundamentals.add_row("ROIC", _fmt(f.roic, 4))
    fundamentals.add_row("Gross Margin", _fmt(f.gross_margin, 4))
    fundamentals.add_row("Net Debt/EBITDA", _fmt(f.net_debt_to_ebitda))
    console.print(fundamentals)

    factors = Table(title="Score Breakdown")
    factors.add_column("Factor")
    factors.add_column("Raw", justify="right")
    factors.add_column("Weight", justify="right")
    factors.add_column("Weighted", justify="right")
    w = b.weighted
    factors.add_row("Value", _fmt(b.value_raw), _fmt(weights.value), _fmt(w.value))
    factors.add_row("Quality", _fmt(b.quality_raw), _fmt(weights.quality), _fmt(w.quality))
    factors.add_row("Momentum", _fmt(b.momentum_raw), _fmt(weights.momentum), _fmt(w.momentum))
    factors.add_row("Options", _fmt(b.options_raw), _fmt(weights.options), _fmt(w.options))
    factors.add_row("Macro", _fmt(b.macro_raw), _fmt(weights.macro), _fmt(w.macro))
    factors.add_row("[bold]Total[/bold]", _fmt(b.total_raw), "", _fmt(w.total))
    console.print(factors)


# ---------------------------------------------------------------------------
# prices
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("ticker")
@click.option("--days", type=click.IntRange(min=1), default=30, show_default=True,
              help="Calendar days of history to fetch.")
@click.option("--provider", default=None,
              help="Price provider name (default: from config).")
def prices(ticker: str, days: int, provider: Optional[str]) -> None:
    """Fetch and display daily OHLCV bars for TICKER."""
    from data.providers import get_price_provider  # lazy import

    symbol = ticker.strip().upper()
    end = date.today()
    start = end - timedelta(days=days)

    try:
        source = get_price_provider(provider or get_value("providers.price", "stooq"))
    except ValueError as exc:
        _error(str(exc))

    try:
        with console.status(f"[bold green]Fetching {symbol} from {source.provider_name()}..."):
            df = source.fetch_daily(symbol, start, end)
    except Exception as exc:
        logger.exception("prices failed")
        _error(str(exc), code=2)

    if df.empty:
        console.print(f"[yellow]No bars for {escape(symbol)} in {start}..{end}.[/yellow]")
        raise SystemExit(1)

    table = Table(title=f"{symbol} daily bars ({source.provider_name()})")
    table.add_column("Date")
    for col in ("Open", "High", "Low", "Close"):
        table.add_column(col, justify="right")
    table.add_column("Volume", justify="right")

    for row in df.itertuples(index=False):
        table.add_row(
            row.timestamp.strftime("%Y-%m-%d"),
            f"{row.open:.2f}",
            f"{row.high:.2f}",
            f"{row.low:.2f}",
            f"{row.close:.2f}",
            f"{row.volume:,.0f}",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# options
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("ticker")
@click.option("--provider", default=None,
              help="Options provider name (default: from config).")
def options(ticker: str, provider: Optional[str]) -> None:
    """Show the options-market snapshot for TICKER."""
    from data.providers import get_options_provider  # lazy import

    symbol = ticker.strip().upper()
    if not symbol:
        _error("Please provide a ticker.")

    try:
        source = get_options_provider(provider or get_value("providers.options", "none"))
    except ValueError as exc:
        _error(str(exc))

    try:
        with console.status(f"[bold green]Fetching {symbol} options from {source.provider_name()}..."):
            snap = source.fetch_snapshot(symbol)
    except Exception as exc:
        logger.exception("options failed")
        _error(str(exc), code=2)

    if snap is None:
        console.print(
            f"[yellow]No options snapshot available for {escape(symbol)} "
            f"(provider {source.provider_name()} returned none).[/yellow]"
        )
        raise SystemExit(1)

    table = Table(title=f"{symbol} options snapshot ({source.provider_name()})")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Put/Call Ratio", _fmt(snap.put_call_ratio))
    table.add_row("IV Rank", _fmt(snap.implied_vol_rank))
    table.add_row("Call Vol / Avg20d", _fmt(snap.call_volume_to_avg_20d))
    table.add_row("Near OTM Call OI Delta", _fmt(snap.near_otm_call_oi_delta))
    console.print(table)


# ---------------------------------------------------------------------------
# doctor
# ---------------------------------------------------------------------------

# (label, config key, default name, registry lookup attribute)
_DOCTOR_PROVIDERS = (
    ("Price provider", "providers.price", "stooq", "get_price_provider"),
    ("Fundamentals provider", "providers.fundamentals", "config", "get_fundamentals_provider"),
    ("Options provider", "providers.options", "none", "get_options_provider"),
    ("Macro provider", "providers.macro", "config", "get_macro_provider"),
)

_DOCTOR_KEYS = (
    ("FRED API key", "providers.fred.api_key"),
    ("Polygon API key", "providers.polygon.api_key"),
)


@cli.command()
def doctor() -> None:
    """Show configured vs effective providers and which API keys are set."""
    import data.providers as registry  # lazy import

    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="bold")
    grid.add_column()

    broken = False
    for label, key, default, lookup in _DOCTOR_PROVIDERS:
        configured = str(get_value(key, "") or "").strip()
        grid.add_row(
            f"{label} (configured)",
            f"[green]{escape(configured)}[/green]" if configured else "[yellow](not set)[/yellow]",
        )
        try:
            effective = getattr(registry, lookup)(configured or default).provider_name()
            grid.add_row(f"{label} (effective)", f"[cyan]{escape(effective)}[/cyan]")
        except ValueError as exc:
            broken = True
            grid.add_row(f"{label} (effective)", f"[red]{escape(str(exc))}[/red]")
        grid.add_row("", "")

    for label, key in _DOCTOR_KEYS:
        present = bool(str(get_value(key, "") or "").strip())
        grid.add_row(label, "[green]present[/green]" if present else "[yellow]missing[/yellow]")

    console.print(Panel(grid, title="doctor", title_align="left"))
    logger.info("doctor ran")
    if broken:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
