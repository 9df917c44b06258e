"""
CLI entry point for the portfolio tracker.
"""
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from portfolio_tracker.adapters.yfinance_api import fetch_price_snapshots
from portfolio_tracker.config import Config, load_config
from portfolio_tracker.data import load_ledger, save_price_snapshots
from portfolio_tracker.ledger import LedgerError
from portfolio_tracker.pipeline import run_report
from portfolio_tracker.types import MissingPriceData, PortfolioReport

# Console is created once and passed down.
# Log to stderr to separate from potential data output to stdout.
app = typer.Typer(pretty_exceptions_show_locals=False, help="Personal investment portfolio tracker.")
console = Console(stderr=True)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging.")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config_or_exit(config_path: Path) -> Config:
    """Helper to load config and exit on failure."""
    try:
        return load_config(config_path)
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[bold red]Configuration Error:[/bold red] {e}")
        raise typer.Exit(code=1)


def _print_report(report: PortfolioReport) -> None:
    s, p, ai = report.summary, report.performance, report.ai_metrics

    summary = Table(title="Portfolio Summary", show_header=False)
    summary.add_row("Total value", f"{s.total_portfolio_value:,.2f}")
    summary.add_row("Gain/loss", f"{s.total_gain_loss:,.2f} ({s.total_gain_loss_percentage:.2f}%)")
    summary.add_row("Cash balance", f"{s.cash_balance:,.2f}")
    summary.add_row("Available cash", f"{s.available_cash:,.2f}")
    summary.add_row("Stocks held", str(s.stock_count))
    console.print(summary)

    holdings = Table(title="Holdings")
    for column in ("Symbol", "Name", "Shares", "Avg cost", "Price", "Value", "Gain/loss %"):
        holdings.add_column(column, justify="left" if column in ("Symbol", "Name") else "right")
    for h in report.holdings:
        holdings.add_row(
            h.symbol, h.display_name, f"{h.total_shares:g}", f"{h.average_cost:,.2f}",
            f"{h.current_price:,.2f}", f"{h.total_value:,.2f}", f"{h.gain_loss_percentage:.2f}",
        )
    console.print(holdings)

    performance = Table(title="Performance", show_header=False)
    performance.add_row("Total return", f"{p.total_return:,.2f} ({p.total_return_percentage:.2f}%)")
    performance.add_row("Annualized return", f"{p.annualized_return:.4f}")
    performance.add_row("Volatility %", f"{p.volatility:.2f}")
    performance.add_row("Max / current drawdown %", f"{p.max_drawdown:.2f} / {p.current_drawdown:.2f}")
    performance.add_row("Sharpe / Sortino / Calmar", f"{p.sharpe_ratio:.2f} / {p.sortino_ratio:.2f} / {p.calmar_ratio:.2f}")
    performance.add_row("Trades (won / lost)", f"{p.total_trades} ({p.winning_trades} / {p.losing_trades})")
    performance.add_row("Win rate %", f"{p.win_rate:.2f}")
    console.print(performance)

    recs = Table(title="AI Recommendations", show_header=False)
    recs.add_row("Recommendations (executed)", f"{ai.total_recommendations} ({ai.executed_recommendations})")
    recs.add_row("Accuracy %", f"{ai.accuracy:.2f}")
    recs.add_row("Precision / recall %", f"{ai.precision:.2f} / {ai.recall:.2f}")
    recs.add_row("F1", f"{ai.f1_score:.2f}")
    days = ai.average_days_to_execution
    recs.add_row("Avg days to execution", f"{days:.1f}" if days is not None else "n/a")
    console.print(recs)


@app.command()
def report(
    config_path: Path = typer.Option(
        ..., "--config", "-c", help="Path to the YAML configuration file.", exists=True
    ),
):
    """Compute holdings, summary and analytics for the ledger and write reports."""
    config = _load_config_or_exit(config_path)

    try:
        result = run_report(config, console)
    except MissingPriceData as e:
        console.print(f"[bold yellow]Partial data:[/bold yellow] {e}. Run 'refresh-prices' first.")
        raise typer.Exit(code=1)
    except (LedgerError, ValueError, FileNotFoundError) as e:
        console.print(f"[bold red]Ledger Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    _print_report(result)
    console.print("[bold green]Report command finished.[/bold green]")


@app.command(name="refresh-prices")
def refresh_prices(
    config_path: Path = typer.Option(
        ..., "--config", "-c", help="Path to the YAML configuration file.", exists=True
    ),
):
    """
    Refresh current prices for every symbol in the ledger (e.g., from yfinance).
    """
    config = _load_config_or_exit(config_path)

    try:
        symbols = load_ledger(config).symbols()
    except (LedgerError, ValueError, FileNotFoundError) as e:
        console.print(f"[bold red]Ledger Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    if not symbols:
        console.print("[yellow]Warning: No symbols to refresh.[/yellow]")
        raise typer.Exit()

    console.print(f"Found {len(symbols)} symbols in the ledger. Refreshing prices.")
    snapshots, failed_symbols = fetch_price_snapshots(symbols)
    if snapshots:
        path = save_price_snapshots(snapshots, config)
        console.print(f"Saved {len(snapshots)} prices to [cyan]{path}[/cyan]")

    if failed_symbols:
        console.print(f"[bold yellow]Warning:[/bold yellow] Failed to fetch prices for {len(failed_symbols)} symbols:")
        for symbol in sorted(failed_symbols):
            console.print(f" - {symbol}")

    console.print("[bold green]Price refresh completed.[/bold green]")


if __name__ == "__main__":
    app()
