"""
Generating output reports from a portfolio analytics run.
"""
import json
from datetime import datetime
from pathlib import Path

import numpy as np
import pandas as pd
from rich.console import Console

from portfolio_tracker.config import Config
from portfolio_tracker.types import PortfolioReport

__all__ = ["generate_all_reports"]


def _to_json_serializable(data):
    """Recursively converts non-serializable types in a dictionary."""
    if isinstance(data, dict):
        return {k: _to_json_serializable(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_to_json_serializable(i) for i in data]
    if isinstance(data, (Path, pd.Timestamp, pd.Timedelta)):
        return str(data)
    if isinstance(data, datetime):
        return data.isoformat()
    # JSON has no NaN or infinity.
    if data is None or (isinstance(data, float) and not np.isfinite(data)):
        return None
    # Convert numpy types to native Python types
    if isinstance(data, np.integer):
        return int(data)
    if isinstance(data, np.floating):
        return float(data)
    if isinstance(data, np.bool_):
        return bool(data)
    return data


# impure
def _generate_holdings_csv(report: PortfolioReport, output_dir: Path) -> None:
    """Writes one row per holding, plus the transaction value series."""
    holdings_df = pd.DataFrame([h.model_dump() for h in report.holdings])
    holdings_df.to_csv(output_dir / "holdings.csv", index=False)
    if not report.time_series.empty:
        report.time_series.to_csv(output_dir / "time_series.csv", index=False)


# impure
def _generate_summary_json(report: PortfolioReport, config: Config, output_dir: Path) -> None:
    """Generates a JSON file with the summary and every metric."""
    summary = {
        "run_name": config.run.name,
        "generated_at": report.generated_at,
        "summary": report.summary.model_dump(),
        "holdings": [h.model_dump() for h in report.holdings],
        "performance": report.performance.model_dump(),
        "ai_metrics": report.ai_metrics.model_dump(),
    }
    with (output_dir / "summary.json").open("w") as f:
        json.dump(_to_json_serializable(summary), f, indent=2)


# impure
def _generate_summary_markdown(report: PortfolioReport, config: Config, output_dir: Path) -> None:
    """Generates a Markdown file with a human-readable summary."""
    s, p, ai = report.summary, report.performance, report.ai_metrics
    md = f"# Portfolio Report: {config.run.name}\n\n"
    md += f"Generated at {report.generated_at.isoformat()}\n\n"

    md += "## Summary\n\n"
    md += f"- **Total Portfolio Value**: {s.total_portfolio_value:.2f}\n"
    md += f"- **Total Gain/Loss**: {s.total_gain_loss:.2f} ({s.total_gain_loss_percentage:.2f}%)\n"
    md += f"- **Cash Balance**: {s.cash_balance:.2f}\n"
    md += f"- **Available Cash**: {s.available_cash:.2f}\n"
    md += f"- **Stocks Held**: {s.stock_count}\n\n"

    if report.holdings:
        md += "## Holdings\n\n"
        md += "| Symbol | Shares | Avg Cost | Price | Value | Gain/Loss [%] |\n"
        md += "|---|---:|---:|---:|---:|---:|\n"
        for h in report.holdings:
            md += (
                f"| {h.symbol} | {h.total_shares:g} | {h.average_cost:.2f} | {h.current_price:.2f} "
                f"| {h.total_value:.2f} | {h.gain_loss_percentage:.2f} |\n"
            )
        md += "\n"

    md += "## Performance\n\n"
    key_metrics = [
        ("Total Return [%]", p.total_return_percentage),
        ("Annualized Return", p.annualized_return),
        ("Volatility [%]", p.volatility),
        ("Max Drawdown [%]", p.max_drawdown),
        ("Current Drawdown [%]", p.current_drawdown),
        ("Sharpe Ratio", p.sharpe_ratio),
        ("Sortino Ratio", p.sortino_ratio),
        ("Calmar Ratio", p.calmar_ratio),
        ("Win Rate [%]", p.win_rate),
        ("Profit Factor", p.profit_factor),
    ]
    for name, value in key_metrics:
        md += f"- **{name}**: {value:.2f}\n"
    md += f"- **Total Trades**: {p.total_trades}\n\n"

    md += "## AI Recommendations\n\n"
    md += f"- **Accuracy [%]**: {ai.accuracy:.2f}\n"
    md += f"- **Precision [%]**: {ai.precision:.2f}\n"
    md += f"- **Recall [%]**: {ai.recall:.2f}\n"
    md += f"- **F1 Score**: {ai.f1_score:.2f}\n"
    md += f"- **Average Return [%]** ({ai.return_basis}): {ai.average_return_on_recommendations:.2f}\n"

    (output_dir / "summary.md").write_text(md)


# impure
def generate_all_reports(
    config: Config,
    report: PortfolioReport,
    run_dir: Path,
    console: Console,
) -> None:
    """
    Orchestrates the generation of all output reports.
    #impure: Writes to the filesystem.
    """
    formats = config.reporting.output_formats

    if "csv" in formats:
        console.print("Generating holdings CSV...")
        _generate_holdings_csv(report, run_dir)

    if "json" in formats:
        console.print("Generating summary JSON...")
        _generate_summary_json(report, config, run_dir)

    if "markdown" in formats:
        console.print("Generating summary Markdown...")
        _generate_summary_markdown(report, config, run_dir)

    console.print("All reports generated.")
