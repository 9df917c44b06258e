"""
Tests for CLI interface.
"""
from datetime import datetime, timezone
from pathlib import Path

import pandas as pd
import yaml
from typer.testing import CliRunner

from cli import app
from portfolio_tracker.ledger import Ledger, LedgerError
from portfolio_tracker.types import (
    AIRecommendationMetrics,
    MissingPriceData,
    PerformanceMetrics,
    PortfolioReport,
    PortfolioSummary,
    PriceSnapshot,
    Transaction,
)

# CliRunner collects stderr into .output, which is where the console writes.
runner = CliRunner()

SAMPLE_DIR = Path(__file__).resolve().parent.parent / "data" / "sample"


def create_temp_config(tmp_path: Path, ledger_dir: Path = SAMPLE_DIR) -> Path:
    """Creates a temporary, valid YAML config file for testing."""
    config_path = tmp_path / "test_config.yaml"
    config_dict = {
        "run": {"name": "test_cli_run", "output_dir": str(tmp_path / "out")},
        "data": {"ledger_dir": str(ledger_dir), "format": "csv"},
        "reporting": {"output_formats": ["json"]},
    }
    config_path.write_text(yaml.dump(config_dict))
    return config_path


def _empty_report() -> PortfolioReport:
    return PortfolioReport(
        generated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        holdings=[],
        summary=PortfolioSummary(
            total_portfolio_value=100.0, total_gain_loss=0.0, total_gain_loss_percentage=0.0,
            stock_count=0, cash_balance=100.0, available_cash=100.0,
        ),
        performance=PerformanceMetrics(),
        ai_metrics=AIRecommendationMetrics(),
        time_series=pd.DataFrame(),
    )


def test_cli_help() -> None:
    """Test CLI --help flag."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "Personal investment portfolio tracker" in result.output
    assert "refresh-prices" in result.output


def test_cli_report_with_missing_config_file() -> None:
    """Test that `report` exits if the config file does not exist."""
    result = runner.invoke(app, ["report", "--config", "nonexistent.yaml"])
    assert result.exit_code == 2


def test_cli_report_with_invalid_config(tmp_path: Path) -> None:
    config_path = tmp_path / "bad.yaml"
    config_path.write_text(yaml.dump({"run": {"name": "x", "output_dir": "out"}}))

    result = runner.invoke(app, ["report", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Configuration Error" in result.output


def test_cli_report_command_runs(mocker, tmp_path: Path) -> None:
    """Tests that the `report` command hands the loaded config to the pipeline."""
    m_run = mocker.patch("cli.run_report", return_value=_empty_report())
    config_path = create_temp_config(tmp_path)

    result = runner.invoke(app, ["report", "--config", str(config_path)])

    assert result.exit_code == 0, f"CLI exited with error: {result.output}"
    assert "Report command finished" in result.output
    m_run.assert_called_once()
    assert m_run.call_args.args[0].run.name == "test_cli_run"


def test_cli_report_missing_price(mocker, tmp_path: Path) -> None:
    mocker.patch("cli.run_report", side_effect=MissingPriceData("XYZ"))
    config_path = create_temp_config(tmp_path)

    result = runner.invoke(app, ["report", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Partial data" in result.output
    assert "XYZ" in result.output


def test_cli_report_ledger_error(mocker, tmp_path: Path) -> None:
    mocker.patch("cli.run_report", side_effect=LedgerError("broken ledger"))
    config_path = create_temp_config(tmp_path)

    result = runner.invoke(app, ["report", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Ledger Error" in result.output


def test_cli_report_end_to_end(tmp_path: Path) -> None:
    """Runs `report` against the bundled sample ledger without mocks."""
    config_path = create_temp_config(tmp_path)

    result = runner.invoke(app, ["report", "--config", str(config_path)])

    assert result.exit_code == 0, f"CLI exited with error: {result.output}"
    assert (tmp_path / "out" / "summary.json").exists()
    assert "AAPL" in result.output


def test_cli_refresh_prices(mocker, tmp_path: Path) -> None:
    """Tests that refresh-prices fetches every ledger symbol and saves the results."""
    ledger = Ledger.from_records([
        Transaction(symbol="AAPL", shares=1, price=150.0, type="Buy", timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc)),
        Transaction(symbol="BAD", shares=1, price=5.0, type="Buy", timestamp=datetime(2024, 1, 2, tzinfo=timezone.utc)),
    ])
    snapshot = PriceSnapshot(symbol="AAPL", display_name="Apple Inc.", current_price=190.0)
    mocker.patch("cli.load_ledger", return_value=ledger)
    m_fetch = mocker.patch("cli.fetch_price_snapshots", return_value=({"AAPL": snapshot}, ["BAD"]))
    m_save = mocker.patch("cli.save_price_snapshots", return_value=tmp_path / "prices.csv")
    config_path = create_temp_config(tmp_path)

    result = runner.invoke(app, ["refresh-prices", "--config", str(config_path)])

    assert result.exit_code == 0, f"CLI exited with error: {result.output}"
    assert "Found 2 symbols" in result.output
    assert "BAD" in result.output
    assert "Price refresh completed" in result.output
    m_fetch.assert_called_once_with(["AAPL", "BAD"])
    m_save.assert_called_once_with({"AAPL": snapshot}, mocker.ANY)


def test_cli_refresh_prices_no_symbols(mocker, tmp_path: Path) -> None:
    mocker.patch("cli.load_ledger", return_value=Ledger())
    m_fetch = mocker.patch("cli.fetch_price_snapshots")
    config_path = create_temp_config(tmp_path)

    result = runner.invoke(app, ["refresh-prices", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "No symbols to refresh" in result.output
    m_fetch.assert_not_called()
