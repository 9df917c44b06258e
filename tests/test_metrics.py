"""
Tests for the performance metrics module.
"""
import math
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, List

import numpy as np
import pandas as pd
import pytest

from portfolio_tracker.holdings import calculate_holdings
from portfolio_tracker.metrics import (
    analyze_trades,
    build_time_series,
    calculate_metrics,
    calculate_volatility,
)
from portfolio_tracker.types import PerformanceMetrics, PriceSnapshot, Transaction

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _tx(symbol: str, shares: float, price: float, type_: str, day: float) -> Transaction:
    return Transaction(symbol=symbol, shares=shares, price=price, type=type_, timestamp=T0 + timedelta(days=day))


@pytest.fixture
def prices() -> Dict[str, PriceSnapshot]:
    return {
        "X": PriceSnapshot(symbol="X", display_name="X Corp", current_price=10.0),
        "Y": PriceSnapshot(symbol="Y", display_name="Y Inc", current_price=20.0),
    }


@pytest.fixture
def sample_transactions() -> List[Transaction]:
    """
    Values at current prices: 100 -> 200 -> 150 -> 200.
    P&L at current prices: +20, -25, +10, +5.
    """
    return [
        _tx("X", 10, 8.0, "Buy", 0),
        _tx("Y", 5, 25.0, "Buy", 1),
        _tx("X", 5, 12.0, "Sell", 2),
        _tx("X", 5, 9.0, "Buy", 3),
    ]


def test_build_time_series(sample_transactions, prices):
    series = build_time_series(sample_transactions, prices)

    assert list(series["portfolio_value"]) == pytest.approx([100.0, 200.0, 150.0, 200.0])
    assert list(series["daily_return"]) == pytest.approx([0.0, 1.0, -0.25, 1 / 3])
    assert list(series["cumulative_return"]) == pytest.approx([0.0, 1.0, 0.5, 1.0])
    assert list(series["drawdown"]) == pytest.approx([0.0, 0.0, 25.0, 0.0])
    assert list(series["symbol"]) == ["X", "Y", "X", "X"]


def test_build_time_series_skips_unpriced_symbols(sample_transactions, prices):
    ledger = sample_transactions + [_tx("GONE", 1, 5.0, "Buy", 4)]
    series = build_time_series(ledger, prices)
    assert len(series) == 4


def test_build_time_series_empty():
    series = build_time_series([], {})
    assert series.empty
    assert "portfolio_value" in series.columns


def test_analyze_trades(sample_transactions, prices):
    trades = analyze_trades(sample_transactions, prices)

    assert trades["total_trades"] == 4
    assert trades["winning_trades"] == 3
    assert trades["losing_trades"] == 1
    assert trades["win_rate"] == pytest.approx(75.0)
    assert trades["average_win"] == pytest.approx(35 / 3)
    assert trades["average_loss"] == pytest.approx(25.0)
    assert trades["profit_factor"] == pytest.approx(1.4)
    assert trades["largest_win"] == pytest.approx(20.0)
    assert trades["largest_loss"] == pytest.approx(-25.0)
    assert trades["consecutive_wins"] == 2
    assert trades["consecutive_losses"] == 1


def test_profit_factor_zero_without_losses(prices):
    trades = analyze_trades([_tx("X", 1, 5.0, "Buy", 0)], prices)
    assert trades["profit_factor"] == 0.0
    assert trades["average_loss"] == 0.0


def test_calculate_volatility():
    returns = np.array([0.01, -0.02, 0.015])
    expected = np.std(returns, ddof=1) * math.sqrt(252) * 100
    assert calculate_volatility(pd.Series(returns)) == pytest.approx(expected)
    assert calculate_volatility(pd.Series([0.05])) == 0.0


def test_calculate_metrics(sample_transactions, prices):
    holdings = calculate_holdings(sample_transactions, prices)
    metrics = calculate_metrics(sample_transactions, holdings, prices, initial_cash=1000.0)

    # Invested = 80 + 125 - 60 + 45 = 190; current value = 10*10 + 5*20 = 200
    assert metrics.total_return == pytest.approx(10.0)
    assert metrics.total_return_percentage == pytest.approx(10 / 190 * 100)

    returns = [1.0, -0.25, 1 / 3]
    volatility = np.std(returns, ddof=1) * math.sqrt(252) * 100
    assert metrics.volatility == pytest.approx(volatility)
    assert metrics.max_drawdown == pytest.approx(25.0)
    assert metrics.current_drawdown == pytest.approx(0.0)

    years = 3 / 365.25
    annualized = (1 + metrics.total_return_percentage / 100) ** (1 / years) - 1
    assert metrics.annualized_return == pytest.approx(annualized)
    assert metrics.sharpe_ratio == pytest.approx((annualized - 0.02) / (volatility / 100))
    assert metrics.calmar_ratio == pytest.approx(annualized / 25.0)

    downside = np.array([r for r in returns if r < annualized])
    downside_dev = math.sqrt(np.mean((downside - annualized) ** 2))
    assert metrics.sortino_ratio == pytest.approx(annualized / downside_dev)

    assert metrics.total_trades == 4
    assert metrics.initial_cash == 1000.0


def test_calculate_metrics_custom_risk_free_rate(sample_transactions, prices):
    holdings = calculate_holdings(sample_transactions, prices)
    base = calculate_metrics(sample_transactions, holdings, prices, 0.0)
    shifted = calculate_metrics(sample_transactions, holdings, prices, 0.0, risk_free_rate=0.05)
    assert shifted.sharpe_ratio == pytest.approx(base.sharpe_ratio - 0.03 / (base.volatility / 100))


def test_calculate_metrics_sorts_a_copy(sample_transactions, prices):
    shuffled = list(reversed(sample_transactions))
    snapshot = list(shuffled)
    holdings = calculate_holdings(sample_transactions, prices)

    assert calculate_metrics(shuffled, holdings, prices, 0.0) == calculate_metrics(
        sample_transactions, holdings, prices, 0.0
    )
    assert shuffled == snapshot


def test_calculate_metrics_empty_is_all_zero():
    assert calculate_metrics([], [], {}, 0) == PerformanceMetrics()


def test_single_transaction_uses_one_year(prices):
    transactions = [_tx("X", 10, 8.0, "Buy", 0)]
    metrics = calculate_metrics(transactions, calculate_holdings(transactions, prices), prices, 0.0)

    assert metrics.total_return_percentage == pytest.approx(25.0)
    assert metrics.annualized_return == pytest.approx(0.25)
    assert metrics.volatility == 0.0
    assert metrics.sharpe_ratio == 0.0
    assert metrics.sortino_ratio == 0.0
    assert metrics.calmar_ratio == 0.0


def test_total_loss_annualizes_to_minus_one(prices):
    transactions = [_tx("X", 10, 10.0, "Buy", 0), _tx("X", 10, 6.0, "Sell", 365)]
    metrics = calculate_metrics(transactions, calculate_holdings(transactions, prices), prices, 0.0)
    assert metrics.total_return_percentage == pytest.approx(-100.0)
    assert metrics.annualized_return == -1.0


def test_max_drawdown_not_below_current_drawdown(prices):
    rng = random.Random(7)
    for _ in range(25):
        transactions = [
            _tx(rng.choice("XY"), rng.randint(1, 20), rng.uniform(5, 30), rng.choice(["Buy", "Buy", "Sell"]), day)
            for day in range(rng.randint(1, 12))
        ]
        metrics = calculate_metrics(transactions, [], prices, 0.0)
        assert metrics.max_drawdown >= metrics.current_drawdown - 1e-9


def test_close_trades_annualize_to_infinity():
    """A gain over half an hour compounds past the float range instead of raising."""
    prices = {"X": PriceSnapshot(symbol="X", display_name="X Corp", current_price=110.0)}
    start = datetime(2024, 3, 1, 14, 30, tzinfo=timezone.utc)
    transactions = [
        Transaction(symbol="X", shares=10, price=100.0, type="Buy", timestamp=start),
        Transaction(symbol="X", shares=10, price=100.0, type="Buy", timestamp=start + timedelta(minutes=30)),
    ]

    metrics = calculate_metrics(transactions, calculate_holdings(transactions, prices), prices, 0.0)

    assert metrics.total_return_percentage == pytest.approx(10.0)
    assert metrics.annualized_return == math.inf
    # A single non-zero return leaves volatility and drawdown at zero.
    assert metrics.sharpe_ratio == 0.0
    assert metrics.calmar_ratio == 0.0
    assert metrics.sortino_ratio == math.inf


def test_infinite_annualized_return_propagates_to_ratios():
    prices = {"X": PriceSnapshot(symbol="X", display_name="X Corp", current_price=110.0)}
    start = datetime(2024, 3, 1, 14, 30, tzinfo=timezone.utc)
    transactions = [
        Transaction(symbol="X", shares=10, price=100.0, type="Buy", timestamp=start),
        Transaction(symbol="X", shares=5, price=100.0, type="Sell", timestamp=start + timedelta(minutes=15)),
        Transaction(symbol="X", shares=10, price=100.0, type="Buy", timestamp=start + timedelta(minutes=30)),
    ]

    metrics = calculate_metrics(transactions, calculate_holdings(transactions, prices), prices, 0.0)

    assert metrics.volatility > 0
    assert metrics.max_drawdown == pytest.approx(50.0)
    assert metrics.annualized_return == math.inf
    assert metrics.sharpe_ratio == math.inf
    assert metrics.calmar_ratio == math.inf
    assert metrics.sortino_ratio == math.inf
