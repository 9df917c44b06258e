"""
Performance metrics and evaluation.

This module derives a value series from the transaction ledger and the
current price snapshots, then computes return, risk and trade-level
statistics for the portfolio.

The value series revalues every transaction at today's price rather than at
historical prices, so risk figures describe the shape of the ledger at
current prices, not a true historical equity curve.
"""
import math
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np
import pandas as pd

from portfolio_tracker.types import Holding, PerformanceMetrics, PriceSnapshot, Transaction

__all__ = [
    "RISK_FREE_RATE",
    "TRADING_DAYS_PER_YEAR",
    "analyze_trades",
    "build_time_series",
    "calculate_metrics",
    "calculate_volatility",
]

RISK_FREE_RATE = 0.02
TRADING_DAYS_PER_YEAR = 252
DAYS_PER_YEAR = 365.25

TIME_SERIES_COLUMNS = [
    "timestamp", "symbol", "portfolio_value", "daily_return", "cumulative_return", "drawdown",
]


def _transactions_frame(transactions: Sequence[Transaction]) -> pd.DataFrame:
    """Returns the transactions as a DataFrame sorted by timestamp. Does not mutate the input."""
    if not transactions:
        return pd.DataFrame({
            "symbol": pd.Series(dtype=object),
            "shares": pd.Series(dtype=float),
            "price": pd.Series(dtype=float),
            "type": pd.Series(dtype=object),
            "timestamp": pd.Series(dtype="datetime64[ns, UTC]"),
        })

    df = pd.DataFrame([t.model_dump() for t in transactions])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df.sort_values("timestamp", kind="stable").reset_index(drop=True)


def _with_current_prices(df: pd.DataFrame, prices: Mapping[str, PriceSnapshot]) -> pd.DataFrame:
    """Keeps rows whose symbol has a price snapshot and adds a 'current_price' column."""
    current = {symbol: snapshot.current_price for symbol, snapshot in prices.items()}
    priced = df[df["symbol"].isin(current.keys())].copy()
    priced["current_price"] = priced["symbol"].map(current).astype(float)
    priced["direction"] = np.where(priced["type"] == "Buy", 1.0, -1.0)
    return priced


def build_time_series(
    transactions: Sequence[Transaction], prices: Mapping[str, PriceSnapshot]
) -> pd.DataFrame:
    """
    Builds a per-transaction portfolio value series at current prices.

    Each transaction moves the running value by shares * current price (added
    for buys, subtracted for sells). Transactions without a price snapshot are
    skipped.

    Returns:
        A DataFrame with one row per priced transaction and the columns
        timestamp, symbol, portfolio_value, daily_return, cumulative_return
        and drawdown (percent below the running peak).
    """
    priced = _with_current_prices(_transactions_frame(transactions), prices)
    if priced.empty:
        return pd.DataFrame(columns=TIME_SERIES_COLUMNS).astype(
            {"portfolio_value": float, "daily_return": float, "cumulative_return": float, "drawdown": float}
        )

    values = (priced["direction"] * priced["shares"] * priced["current_price"]).cumsum()
    previous = values.shift(1, fill_value=0.0)
    daily_return = ((values - previous) / previous.replace(0.0, np.nan)).fillna(0.0)

    running_peak = values.cummax().clip(lower=0.0)
    drawdown = ((running_peak - values) / running_peak.replace(0.0, np.nan) * 100).fillna(0.0)

    series = pd.DataFrame({
        "timestamp": priced["timestamp"].values,
        "symbol": priced["symbol"].values,
        "portfolio_value": values.values,
        "daily_return": daily_return.values,
        "cumulative_return": ((1 + daily_return).cumprod() - 1).values,
        "drawdown": drawdown.values,
    })
    return series


def calculate_volatility(returns: pd.Series, trading_days: int = TRADING_DAYS_PER_YEAR) -> float:
    """Annualized sample standard deviation of returns, in percent. Zero for fewer than two returns."""
    if len(returns) < 2:
        return 0.0
    return float(returns.std(ddof=1) * math.sqrt(trading_days) * 100)


def _max_drawdown(values: pd.Series) -> float:
    if values.empty:
        return 0.0
    peak = values.cummax().clip(lower=0.0)
    drawdown = ((peak - values) / peak.replace(0.0, np.nan) * 100).fillna(0.0)
    return float(drawdown.max())


def _current_drawdown(values: pd.Series) -> float:
    if values.empty:
        return 0.0
    peak = values.max()
    if peak <= 0:
        return 0.0
    return float((peak - values.iloc[-1]) / peak * 100)


def _longest_streak(flags: pd.Series) -> int:
    """Length of the longest run of True values."""
    if flags.empty:
        return 0
    run_ids = (flags != flags.shift()).cumsum()
    runs = flags.groupby(run_ids).agg(["first", "size"])
    winning_runs = runs.loc[runs["first"].astype(bool), "size"]
    return int(winning_runs.max()) if not winning_runs.empty else 0


def analyze_trades(
    transactions: Sequence[Transaction], prices: Mapping[str, PriceSnapshot]
) -> Dict[str, Any]:
    """
    Scores each transaction as if it were closed at the current price.

    A buy gains when the price has risen since execution; a sell gains when
    it has fallen. Transactions without a price snapshot are not counted.

    Returns:
        A dictionary with total/winning/losing trade counts, win_rate (percent),
        average_win, average_loss (as a positive amount), profit_factor,
        largest_win, largest_loss (as a negative P&L), consecutive_wins and
        consecutive_losses (longest chronological streaks).
    """
    priced = _with_current_prices(_transactions_frame(transactions), prices)
    pnl = priced["direction"] * priced["shares"] * (priced["current_price"] - priced["price"])

    wins = pnl[pnl > 0]
    losses = pnl[pnl < 0]
    total_trades = len(pnl)
    total_win_amount = float(wins.sum())
    total_loss_amount = float(losses.abs().sum())

    return {
        "total_trades": total_trades,
        "winning_trades": len(wins),
        "losing_trades": len(losses),
        "win_rate": len(wins) / total_trades * 100 if total_trades else 0.0,
        "average_win": total_win_amount / len(wins) if len(wins) else 0.0,
        "average_loss": total_loss_amount / len(losses) if len(losses) else 0.0,
        "profit_factor": total_win_amount / total_loss_amount if total_loss_amount > 0 else 0.0,
        "largest_win": float(wins.max()) if len(wins) else 0.0,
        "largest_loss": float(losses.min()) if len(losses) else 0.0,
        "consecutive_wins": _longest_streak(pnl > 0),
        "consecutive_losses": _longest_streak(pnl < 0),
    }


def _timespan_years(df: pd.DataFrame) -> float:
    """Years between the first and last transaction; 1 when there are fewer than two."""
    if len(df) < 2:
        return 1.0
    elapsed = df["timestamp"].iloc[-1] - df["timestamp"].iloc[0]
    return elapsed.total_seconds() / (DAYS_PER_YEAR * 24 * 60 * 60)


def _annualized_return(total_return_pct: float, timespan_years: float) -> float:
    """
    Compound annual growth rate as a fraction. A total loss or worse is -1.

    Computed in log space. Gains over very short timespans compound past the
    float range and are reported as infinity.
    """
    if timespan_years <= 0:
        return 0.0
    growth = 1 + total_return_pct / 100
    if growth <= 0:
        return -1.0
    try:
        return math.expm1(math.log(growth) / timespan_years)
    except OverflowError:
        return math.inf


def _sortino_ratio(returns: pd.Series, target: float) -> float:
    downside = returns[returns < target]
    if downside.empty:
        return 0.0
    # Every finite return sits infinitely far below an unbounded target.
    if math.isinf(target):
        return target
    downside_deviation = math.sqrt(((downside - target) ** 2).mean())
    return target / downside_deviation if downside_deviation > 0 else 0.0


def calculate_metrics(
    transactions: Sequence[Transaction],
    holdings: Sequence[Holding],
    prices: Mapping[str, PriceSnapshot],
    initial_cash: float = 0.0,
    *,
    risk_free_rate: float = RISK_FREE_RATE,
    trading_days_per_year: int = TRADING_DAYS_PER_YEAR,
) -> PerformanceMetrics:
    """
    Calculates portfolio performance metrics.

    Args:
        transactions: Ledger transactions, in any order.
        holdings: Current holdings, as returned by calculate_holdings.
        prices: Mapping of symbol to its latest PriceSnapshot.
        initial_cash: Net cash deposited; carried through to the result.
        risk_free_rate: Annual risk-free rate used by the Sharpe ratio.
        trading_days_per_year: Periods per year used to annualize volatility.

    Returns:
        A PerformanceMetrics object. An empty ledger yields all-zero metrics.
    """
    df = _transactions_frame(transactions)

    signed_amount = np.where(df["type"] == "Buy", 1.0, -1.0) * df["shares"] * df["price"]
    total_invested = float(signed_amount.sum()) if not df.empty else 0.0
    current_value = sum(h.current_price * h.total_shares for h in holdings)
    total_return = current_value - total_invested
    total_return_pct = total_return / total_invested * 100 if total_invested else 0.0

    series = build_time_series(transactions, prices)
    values = series["portfolio_value"].astype(float)
    returns = series["daily_return"].astype(float)
    returns = returns[returns != 0]

    volatility = calculate_volatility(returns, trading_days_per_year)
    max_drawdown = _max_drawdown(values)
    current_drawdown = _current_drawdown(values)

    trades = analyze_trades(transactions, prices)

    annualized_return = _annualized_return(total_return_pct, _timespan_years(df))
    sharpe_ratio = (annualized_return - risk_free_rate) / (volatility / 100) if volatility else 0.0
    calmar_ratio = annualized_return / abs(max_drawdown) if max_drawdown else 0.0
    sortino_ratio = _sortino_ratio(returns, annualized_return)

    return PerformanceMetrics(
        total_return=total_return,
        total_return_percentage=total_return_pct,
        annualized_return=annualized_return,
        volatility=volatility,
        sharpe_ratio=sharpe_ratio,
        sortino_ratio=sortino_ratio,
        calmar_ratio=calmar_ratio,
        max_drawdown=max_drawdown,
        current_drawdown=current_drawdown,
        initial_cash=initial_cash,
        **trades,
    )
