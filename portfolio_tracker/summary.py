"""
Portfolio-level summary figures.
"""
from typing import Iterable, Sequence

from portfolio_tracker.types import CashTransaction, Holding, PortfolioSummary, Transaction

__all__ = ["summarize", "calculate_cash_balance", "trade_cash_flow"]


def calculate_cash_balance(cash_transactions: Iterable[CashTransaction]) -> float:
    """Sum of deposits minus sum of withdrawals."""
    return float(
        sum(tx.amount if tx.type == "Deposit" else -tx.amount for tx in cash_transactions)
    )


def trade_cash_flow(transactions: Iterable[Transaction]) -> float:
    """Net cash released by trading: sell proceeds minus buy cost."""
    return float(sum(tx.amount if tx.type == "Sell" else -tx.amount for tx in transactions))


def summarize(
    holdings: Sequence[Holding],
    cash_balance: float,
    transactions: Iterable[Transaction],
) -> PortfolioSummary:
    """
    Combines holdings, cash and trading activity into a portfolio snapshot.

    `available_cash` is the cash balance adjusted by every recorded trade,
    whether or not the position is still open.
    """
    holdings_value = sum(h.total_value for h in holdings)
    total_portfolio_value = holdings_value + cash_balance
    total_gain_loss = sum(h.gain_loss for h in holdings)

    cost_basis = total_portfolio_value - cash_balance - total_gain_loss
    total_gain_loss_pct = total_gain_loss / cost_basis * 100 if cost_basis else 0.0

    return PortfolioSummary(
        total_portfolio_value=total_portfolio_value,
        total_gain_loss=total_gain_loss,
        total_gain_loss_percentage=total_gain_loss_pct,
        stock_count=len(holdings),
        cash_balance=cash_balance,
        available_cash=cash_balance + trade_cash_flow(transactions),
    )
