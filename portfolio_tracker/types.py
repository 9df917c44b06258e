"""
Shared data structures for the application.

Ledger records (transactions, cash movements, recommendations) and price
snapshots are inputs and are immutable. Holdings, summaries and metrics are
derived fresh on every call and never persisted.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

__all__ = [
    "AIRecommendationMetrics",
    "AnalyticsError",
    "CashTransaction",
    "ConfidenceDistribution",
    "Holding",
    "MissingPriceData",
    "PerformanceMetrics",
    "PortfolioReport",
    "PortfolioSummary",
    "PriceSnapshot",
    "Recommendation",
    "Transaction",
    "to_utc",
]

TransactionType = Literal["Buy", "Sell"]
CashTransactionType = Literal["Deposit", "Withdrawal"]
RecommendationKind = Literal["Buy", "Hold", "Sell"]
RecommendationStatus = Literal["pending", "executed", "rejected", "expired"]


class AnalyticsError(Exception):
    """Base class for errors raised by the analytics core."""


class MissingPriceData(AnalyticsError):
    """A symbol with an open position has no current price snapshot."""

    def __init__(self, symbol: str):
        super().__init__(f"No current price data found for symbol {symbol}")
        self.symbol = symbol


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Transaction(BaseModel):
    """
    A single stock trade recorded in the ledger.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = Field(None, description="Ledger identifier, if the store assigns one.")
    symbol: str = Field(..., min_length=1, description="The stock symbol.")
    shares: float = Field(..., gt=0, description="Number of shares traded.")
    price: float = Field(..., gt=0, description="Execution price per share.")
    type: TransactionType = Field(..., description="Buy or Sell.")
    timestamp: datetime = Field(..., description="When the trade was executed.")

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return to_utc(value)

    @property
    def amount(self) -> float:
        return self.shares * self.price


class CashTransaction(BaseModel):
    """A deposit into or withdrawal from the cash account."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    amount: float = Field(..., gt=0)
    type: CashTransactionType
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        return to_utc(value)


class PriceSnapshot(BaseModel):
    """Latest known price and display name for a symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., min_length=1)
    display_name: str
    current_price: float = Field(..., gt=0)
    last_updated: Optional[datetime] = None

    @field_validator("last_updated")
    @classmethod
    def _last_updated_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value) if value is not None else None


class Holding(BaseModel):
    """Current position in a symbol, valued at the latest price."""

    symbol: str
    display_name: str
    current_price: float
    total_shares: float = Field(..., ge=0)
    average_cost: float
    total_value: float
    gain_loss: float
    gain_loss_percentage: float


class PortfolioSummary(BaseModel):
    total_portfolio_value: float
    total_gain_loss: float
    total_gain_loss_percentage: float
    stock_count: int
    cash_balance: float
    available_cash: float


class PerformanceMetrics(BaseModel):
    """
    Return, risk and trade statistics for the portfolio.

    Percentages are expressed in percent (e.g. 12.5 for 12.5%), except
    `annualized_return`, which is a fraction, as are the ratios derived from it.
    """

    total_return: float = 0.0
    total_return_percentage: float = 0.0
    annualized_return: float = 0.0
    volatility: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    max_drawdown: float = 0.0
    current_drawdown: float = 0.0
    win_rate: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    profit_factor: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    initial_cash: float = 0.0


class Recommendation(BaseModel):
    """
    An AI-generated stock recommendation and its current lifecycle status.

    `executed` always mirrors `status == "executed"`. It is derived from the
    status when omitted and rejected when it disagrees.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    symbol: str = Field(..., min_length=1)
    display_name: str = ""
    current_price_at_creation: float = Field(..., gt=0)
    target_price: float = Field(..., gt=0)
    kind: RecommendationKind
    confidence: float = Field(..., ge=0, le=100)
    holding_period_days: int = Field(0, ge=0)
    reasoning: str = ""
    created_at: datetime
    status: RecommendationStatus = "pending"
    executed: bool = False
    ai_model: str = ""
    related_transaction_id: Optional[str] = None
    executed_at: Optional[datetime] = Field(
        None, description="When the recommendation was acted upon, if recorded."
    )

    @field_validator("created_at")
    @classmethod
    def _created_utc(cls, value: datetime) -> datetime:
        return to_utc(value)

    @field_validator("executed_at")
    @classmethod
    def _executed_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value) if value is not None else None

    @model_validator(mode="before")
    @classmethod
    def _executed_from_status(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("executed") is None:
            data = {**data, "executed": data.get("status", "pending") == "executed"}
        return data

    @model_validator(mode="after")
    def _executed_matches_status(self) -> "Recommendation":
        if self.executed != (self.status == "executed"):
            raise ValueError(f"executed={self.executed} does not match status {self.status!r}")
        return self


class ConfidenceDistribution(BaseModel):
    high: int = 0
    medium: int = 0
    low: int = 0


class AIRecommendationMetrics(BaseModel):
    """Quality metrics for a set of recommendations. Rates are in percent."""

    total_recommendations: int = 0
    executed_recommendations: int = 0
    successful_recommendations: int = 0
    accuracy: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    f1_score: float = 0.0
    average_confidence: float = 0.0
    high_confidence_accuracy: float = 0.0
    medium_confidence_accuracy: float = 0.0
    low_confidence_accuracy: float = 0.0
    average_return_on_recommendations: float = 0.0
    best_performing_recommendation: float = 0.0
    worst_performing_recommendation: float = 0.0
    return_basis: Literal["realized", "confidence_proxy"] = "confidence_proxy"
    recommendations_by_status: Dict[str, int] = Field(default_factory=dict)
    confidence_distribution: ConfidenceDistribution = Field(default_factory=ConfidenceDistribution)
    average_days_to_execution: Optional[float] = None
    time_based_accuracy: Dict[str, float] = Field(default_factory=dict)


@dataclass(frozen=True)
class PortfolioReport:
    """Everything the analytics derive in one invocation."""

    generated_at: datetime
    holdings: List[Holding]
    summary: PortfolioSummary
    performance: PerformanceMetrics
    ai_metrics: AIRecommendationMetrics
    time_series: pd.DataFrame = field(compare=False)
