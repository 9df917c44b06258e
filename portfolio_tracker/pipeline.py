"""
Portfolio analytics orchestration.

`PortfolioAnalytics` wires the reader collaborators to the pure calculators.
Collaborators are passed in, never looked up globally, so each call is a
fresh computation over whatever the readers return.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console

from portfolio_tracker.config import AnalyticsConfig, Config, RecommendationConfig
from portfolio_tracker.data import LedgerDirectory
from portfolio_tracker.holdings import calculate_holdings
from portfolio_tracker.ledger import (
    CashTransactionReader,
    PriceSnapshotReader,
    RecommendationReader,
    TransactionReader,
)
from portfolio_tracker.metrics import build_time_series, calculate_metrics
from portfolio_tracker.recommendations import calculate_ai_metrics
from portfolio_tracker.reporting import generate_all_reports
from portfolio_tracker.summary import summarize
from portfolio_tracker.types import (
    AIRecommendationMetrics,
    Holding,
    PerformanceMetrics,
    PortfolioReport,
    PortfolioSummary,
    PriceSnapshot,
)

__all__ = ["PortfolioAnalytics", "PortfolioReport", "run_report"]


class PortfolioAnalytics:
    """
    Computes holdings, summary, performance and recommendation metrics.

    Each method reads its collaborators afresh. `MissingPriceData` from the
    holdings calculation propagates to the caller.
    """

    def __init__(
        self,
        transactions: TransactionReader,
        cash: CashTransactionReader,
        prices: PriceSnapshotReader,
        recommendations: RecommendationReader,
        analytics_config: Optional[AnalyticsConfig] = None,
        recommendation_config: Optional[RecommendationConfig] = None,
    ):
        self.transactions = transactions
        self.cash = cash
        self.prices = prices
        self.recommendations = recommendations
        self.analytics_config = analytics_config or AnalyticsConfig()
        self.recommendation_config = recommendation_config or RecommendationConfig()

    @classmethod
    def from_directory(cls, store: LedgerDirectory) -> "PortfolioAnalytics":
        config = store.config
        return cls(store, store, store, store, config.analytics, config.recommendations)

    def _price_map(self) -> Dict[str, PriceSnapshot]:
        return self.prices.price_snapshots()

    def holdings(self) -> List[Holding]:
        return calculate_holdings(self.transactions.list_transactions(), self._price_map())

    def summary(self) -> PortfolioSummary:
        transactions = self.transactions.list_transactions()
        holdings = calculate_holdings(transactions, self._price_map())
        return summarize(holdings, self.cash.cash_balance(), transactions)

    def performance(self) -> PerformanceMetrics:
        transactions = self.transactions.list_transactions()
        prices = self._price_map()
        holdings = calculate_holdings(transactions, prices)
        return calculate_metrics(
            transactions,
            holdings,
            prices,
            self.cash.cash_balance(),
            risk_free_rate=self.analytics_config.risk_free_rate,
            trading_days_per_year=self.analytics_config.trading_days_per_year,
        )

    def ai_metrics(self, as_of: Optional[datetime] = None) -> AIRecommendationMetrics:
        cfg = self.recommendation_config
        return calculate_ai_metrics(
            self.recommendations.list_recommendations(),
            prices=self._price_map() if cfg.use_current_prices else None,
            as_of=as_of,
            success_threshold=cfg.success_threshold,
            high_confidence=cfg.high_confidence,
            medium_confidence=cfg.medium_confidence,
        )

    def build_report(self, as_of: Optional[datetime] = None) -> PortfolioReport:
        """Computes every figure from a single read of each collaborator."""
        as_of = as_of or datetime.now(timezone.utc)
        transactions = self.transactions.list_transactions()
        prices = self._price_map()
        cash_balance = self.cash.cash_balance()

        holdings = calculate_holdings(transactions, prices)
        cfg = self.recommendation_config
        return PortfolioReport(
            generated_at=as_of,
            holdings=holdings,
            summary=summarize(holdings, cash_balance, transactions),
            performance=calculate_metrics(
                transactions,
                holdings,
                prices,
                cash_balance,
                risk_free_rate=self.analytics_config.risk_free_rate,
                trading_days_per_year=self.analytics_config.trading_days_per_year,
            ),
            ai_metrics=calculate_ai_metrics(
                self.recommendations.list_recommendations(),
                prices=prices if cfg.use_current_prices else None,
                as_of=as_of,
                success_threshold=cfg.success_threshold,
                high_confidence=cfg.high_confidence,
                medium_confidence=cfg.medium_confidence,
            ),
            time_series=build_time_series(transactions, prices),
        )


# impure
def run_report(config: Config, console: Console) -> PortfolioReport:
    """
    Load the ledger directory, build the report and write report artefacts.
    #impure: Reads and writes the filesystem.
    """
    console.rule("[bold]1. Loading Ledger[/bold]")
    store = LedgerDirectory(config)
    console.print(
        f"Loaded {len(store.list_transactions())} transactions, "
        f"{len(store.list_cash_transactions())} cash transactions, "
        f"{len(store.price_snapshots())} prices and "
        f"{len(store.list_recommendations())} recommendations."
    )

    console.rule("[bold]2. Computing Analytics[/bold]")
    report = PortfolioAnalytics.from_directory(store).build_report()
    console.print("Analytics complete.")

    console.rule("[bold]3. Generating Reports[/bold]")
    run_dir = Path(config.run.output_dir)
    run_dir.mkdir(parents=True, exist_ok=True)
    console.print(f"Report artifacts will be saved to: [cyan]{run_dir}[/cyan]")
    generate_all_reports(config, report, run_dir, console)
    return report
