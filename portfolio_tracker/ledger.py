"""
Ledger store and the reader interfaces the analytics consume.

The analytics never reach for a global store; callers hand them objects that
satisfy these protocols. `Ledger` is the in-memory, append-only record of
trades and cash, and `RecommendationStore` holds recommendations with their
status changes. Both are used by the CLI and the tests.
"""
import logging
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol

from portfolio_tracker.holdings import SHARE_EPSILON
from portfolio_tracker.summary import calculate_cash_balance
from portfolio_tracker.types import (
    AnalyticsError,
    CashTransaction,
    PriceSnapshot,
    Recommendation,
    RecommendationStatus,
    Transaction,
    to_utc,
)

__all__ = [
    "CashTransactionReader",
    "Ledger",
    "LedgerError",
    "OversellError",
    "PriceSnapshotReader",
    "RecommendationReader",
    "RecommendationStore",
    "TransactionReader",
]

log = logging.getLogger(__name__)


class LedgerError(AnalyticsError):
    """Raised when an entry cannot be appended to the ledger."""


class OversellError(LedgerError):
    """Raised when a sell exceeds the shares currently held."""


class TransactionReader(Protocol):
    def list_transactions(self) -> List[Transaction]:
        ...


class CashTransactionReader(Protocol):
    def list_cash_transactions(self) -> List[CashTransaction]:
        ...

    def cash_balance(self) -> float:
        ...


class PriceSnapshotReader(Protocol):
    def price_snapshots(self) -> Dict[str, PriceSnapshot]:
        ...


class RecommendationReader(Protocol):
    def list_recommendations(self) -> List[Recommendation]:
        ...


class Ledger:
    """
    Append-only record of stock trades and cash movements.

    Entries must be appended in timestamp order. A sell is rejected if it
    would take the position below zero shares, so every ledger built through
    `record_transaction` folds into non-negative holdings.
    """

    def __init__(self) -> None:
        self._transactions: List[Transaction] = []
        self._cash_transactions: List[CashTransaction] = []
        self._shares: Dict[str, float] = {}

    @classmethod
    def from_records(
        cls,
        transactions: Iterable[Transaction] = (),
        cash_transactions: Iterable[CashTransaction] = (),
    ) -> "Ledger":
        """Builds a ledger by replaying records in timestamp order."""
        ledger = cls()
        for tx in sorted(transactions, key=lambda t: t.timestamp):
            ledger.record_transaction(tx)
        for cash_tx in sorted(cash_transactions, key=lambda t: t.timestamp):
            ledger.record_cash_transaction(cash_tx)
        return ledger

    def record_transaction(self, tx: Transaction) -> None:
        if self._transactions and tx.timestamp < self._transactions[-1].timestamp:
            raise LedgerError(
                f"Transaction at {tx.timestamp} is older than the last recorded "
                f"transaction at {self._transactions[-1].timestamp}."
            )

        held = self._shares.get(tx.symbol, 0.0)
        if tx.type == "Sell" and tx.shares > held + SHARE_EPSILON:
            raise OversellError(f"Cannot sell {tx.shares} {tx.symbol}: only {held} held.")

        self._shares[tx.symbol] = held + tx.shares if tx.type == "Buy" else held - tx.shares
        self._transactions.append(tx)
        log.debug(f"Recorded {tx.type} of {tx.shares} {tx.symbol} at {tx.price}")

    def record_cash_transaction(self, tx: CashTransaction) -> None:
        if self._cash_transactions and tx.timestamp < self._cash_transactions[-1].timestamp:
            raise LedgerError(
                f"Cash transaction at {tx.timestamp} is older than the last recorded "
                f"cash transaction at {self._cash_transactions[-1].timestamp}."
            )
        self._cash_transactions.append(tx)

    def list_transactions(self) -> List[Transaction]:
        return list(self._transactions)

    def list_cash_transactions(self) -> List[CashTransaction]:
        return list(self._cash_transactions)

    def cash_balance(self) -> float:
        return calculate_cash_balance(self._cash_transactions)

    def transactions_for(self, symbol: str) -> List[Transaction]:
        """Transactions for a single symbol, most recent first."""
        return [tx for tx in reversed(self._transactions) if tx.symbol == symbol]

    def recent_transactions(self, limit: int = 50) -> List[Transaction]:
        """The latest `limit` transactions, most recent first."""
        return list(reversed(self._transactions[-limit:])) if limit > 0 else []

    def recent_cash_transactions(self, limit: int = 5) -> List[CashTransaction]:
        """The latest `limit` cash transactions, most recent first."""
        return list(reversed(self._cash_transactions[-limit:])) if limit > 0 else []

    def symbols(self) -> List[str]:
        """Every symbol that appears in the ledger, sorted."""
        return sorted(self._shares)

    def shares_held(self, symbol: str) -> Optional[float]:
        return self._shares.get(symbol)


class RecommendationStore:
    """
    Recommendations keyed by id, with their lifecycle updates.

    Records are immutable; a status change replaces the stored record.
    Queries return the newest recommendations first.
    """

    ACTIVE_STATUSES = ("pending", "executed")

    def __init__(self, recommendations: Iterable[Recommendation] = ()) -> None:
        self._recommendations: Dict[str, Recommendation] = {}
        for rec in recommendations:
            self.add(rec)

    def add(self, recommendation: Recommendation) -> str:
        """Stores a recommendation, assigning an id if it has none. Returns the id."""
        if recommendation.id is None:
            recommendation = recommendation.model_copy(update={"id": uuid.uuid4().hex})
        if recommendation.id in self._recommendations:
            raise LedgerError(f"Recommendation {recommendation.id} is already recorded.")
        self._recommendations[recommendation.id] = recommendation
        return recommendation.id

    def get(self, recommendation_id: str) -> Recommendation:
        try:
            return self._recommendations[recommendation_id]
        except KeyError:
            raise LedgerError(f"Unknown recommendation: {recommendation_id}") from None

    def update_status(
        self,
        recommendation_id: str,
        status: RecommendationStatus,
        transaction_id: Optional[str] = None,
        executed_at: Optional[datetime] = None,
    ) -> Recommendation:
        """
        Moves a recommendation to `status`, keeping `executed` in step.

        A transaction id, when given, links the recommendation to the trade
        that acted on it. `executed_at` is recorded only for executions.
        """
        current = self.get(recommendation_id)
        changes = current.model_dump()
        changes.update(status=status, executed=status == "executed")
        if transaction_id is not None:
            changes["related_transaction_id"] = transaction_id
        if status == "executed" and executed_at is not None:
            changes["executed_at"] = executed_at

        updated = Recommendation.model_validate(changes)
        self._recommendations[recommendation_id] = updated
        log.debug(f"Recommendation {recommendation_id} moved from {current.status} to {status}")
        return updated

    def _newest_first(self, recommendations: Iterable[Recommendation]) -> List[Recommendation]:
        return sorted(recommendations, key=lambda r: r.created_at, reverse=True)

    def list_recommendations(self) -> List[Recommendation]:
        return list(self._recommendations.values())

    def by_status(self, status: RecommendationStatus) -> List[Recommendation]:
        return self._newest_first(r for r in self._recommendations.values() if r.status == status)

    def in_date_range(self, start: datetime, end: datetime) -> List[Recommendation]:
        """Recommendations created between `start` and `end`, inclusive."""
        start, end = to_utc(start), to_utc(end)
        return self._newest_first(
            r for r in self._recommendations.values() if start <= r.created_at <= end
        )

    def by_confidence(self, min_confidence: float) -> List[Recommendation]:
        """Pending recommendations with at least `min_confidence`."""
        return self._newest_first(
            r for r in self._recommendations.values()
            if r.status == "pending" and r.confidence >= min_confidence
        )

    def active(self) -> List[Recommendation]:
        """Recommendations that are pending or executed."""
        return self._newest_first(
            r for r in self._recommendations.values() if r.status in self.ACTIVE_STATUSES
        )
