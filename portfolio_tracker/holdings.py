"""
Current holdings from the transaction ledger.

Holdings are folded from the ledger using weighted-average cost accounting:
a sell removes the average cost of the shares sold, so the per-share cost of
the remaining position is unchanged.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

from portfolio_tracker.types import Holding, MissingPriceData, PriceSnapshot, Transaction

__all__ = ["calculate_holdings", "fold_positions", "Position"]

log = logging.getLogger(__name__)

# Share counts within this distance of zero are treated as a closed position.
SHARE_EPSILON = 1e-9


@dataclass
class Position:
    """Running accumulator for a single symbol."""

    total_shares: float = 0.0
    total_cost: float = 0.0

    @property
    def average_cost(self) -> float:
        return self.total_cost / self.total_shares if self.total_shares else 0.0


def fold_positions(transactions: Iterable[Transaction]) -> Dict[str, Position]:
    """
    Folds transactions, in the order given, into open positions per symbol.

    The caller supplies transactions in ascending timestamp order; they are
    not re-sorted here. Positions that close out are discarded. A position
    driven below zero by an oversell is discarded as well, with a warning,
    since it cannot be reported as a holding.
    """
    positions: Dict[str, Position] = {}
    for tx in transactions:
        position = positions.setdefault(tx.symbol, Position())
        if tx.type == "Buy":
            position.total_shares += tx.shares
            position.total_cost += tx.shares * tx.price
        else:
            # Remove the average cost of the shares sold.
            position.total_cost -= position.average_cost * tx.shares
            position.total_shares -= tx.shares

        if position.total_shares < -SHARE_EPSILON:
            log.warning(
                f"Sell of {tx.shares} {tx.symbol} at {tx.timestamp} exceeds held shares; "
                "dropping the position."
            )
        if position.total_shares <= SHARE_EPSILON:
            del positions[tx.symbol]
    return positions


def calculate_holdings(
    transactions: Iterable[Transaction], prices: Mapping[str, PriceSnapshot]
) -> List[Holding]:
    """
    Calculates current holdings valued at the latest prices.

    Args:
        transactions: Ledger transactions in ascending timestamp order.
        prices: Mapping of symbol to its latest PriceSnapshot.

    Returns:
        One Holding per open position, ordered by symbol.

    Raises:
        MissingPriceData: If an open position has no price snapshot.
    """
    holdings = []
    for symbol, position in sorted(fold_positions(transactions).items()):
        snapshot = prices.get(symbol)
        if snapshot is None:
            raise MissingPriceData(symbol)

        total_value = position.total_shares * snapshot.current_price
        gain_loss = total_value - position.total_cost
        gain_loss_pct = gain_loss / position.total_cost * 100 if position.total_cost else 0.0

        holdings.append(
            Holding(
                symbol=symbol,
                display_name=snapshot.display_name,
                current_price=snapshot.current_price,
                total_shares=position.total_shares,
                average_cost=position.average_cost,
                total_value=total_value,
                gain_loss=gain_loss,
                gain_loss_percentage=gain_loss_pct,
            )
        )
    return holdings
