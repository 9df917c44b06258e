"""
Ledger, price and recommendation tables on disk.

A ledger directory holds up to four tables, each as CSV or Parquet:
`transactions`, `cash_transactions`, `prices` and `recommendations`. A
missing table is read as empty, so a fresh directory is a valid empty
portfolio.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Type, TypeVar

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq
import yfinance as yf
from pydantic import BaseModel

from portfolio_tracker.config import Config
from portfolio_tracker.ledger import Ledger, RecommendationStore
from portfolio_tracker.types import CashTransaction, PriceSnapshot, Recommendation, Transaction

__all__ = [
    "LedgerDirectory",
    "load_ledger",
    "load_price_snapshots",
    "load_recommendations",
    "save_price_snapshots",
]

log = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

TRANSACTIONS = "transactions"
CASH_TRANSACTIONS = "cash_transactions"
PRICES = "prices"
RECOMMENDATIONS = "recommendations"


def _get_ledger_dir(config: Config) -> Path:
    ledger_dir = Path(config.data.ledger_dir)
    if not ledger_dir.is_dir():
        raise FileNotFoundError(f"Ledger directory not found: {ledger_dir}")
    return ledger_dir


def _table_path(config: Config, table: str) -> Path:
    return _get_ledger_dir(config) / f"{table}.{config.data.format}"


def _read_table(path: Path) -> pd.DataFrame:
    """Reads a CSV or Parquet table. Returns an empty DataFrame if the file does not exist."""
    if not path.is_file():
        log.info(f"No table at {path}; treating it as empty.")
        return pd.DataFrame()
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    # Cells are left as strings for the models to parse; only blanks are missing,
    # so tickers such as "NA" survive.
    return pd.read_csv(path, dtype=str, keep_default_na=False, na_values=[""])


def _to_models(df: pd.DataFrame, model: Type[ModelT]) -> List[ModelT]:
    """Validates each row into `model`. Empty cells become None."""
    if df.empty:
        return []
    records = df.astype(object).where(df.notna(), None).to_dict(orient="records")
    try:
        return [model(**{k: v for k, v in row.items() if v is not None}) for row in records]
    except ValueError as e:
        raise ValueError(f"Invalid {model.__name__} record: {e}") from e


def _get_snapshot_metadata() -> Dict[str, str]:
    return {
        "fetch_utc": datetime.now(timezone.utc).isoformat(),
        "yfinance_version": yf.__version__,
    }


# impure
def load_ledger(config: Config) -> Ledger:
    """
    Loads stock and cash transactions into a Ledger.
    #impure: Reads from the filesystem.
    """
    transactions = _to_models(_read_table(_table_path(config, TRANSACTIONS)), Transaction)
    cash = _to_models(_read_table(_table_path(config, CASH_TRANSACTIONS)), CashTransaction)
    ledger = Ledger.from_records(transactions, cash)
    log.info(f"Loaded {len(transactions)} transactions and {len(cash)} cash transactions.")
    return ledger


# impure
def load_price_snapshots(config: Config) -> Dict[str, PriceSnapshot]:
    """
    Loads the latest price snapshot per symbol.
    #impure: Reads from the filesystem.
    """
    snapshots = _to_models(_read_table(_table_path(config, PRICES)), PriceSnapshot)
    return {s.symbol: s for s in snapshots}


# impure
def load_recommendations(config: Config) -> List[Recommendation]:
    """
    Loads all recommendations, regardless of status.
    #impure: Reads from the filesystem.
    """
    return _to_models(_read_table(_table_path(config, RECOMMENDATIONS)), Recommendation)


# impure
def save_price_snapshots(snapshots: Dict[str, PriceSnapshot], config: Config) -> Path:
    """
    Merges snapshots into the prices table, replacing rows for the same symbol.
    #impure: Reads and writes the filesystem.
    """
    merged = {**load_price_snapshots(config), **snapshots}
    df = pd.DataFrame([s.model_dump() for s in sorted(merged.values(), key=lambda s: s.symbol)])
    path = _table_path(config, PRICES)

    if config.data.format == "parquet":
        table = pa.Table.from_pandas(df, preserve_index=False)
        table = table.replace_schema_metadata({
            **(table.schema.metadata or {}),
            **{k.encode(): v.encode() for k, v in _get_snapshot_metadata().items()},
        })
        pq.write_table(table, path)
    else:
        df.to_csv(path, index=False)

    log.info(f"Saved {len(merged)} price snapshots to {path}")
    return path


class LedgerDirectory:
    """
    Reads every collaborator table from a ledger directory.

    Satisfies the transaction, cash, price and recommendation reader
    protocols. Tables are read once, on construction.
    """

    def __init__(self, config: Config):
        self.config = config
        self.ledger = load_ledger(config)
        self._prices = load_price_snapshots(config)
        self.recommendations = RecommendationStore(load_recommendations(config))

    def list_transactions(self) -> List[Transaction]:
        return self.ledger.list_transactions()

    def list_cash_transactions(self) -> List[CashTransaction]:
        return self.ledger.list_cash_transactions()

    def cash_balance(self) -> float:
        return self.ledger.cash_balance()

    def price_snapshots(self) -> Dict[str, PriceSnapshot]:
        return dict(self._prices)

    def list_recommendations(self) -> List[Recommendation]:
        return self.recommendations.list_recommendations()
