"""
Current quotes from yfinance.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

import yfinance as yf

from portfolio_tracker.types import PriceSnapshot

__all__ = ["fetch_price_snapshots"]

log = logging.getLogger(__name__)


def _display_name(ticker: yf.Ticker, symbol: str) -> str:
    try:
        info = ticker.info or {}
    except Exception as e:
        log.debug(f"Could not fetch info for {symbol}: {e}")
        return symbol
    return info.get("longName") or info.get("shortName") or symbol


def _fetch_snapshot(symbol: str) -> PriceSnapshot:
    ticker = yf.Ticker(symbol)
    history = ticker.history(period="5d", interval="1d", auto_adjust=True, actions=False)
    closes = history["Close"].dropna() if not history.empty else history
    if closes.empty:
        raise ValueError(f"No price data returned for {symbol}")

    return PriceSnapshot(
        symbol=symbol,
        display_name=_display_name(ticker, symbol),
        current_price=float(closes.iloc[-1]),
        last_updated=datetime.now(timezone.utc),
    )


def fetch_price_snapshots(symbols: Iterable[str]) -> Tuple[Dict[str, PriceSnapshot], List[str]]:  # impure
    """
    Fetch the latest close and display name for each symbol.
    Logs warnings for symbols that fail and returns them alongside the snapshots.
    """
    snapshots: Dict[str, PriceSnapshot] = {}
    failed_symbols = []
    for symbol in symbols:
        try:
            snapshots[symbol] = _fetch_snapshot(symbol)
            log.debug(f"Updated price for {symbol}: {snapshots[symbol].current_price}")
        except Exception as e:
            log.warning(f"Failed to fetch price for {symbol}: {e}")
            failed_symbols.append(symbol)

    if failed_symbols:
        log.warning(f"Failed to fetch prices for {len(failed_symbols)} symbols: {failed_symbols}")
    return snapshots, failed_symbols
