"""Services built on top of the ledger store and engine."""

from swingtrack.services.dashboard import (
    calculate_realized_stats,
    get_dashboard,
    monthly_realized_pnl,
    portfolio_summary,
)
from swingtrack.services.prices import PriceQuote, apply_quotes
from swingtrack.services.trades import TradeService, build_trade

__all__ = [
    "TradeService",
    "build_trade",
    "PriceQuote",
    "apply_quotes",
    "calculate_realized_stats",
    "get_dashboard",
    "monthly_realized_pnl",
    "portfolio_summary",
]
