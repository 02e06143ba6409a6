"""Data models for SwingTrack."""

from swingtrack.models.lot import Lot, LotMatch, Replay, SellResult
from swingtrack.models.position import Position
from swingtrack.models.results import Recalculation, TradePage, TradeResult
from swingtrack.models.stats import (
    DashboardStats,
    MonthlyPnL,
    PortfolioSummary,
    RealizedStats,
)
from swingtrack.models.trade import Trade, TradeAction, validate_trade

__all__ = [
    "Trade",
    "TradeAction",
    "validate_trade",
    "Position",
    "Lot",
    "LotMatch",
    "SellResult",
    "Replay",
    "Recalculation",
    "TradeResult",
    "TradePage",
    "DashboardStats",
    "MonthlyPnL",
    "PortfolioSummary",
    "RealizedStats",
]
