"""Dashboard statistics models."""

from decimal import Decimal

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from swingtrack.models.position import Position
from swingtrack.models.trade import Trade

ZERO = Decimal("0")

_CONFIG = {"frozen": True, "alias_generator": to_camel, "populate_by_name": True}


class RealizedStats(BaseModel):
    """Realized P&L aggregates over SELL trades."""

    realized_pnl: Decimal = Field(default=ZERO)
    total_sells: int = Field(default=0, ge=0)
    winning_trades: int = Field(default=0, ge=0)
    losing_trades: int = Field(default=0, ge=0)
    win_rate: Decimal = Field(default=ZERO, ge=0, le=100)
    avg_win: Decimal = Field(default=ZERO)
    avg_loss: Decimal = Field(default=ZERO)

    model_config = _CONFIG


class MonthlyPnL(BaseModel):
    """Realized P&L for one calendar month."""

    month: str = Field(..., description="Month as YYYY-MM")
    pnl: Decimal
    trades: int = Field(..., ge=0)

    model_config = _CONFIG


class PortfolioSummary(BaseModel):
    """Aggregate view over open positions."""

    total_positions: int = Field(default=0, ge=0)
    total_value: Decimal = Field(default=ZERO)
    total_cost: Decimal = Field(default=ZERO)
    unrealized_pnl: Decimal = Field(default=ZERO)
    unrealized_pnl_percent: Decimal = Field(default=ZERO)

    model_config = _CONFIG


class DashboardStats(BaseModel):
    """Everything the dashboard view renders."""

    portfolio: PortfolioSummary
    realized: RealizedStats
    total_pnl: Decimal
    monthly_pnl: list[MonthlyPnL] = Field(default_factory=list)
    recent_trades: list[Trade] = Field(default_factory=list)
    positions: list[Position] = Field(default_factory=list)

    model_config = _CONFIG
