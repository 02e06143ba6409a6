"""Result models returned by the trade service."""

from typing import Optional

from pydantic import BaseModel, Field, computed_field
from pydantic.alias_generators import to_camel

from swingtrack.models.lot import SellResult
from swingtrack.models.position import Position
from swingtrack.models.trade import Trade

_CONFIG = {"frozen": True, "alias_generator": to_camel, "populate_by_name": True}


class Recalculation(BaseModel):
    """Outcome of one recalculation pass for a (user, ticker) pair."""

    user_id: str
    ticker: str
    position: Optional[Position] = None
    trades: list[Trade] = Field(default_factory=list)
    sells: list[SellResult] = Field(default_factory=list)

    model_config = _CONFIG

    def trade(self, trade_id: str) -> Optional[Trade]:
        """Return the recalculated copy of a trade, if it is in this pair."""
        for trade in self.trades:
            if trade.id == trade_id:
                return trade
        return None

    @property
    def oversold(self) -> list[SellResult]:
        return [sell for sell in self.sells if sell.oversold]


class TradeResult(BaseModel):
    """A mutated trade and the position it left behind."""

    trade: Trade
    position: Optional[Position] = None

    model_config = _CONFIG


class TradePage(BaseModel):
    """One page of a user's trade history, newest first."""

    trades: list[Trade] = Field(default_factory=list)
    total: int = Field(..., ge=0)
    limit: int = Field(..., gt=0)
    offset: int = Field(..., ge=0)

    model_config = _CONFIG

    @computed_field
    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total
