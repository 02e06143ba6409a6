"""Lot and replay result models used by the FIFO engine."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

ZERO = Decimal("0")


class Lot(BaseModel):
    """Open shares from one BUY, consumed front-first by later SELLs.

    Never persisted; rebuilt from the ledger on every replay.
    """

    trade_id: Optional[str] = Field(default=None, description="Originating BUY")
    opened_at: datetime = Field(..., description="Originating trade date")
    remaining: Decimal = Field(..., ge=0, description="Unconsumed shares")
    unit_cost: Decimal = Field(..., ge=0, description="Price per share, fee excluded")
    remaining_fee: Decimal = Field(
        default=ZERO, ge=0, description="Unconsumed share of the BUY fee"
    )

    @property
    def open_cost(self) -> Decimal:
        return self.remaining * self.unit_cost + self.remaining_fee


class LotMatch(BaseModel):
    """Shares a SELL took from a single lot."""

    lot_trade_id: Optional[str] = None
    opened_at: datetime
    shares: Decimal
    unit_cost: Decimal

    model_config = {"frozen": True}


class SellResult(BaseModel):
    """FIFO outcome of one SELL trade."""

    trade_id: Optional[str] = Field(default=None, description="SELL trade ID")
    shares: Decimal = Field(..., description="Shares sold")
    cost_basis: Decimal = Field(..., description="Sum of consumed shares x unit cost")
    realized_pnl: Decimal = Field(..., description="Net proceeds minus cost basis")
    unmatched_shares: Decimal = Field(
        default=ZERO, description="Shares sold with no open lot behind them"
    )
    matches: list[LotMatch] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def oversold(self) -> bool:
        return self.unmatched_shares > 0


class Replay(BaseModel):
    """State left after replaying a ledger."""

    lots: list[Lot] = Field(default_factory=list)
    sells: list[SellResult] = Field(default_factory=list)

    @property
    def total_shares(self) -> Decimal:
        return sum((lot.remaining for lot in self.lots), ZERO)

    @property
    def total_cost(self) -> Decimal:
        return sum((lot.open_cost for lot in self.lots), ZERO)

    @property
    def oversold(self) -> list[SellResult]:
        return [sell for sell in self.sells if sell.oversold]
