"""Trade data model."""

from datetime import date as date_type, datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from swingtrack.errors import ValidationError

TradeAction = Literal["BUY", "SELL"]

ZERO = Decimal("0")


def normalize_timestamp(value: Any) -> Any:
    """Coerce trade dates to naive UTC datetimes.

    Stored dates are compared as ISO strings, so every value must share
    one representation.
    """
    if isinstance(value, date_type) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class Trade(BaseModel):
    """Represents a single BUY or SELL entry in the trade ledger."""

    id: Optional[str] = Field(default=None, description="Opaque trade identifier")
    user_id: str = Field(..., min_length=1, description="Owning user")
    ticker: str = Field(..., min_length=1, description="Trading symbol")
    action: TradeAction = Field(..., description="Trade side (BUY/SELL)")
    shares: Decimal = Field(..., gt=0, description="Number of shares")
    price_per_share: Decimal = Field(..., gt=0, description="Execution price")
    fee: Decimal = Field(default=ZERO, ge=0, description="Flat per-trade fee")
    date: datetime = Field(..., description="Trade timestamp")
    company: str = Field(default="", description="Company name (display only)")
    logo: Optional[str] = Field(default=None, description="Logo URL (display only)")
    currency: str = Field(default="USD", description="Trade currency")
    sequence: Optional[int] = Field(
        default=None, description="Insertion sequence, breaks date ties"
    )
    cost_basis: Optional[Decimal] = Field(
        default=None, description="FIFO cost basis consumed by a SELL"
    )
    realized_pnl: Optional[Decimal] = Field(
        default=None, description="Realized P&L of a SELL"
    )
    inconsistent: bool = Field(
        default=False, description="SELL oversold its open lots"
    )

    model_config = {
        "frozen": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    @field_validator("ticker")
    @classmethod
    def _upper_ticker(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("action", mode="before")
    @classmethod
    def _upper_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _normalize_date(cls, value: Any) -> Any:
        return normalize_timestamp(value)

    @computed_field
    @property
    def total_value(self) -> Decimal:
        """Gross value of the trade (shares x price)."""
        return self.shares * self.price_per_share

    @computed_field
    @property
    def total_cost(self) -> Decimal:
        """Cash impact: fee added for BUY, deducted for SELL."""
        if self.action == "BUY":
            return self.total_value + self.fee
        return self.total_value - self.fee

    @property
    def is_buy(self) -> bool:
        return self.action == "BUY"

    @property
    def is_sell(self) -> bool:
        return self.action == "SELL"


def validate_trade(trade: Trade) -> Trade:
    """Check the ledger rules on an already built trade.

    Models built with ``model_construct`` skip pydantic validation, so the
    store runs this before every insert.

    Raises:
        ValidationError: If any rule is violated.
    """
    if trade.action not in ("BUY", "SELL"):
        raise ValidationError(f"Unknown trade action: {trade.action!r}")
    if not isinstance(trade.shares, Decimal) or not trade.shares > 0:
        raise ValidationError("shares must be greater than zero")
    if not isinstance(trade.price_per_share, Decimal) or not trade.price_per_share > 0:
        raise ValidationError("price_per_share must be greater than zero")
    if not isinstance(trade.fee, Decimal) or trade.fee < 0:
        raise ValidationError("fee must not be negative")
    if not trade.user_id:
        raise ValidationError("user_id is required")
    if not trade.ticker:
        raise ValidationError("ticker is required")
    return trade
