"""Position data model."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class Position(BaseModel):
    """Aggregate holding for one (user, ticker) pair.

    Derived entirely from the trade ledger by the recalculation engine,
    except for the price fields which belong to the price updater.
    """

    id: Optional[str] = Field(default=None, description="Database ID")
    user_id: str = Field(..., min_length=1, description="Owning user")
    ticker: str = Field(..., min_length=1, description="Trading symbol")
    company: str = Field(default="", description="Company name from latest trade")
    logo: Optional[str] = Field(default=None, description="Logo from latest trade")
    currency: str = Field(default="USD", description="Currency from latest trade")
    total_shares: Decimal = Field(..., gt=0, description="Shares held")
    total_cost: Decimal = Field(..., ge=0, description="Cost of open lots incl. fees")
    average_price: Decimal = Field(..., ge=0, description="total_cost / total_shares")
    inconsistent: bool = Field(
        default=False, description="Ledger contains an oversold SELL"
    )
    current_price: Optional[Decimal] = Field(default=None, description="Last quote")
    last_price_update: Optional[datetime] = Field(
        default=None, description="When current_price was written"
    )
    unrealized_pnl: Optional[Decimal] = Field(
        default=None, description="Paper P&L at current_price"
    )

    model_config = {
        "frozen": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }

    @property
    def market_value(self) -> Decimal:
        """Value at the last quote, or the open cost when unquoted."""
        if self.current_price is None:
            return self.total_cost
        return self.total_shares * self.current_price
