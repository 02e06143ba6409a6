"""Write side of the price updater.

Quotes come from an external provider; this module only records them on
open positions. The recalculation engine never reads these fields.
"""

import logging
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field, field_validator

from swingtrack.db.store import LedgerStore
from swingtrack.engine.recalc import PositionEngine
from swingtrack.models import Position
from swingtrack.models.trade import normalize_timestamp

logger = logging.getLogger(__name__)


class PriceQuote(BaseModel):
    """A single market quote."""

    ticker: str = Field(..., min_length=1, description="Trading symbol")
    price: Decimal = Field(..., gt=0, description="Last traded price")
    timestamp: datetime = Field(default_factory=datetime.now, description="Quote time")

    model_config = {"frozen": True}

    @field_validator("ticker")
    @classmethod
    def _upper_ticker(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value):
        return normalize_timestamp(value)


def unrealized_pnl(position: Position, price: Decimal) -> Decimal:
    """Paper P&L of a position at ``price``."""
    return position.total_shares * price - position.total_cost


def apply_quotes(
    store: LedgerStore,
    user_id: str,
    quotes: Iterable[PriceQuote],
    engine: Optional[PositionEngine] = None,
) -> list[Position]:
    """Record quotes on the user's open positions.

    Quotes for symbols the user holds no position in are ignored. All
    updates are written in one transaction, retried on lock conflicts.

    Args:
        store: Ledger store.
        user_id: Owning user.
        quotes: Quotes in any order; the latest per symbol wins.
        engine: Supplies the retry policy; defaults are used when omitted.

    Returns:
        The updated positions, ordered by ticker.

    Raises:
        TransactionConflictError: If retries are exhausted.
    """
    latest: dict[str, PriceQuote] = {}
    for quote in quotes:
        current = latest.get(quote.ticker)
        if current is None or quote.timestamp >= current.timestamp:
            latest[quote.ticker] = quote

    def work(conn: sqlite3.Connection) -> list[Position]:
        updated = []
        for position in store.get_positions(user_id, conn=conn):
            quote: Optional[PriceQuote] = latest.get(position.ticker)
            if quote is None:
                continue
            pnl = unrealized_pnl(position, quote.price)
            store.update_position_price(
                user_id, position.ticker, quote.price, quote.timestamp, pnl, conn=conn
            )
            updated.append(
                position.model_copy(
                    update={
                        "current_price": quote.price,
                        "last_price_update": quote.timestamp,
                        "unrealized_pnl": pnl,
                    }
                )
            )
        return updated

    updated = (engine or PositionEngine(store)).run(work)

    skipped = set(latest) - {position.ticker for position in updated}
    if skipped:
        logger.debug("No open position for quoted symbols: %s", ", ".join(sorted(skipped)))
    return updated
