"""Trade service: ledger mutations followed by position recalculation.

Every mutation and the recalculation it triggers share one transaction,
so a caller never observes a trade without its derived position, or the
other way round.
"""

import logging
import sqlite3
from decimal import Decimal
from typing import Any, Mapping, Optional

import pydantic

from swingtrack.db.store import LedgerStore
from swingtrack.engine.fifo import replay
from swingtrack.engine.recalc import PositionEngine
from swingtrack.errors import InsufficientSharesError, NotFoundError, ValidationError
from swingtrack.models import Position, Recalculation, Trade, TradePage, TradeResult

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

EDITABLE_FIELDS = frozenset(
    {"shares", "price_per_share", "fee", "date", "company", "logo", "currency"}
)

# Fields a caller may supply when recording a trade.
PAYLOAD_FIELDS = frozenset(
    {"ticker", "action", "shares", "price_per_share", "fee", "date",
     "company", "logo", "currency"}
)


def _field_name(key: str) -> str:
    """Map camelCase payload keys onto model field names."""
    for name, info in Trade.model_fields.items():
        if key == name or key == info.alias:
            return name
    return key


def build_trade(user_id: str, payload: Mapping[str, Any]) -> Trade:
    """Validate a trade payload from the API layer.

    Accepts snake_case or camelCase keys. Derived and engine-owned fields
    are not accepted from callers.

    Raises:
        ValidationError: If the payload is malformed.
    """
    data = {_field_name(key): value for key, value in payload.items()}
    unknown = set(data) - PAYLOAD_FIELDS
    if unknown:
        raise ValidationError(f"Unexpected trade fields: {', '.join(sorted(unknown))}")
    try:
        return Trade(user_id=user_id, **data)
    except pydantic.ValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


def _describe(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "trade"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def _reject_new_oversells(recalc: Recalculation, unmatched_before: dict[str, Decimal]) -> None:
    """Reject a mutation that left any SELL with more unmatched shares.

    Covers SELLs that become oversold and SELLs that were already
    oversold and got worse.
    """
    for sell in recalc.oversold:
        if sell.unmatched_shares > unmatched_before.get(sell.trade_id, ZERO):
            raise InsufficientSharesError(
                recalc.ticker,
                sell.shares,
                sell.shares - sell.unmatched_shares,
                sell.trade_id,
            )


class TradeService:
    """Entry points the API layer calls for trade mutations and reads."""

    def __init__(self, store: LedgerStore, engine: Optional[PositionEngine] = None):
        """Initialize the service.

        Args:
            store: Ledger store.
            engine: Recalculation engine; one with default retries is
                created when omitted.
        """
        self.store = store
        self.engine = engine or PositionEngine(store)

    def _unmatched(
        self, conn: sqlite3.Connection, user_id: str, ticker: str
    ) -> dict[str, Decimal]:
        """Unmatched shares per oversold SELL in the current ledger."""
        result = replay(self.store.list_ordered(user_id, ticker, conn=conn))
        return {sell.trade_id: sell.unmatched_shares for sell in result.oversold}

    def add_trade(self, user_id: str, payload: Mapping[str, Any]) -> TradeResult:
        """Record a trade and recalculate its position.

        A SELL that would sell more shares than are open at its date, or
        that would leave a later SELL less covered, is rejected and nothing
        is written.

        Raises:
            ValidationError: If the payload is malformed.
            InsufficientSharesError: If the trade oversells the ledger.
            TransactionConflictError: If retries are exhausted.
        """
        trade = build_trade(user_id, payload)

        def work(conn: sqlite3.Connection) -> TradeResult:
            unmatched = self._unmatched(conn, user_id, trade.ticker)
            stored = self.store.insert(trade, conn=conn)
            recalc = self.engine.recalculate_in(conn, user_id, stored.ticker)
            _reject_new_oversells(recalc, unmatched)
            return TradeResult(trade=recalc.trade(stored.id), position=recalc.position)

        result = self.engine.run(work)
        logger.info(
            "Recorded %s %s %s @ %s for %s",
            result.trade.action,
            result.trade.shares,
            result.trade.ticker,
            result.trade.price_per_share,
            user_id,
        )
        return result

    def delete_trade(self, user_id: str, trade_id: str) -> Optional[TradeResult]:
        """Delete a trade and recalculate its position.

        Deleting a BUY that later SELLs depended on never fails: those
        SELLs are clamped and flagged as inconsistent.

        Returns:
            The deleted trade with the position left behind, or None when
            the user owns no trade with this ID.
        """

        def work(conn: sqlite3.Connection) -> Optional[TradeResult]:
            existing = self.store.get_trade(trade_id, user_id, conn=conn)
            if existing is None or not self.store.delete_by_id(trade_id, user_id, conn=conn):
                return None
            recalc = self.engine.recalculate_in(conn, user_id, existing.ticker)
            return TradeResult(trade=existing, position=recalc.position)

        result = self.engine.run(work)
        if result is None:
            logger.debug("Delete of %s for %s matched nothing", trade_id, user_id)
        else:
            logger.info("Deleted trade %s (%s) for %s", trade_id, result.trade.ticker, user_id)
        return result

    def edit_trade(
        self, user_id: str, trade_id: str, changes: Mapping[str, Any]
    ) -> TradeResult:
        """Replace a trade with an edited copy.

        The edit is a delete plus reinsert: the trade keeps its ID but
        gets a new insertion sequence, so it sorts after other trades on
        the same date. Ticker and action cannot change.

        Raises:
            NotFoundError: If the user owns no trade with this ID.
            ValidationError: If the changes are malformed.
            InsufficientSharesError: If an edited SELL oversells the ledger.
        """
        fields = {_field_name(key): value for key, value in changes.items()}
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        def work(conn: sqlite3.Connection) -> TradeResult:
            existing = self.store.get_trade(trade_id, user_id, conn=conn)
            if existing is None:
                raise NotFoundError(f"Trade {trade_id} not found")
            payload = existing.model_dump(include=set(PAYLOAD_FIELDS))
            payload.update(fields)
            replacement = build_trade(user_id, payload).model_copy(update={"id": trade_id})

            unmatched = self._unmatched(conn, user_id, existing.ticker)
            self.store.delete_by_id(trade_id, user_id, conn=conn)
            self.store.insert(replacement, conn=conn)
            recalc = self.engine.recalculate_in(conn, user_id, existing.ticker)
            # Shrinking a BUY clamps later SELLs; a SELL must stay covered.
            if replacement.is_sell:
                _reject_new_oversells(recalc, unmatched)
            return TradeResult(trade=recalc.trade(trade_id), position=recalc.position)

        result = self.engine.run(work)
        logger.info("Edited trade %s (%s) for %s", trade_id, result.trade.ticker, user_id)
        return result

    def get_trade(self, user_id: str, trade_id: str) -> Trade:
        """Get one of the user's trades.

        Raises:
            NotFoundError: If the user owns no trade with this ID.
        """
        trade = self.store.get_trade(trade_id, user_id)
        if trade is None:
            raise NotFoundError(f"Trade {trade_id} not found")
        return trade

    def list_trades(
        self,
        user_id: str,
        ticker: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> TradePage:
        """Get a page of the user's trades, newest first."""
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        trades = self.store.list_trades(user_id, ticker=ticker, limit=limit, offset=offset)
        total = self.store.count_trades(user_id, ticker=ticker)
        return TradePage(trades=trades, total=total, limit=limit, offset=offset)

    def get_positions(self, user_id: str) -> list[Position]:
        """Get the user's open positions."""
        return self.store.get_positions(user_id)

    def get_position(self, user_id: str, ticker: str) -> Position:
        """Get the user's position in one symbol.

        Raises:
            NotFoundError: If no position is open.
        """
        position = self.store.get_position(user_id, ticker)
        if position is None:
            raise NotFoundError(f"No open position in {ticker.upper()}")
        return position

    def recalculate(self, user_id: str, ticker: str) -> Optional[Position]:
        """Recalculate a single pair."""
        return self.engine.recalculate(user_id, ticker)

    def recalculate_all(self, user_id: str) -> list[Position]:
        """Recalculate every pair the user has trades or a position for.

        Each pair runs in its own transaction.

        Returns:
            The open positions after the rebuild.
        """
        positions = []
        for ticker in self.store.list_tickers(user_id):
            position = self.engine.recalculate(user_id, ticker)
            if position is not None:
                positions.append(position)
        logger.info("Rebuilt %d open positions for %s", len(positions), user_id)
        return positions
