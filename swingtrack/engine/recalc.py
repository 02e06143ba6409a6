"""Position recalculation engine."""

import logging
import sqlite3
import time
from typing import Callable, Optional, TypeVar

from swingtrack.db.store import LedgerStore
from swingtrack.engine.fifo import replay
from swingtrack.errors import TransactionConflictError
from swingtrack.models import Position, Recalculation, Trade

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PositionEngine:
    """Rebuilds positions and realized P&L from the trade ledger.

    Every recalculation replays the full ordered history of a pair and
    replaces whatever derived state was stored before, inside a single
    store transaction.
    """

    def __init__(
        self,
        store: LedgerStore,
        max_retries: int = 3,
        retry_backoff: float = 0.05,
    ):
        """Initialize the engine.

        Args:
            store: Ledger store to read trades from and write results to.
            max_retries: Attempts per transaction before a conflict surfaces.
            retry_backoff: Base delay in seconds, doubled after each attempt.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.store = store
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff

    def run(self, work: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``work`` in a store transaction, retrying on conflicts.

        ``work`` is re-run from scratch on each attempt, so it must do all
        of its reads through the connection it is given.

        Raises:
            TransactionConflictError: If every attempt conflicted.
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                with self.store.transaction() as conn:
                    return work(conn)
            except TransactionConflictError as exc:
                if attempt == self.max_retries:
                    logger.error("Giving up after %d conflicting attempts: %s", attempt, exc)
                    raise
                delay = self.retry_backoff * 2 ** (attempt - 1)
                logger.warning(
                    "Transaction conflict (attempt %d/%d), retrying in %.3fs: %s",
                    attempt,
                    self.max_retries,
                    delay,
                    exc,
                )
                time.sleep(delay)
        raise AssertionError("unreachable")

    def recalculate(self, user_id: str, ticker: str) -> Optional[Position]:
        """Replay a pair's ledger and persist the resulting position.

        Args:
            user_id: Owning user.
            ticker: Trading symbol.

        Returns:
            The open position, or None when nothing is held.
        """
        return self.run(lambda conn: self.recalculate_in(conn, user_id, ticker)).position

    def recalculate_in(
        self, conn: sqlite3.Connection, user_id: str, ticker: str
    ) -> Recalculation:
        """Recalculate a pair inside a transaction the caller owns.

        Oversold SELLs are clamped and flagged rather than raised; callers
        that must reject them check ``Recalculation.oversold``.
        """
        ticker = ticker.strip().upper()
        trades = self.store.list_ordered(user_id, ticker, conn=conn)

        if not trades:
            if self.store.delete_position(user_id, ticker, conn=conn):
                logger.debug("Removed position %s/%s: ledger is empty", user_id, ticker)
            return Recalculation(user_id=user_id, ticker=ticker)

        result = replay(trades)
        sells = iter(result.sells)
        updated = []
        for trade in trades:
            if trade.is_sell:
                sell = next(sells)
                fresh = trade.model_copy(
                    update={
                        "cost_basis": sell.cost_basis,
                        "realized_pnl": sell.realized_pnl,
                        "inconsistent": sell.oversold,
                    }
                )
                if _engine_fields(fresh) != _engine_fields(trade):
                    self.store.update_trade_result(fresh, conn=conn)
                trade = fresh
            updated.append(trade)

        inconsistent = bool(result.oversold)
        total_shares = result.total_shares
        if total_shares > 0:
            latest = trades[-1]
            total_cost = result.total_cost
            position = self.store.upsert_position(
                Position(
                    user_id=user_id,
                    ticker=ticker,
                    company=latest.company,
                    logo=latest.logo,
                    currency=latest.currency,
                    total_shares=total_shares,
                    total_cost=total_cost,
                    average_price=total_cost / total_shares,
                    inconsistent=inconsistent,
                ),
                conn=conn,
            )
        else:
            self.store.delete_position(user_id, ticker, conn=conn)
            position = None

        logger.debug(
            "Recalculated %s/%s over %d trades: %s shares open%s",
            user_id,
            ticker,
            len(trades),
            total_shares,
            " (oversold)" if inconsistent else "",
        )
        return Recalculation(
            user_id=user_id,
            ticker=ticker,
            position=position,
            trades=updated,
            sells=result.sells,
        )


def _engine_fields(trade: Trade) -> tuple:
    return (trade.cost_basis, trade.realized_pnl, trade.inconsistent)
