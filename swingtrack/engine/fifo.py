"""FIFO lot matching.

Replays a date-ordered ledger for one (user, ticker) pair: every BUY opens
a lot at the back of a queue and every SELL consumes shares from the front.
The replay is a pure function of its input, so running it twice over the
same trades yields identical results.
"""

import logging
from collections import deque
from decimal import Decimal
from typing import Iterable

from swingtrack.errors import InsufficientSharesError
from swingtrack.models import Lot, LotMatch, Replay, SellResult, Trade

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def open_lot(trade: Trade) -> Lot:
    """Build the lot a BUY trade opens.

    The unit cost is the bare execution price. The fee rides along
    separately so it counts toward the position's cost but never changes
    which shares are cheap or expensive.
    """
    return Lot(
        trade_id=trade.id,
        opened_at=trade.date,
        remaining=trade.shares,
        unit_cost=trade.price_per_share,
        remaining_fee=trade.fee,
    )


def consume(lots: deque, trade: Trade, strict: bool = False) -> SellResult:
    """Consume a SELL's shares from the front of the lot queue.

    Lots are mutated in place and dropped once empty. Shares the queue
    cannot cover are recorded as ``unmatched_shares`` with zero cost basis.

    Args:
        lots: Open lots, oldest first.
        trade: The SELL trade.
        strict: Raise instead of recording unmatched shares.

    Raises:
        InsufficientSharesError: In strict mode, if the queue runs dry.
    """
    needed = trade.shares
    cost_basis = ZERO
    matches = []

    while needed > 0 and lots:
        lot = lots[0]
        taken = min(needed, lot.remaining)
        cost_basis += taken * lot.unit_cost
        matches.append(
            LotMatch(
                lot_trade_id=lot.trade_id,
                opened_at=lot.opened_at,
                shares=taken,
                unit_cost=lot.unit_cost,
            )
        )
        if taken == lot.remaining:
            lots.popleft()
        else:
            lot.remaining_fee -= lot.remaining_fee * taken / lot.remaining
            lot.remaining -= taken
        needed -= taken

    if needed > 0:
        if strict:
            raise InsufficientSharesError(
                trade.ticker, trade.shares, trade.shares - needed, trade.id
            )
        logger.warning(
            "SELL %s of %s %s oversold by %s; unmatched shares carry no cost basis",
            trade.id,
            trade.shares,
            trade.ticker,
            needed,
        )

    return SellResult(
        trade_id=trade.id,
        shares=trade.shares,
        cost_basis=cost_basis,
        realized_pnl=trade.total_cost - cost_basis,
        unmatched_shares=needed,
        matches=matches,
    )


def replay(trades: Iterable[Trade], strict: bool = False) -> Replay:
    """Replay trades in the order given.

    Callers pass trades sorted by (date, insertion sequence), which is what
    the ledger store returns.

    Args:
        trades: Trades of a single (user, ticker) pair.
        strict: Raise on the first oversold SELL instead of clamping it.

    Returns:
        The open lots and one SellResult per SELL, in ledger order.
    """
    lots: deque = deque()
    sells = []
    for trade in trades:
        if trade.is_buy:
            lots.append(open_lot(trade))
        else:
            sells.append(consume(lots, trade, strict=strict))
    return Replay(lots=list(lots), sells=sells)
