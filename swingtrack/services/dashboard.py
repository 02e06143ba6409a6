"""Dashboard statistics over trades and positions."""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from swingtrack.db.store import LedgerStore
from swingtrack.models import (
    DashboardStats,
    MonthlyPnL,
    PortfolioSummary,
    Position,
    RealizedStats,
    Trade,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

RECENT_TRADES = 5


def calculate_realized_stats(trades: Iterable[Trade]) -> RealizedStats:
    """Calculate realized P&L metrics from a list of trades.

    Only SELL trades with a computed P&L count; BUYs and SELLs awaiting
    recalculation are skipped.

    Args:
        trades: Trades in any order.

    Returns:
        Aggregated realized statistics.
    """
    realized_pnl = ZERO
    total_sells = 0
    winning_trades = 0
    losing_trades = 0
    total_wins = ZERO
    total_losses = ZERO

    for trade in trades:
        if not trade.is_sell or trade.realized_pnl is None:
            continue
        total_sells += 1
        realized_pnl += trade.realized_pnl
        if trade.realized_pnl > 0:
            winning_trades += 1
            total_wins += trade.realized_pnl
        elif trade.realized_pnl < 0:
            losing_trades += 1
            total_losses += abs(trade.realized_pnl)

    win_rate = Decimal(winning_trades) / total_sells * HUNDRED if total_sells else ZERO
    avg_win = total_wins / winning_trades if winning_trades else ZERO
    avg_loss = total_losses / losing_trades if losing_trades else ZERO

    return RealizedStats(
        realized_pnl=realized_pnl,
        total_sells=total_sells,
        winning_trades=winning_trades,
        losing_trades=losing_trades,
        win_rate=win_rate,
        avg_win=avg_win,
        avg_loss=avg_loss,
    )


def monthly_realized_pnl(trades: Iterable[Trade], months: int = 12) -> list[MonthlyPnL]:
    """Group realized P&L by calendar month.

    Args:
        trades: Trades in any order.
        months: Number of most recent months with activity to keep.

    Returns:
        One entry per month with realized P&L, newest first.
    """
    pnl: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for trade in trades:
        if not trade.is_sell or trade.realized_pnl is None:
            continue
        month = trade.date.strftime("%Y-%m")
        pnl[month] += trade.realized_pnl
        counts[month] += 1

    ordered = sorted(pnl, reverse=True)[:months]
    return [MonthlyPnL(month=month, pnl=pnl[month], trades=counts[month]) for month in ordered]


def portfolio_summary(positions: Iterable[Position]) -> PortfolioSummary:
    """Summarize open positions.

    Positions without a quote are valued at their open cost, so they
    contribute no unrealized P&L.
    """
    total_positions = 0
    total_value = ZERO
    total_cost = ZERO
    for position in positions:
        total_positions += 1
        total_value += position.market_value
        total_cost += position.total_cost

    unrealized = total_value - total_cost
    percent = unrealized / total_cost * HUNDRED if total_cost > 0 else ZERO
    return PortfolioSummary(
        total_positions=total_positions,
        total_value=total_value,
        total_cost=total_cost,
        unrealized_pnl=unrealized,
        unrealized_pnl_percent=percent,
    )


def get_dashboard(store: LedgerStore, user_id: str, months: int = 12) -> DashboardStats:
    """Build the dashboard for one user."""
    trades = store.list_trades(user_id)
    positions = store.get_positions(user_id)

    summary = portfolio_summary(positions)
    realized = calculate_realized_stats(trades)
    return DashboardStats(
        portfolio=summary,
        realized=realized,
        total_pnl=realized.realized_pnl + summary.unrealized_pnl,
        monthly_pnl=monthly_realized_pnl(trades, months=months),
        recent_trades=trades[:RECENT_TRADES],
        positions=positions,
    )
