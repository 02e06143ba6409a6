"""Portfolio commands for SwingTrack CLI.

Handles position display, rebuilding positions from the ledger, the
P&L dashboard and manual price updates.
"""

from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from swingtrack.cli.common import (
    DECIMAL,
    console,
    fail,
    get_service,
    get_store,
    money,
    quantity,
    resolve_user,
    signed,
)
from swingtrack.errors import SwingTrackError

user_option = click.option(
    "-u", "--user",
    default=None,
    help="User ID (default: [user] id from config).",
)


def _positions_table(positions: list) -> Table:
    table = Table(title="Open Positions")
    table.add_column("Ticker", style="cyan")
    table.add_column("Company")
    table.add_column("Shares", justify="right")
    table.add_column("Avg Price", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Last", justify="right")
    table.add_column("Unrealized", justify="right")

    for position in positions:
        ticker = position.ticker
        if position.inconsistent:
            ticker += " [yellow]![/yellow]"
        table.add_row(
            ticker,
            position.company,
            quantity(position.total_shares),
            money(position.average_price),
            money(position.total_cost),
            money(position.current_price),
            signed(position.unrealized_pnl),
        )
    return table


@click.command()
@user_option
@click.pass_context
def positions(ctx, user: Optional[str]) -> None:
    """Display open positions.

    Positions marked with ! contain a sale that oversold its lots.
    """
    user_id = resolve_user(ctx, user)
    open_positions = get_service(ctx).get_positions(user_id)
    if not open_positions:
        console.print("[dim]No open positions.[/dim]")
        return
    console.print(_positions_table(open_positions))


@click.command()
@click.argument("ticker", required=False)
@user_option
@click.pass_context
def recalc(ctx, ticker: Optional[str], user: Optional[str]) -> None:
    """Rebuild positions and realized P&L from the trade ledger.

    Rebuilds every symbol unless TICKER is given.
    """
    user_id = resolve_user(ctx, user)
    service = get_service(ctx)
    try:
        if ticker:
            position = service.recalculate(user_id, ticker)
            rebuilt = [position] if position is not None else []
        else:
            rebuilt = service.recalculate_all(user_id)
    except SwingTrackError as e:
        fail(f"Recalculation failed:\n\n{e}")

    if not rebuilt:
        console.print("[green]Recalculated.[/green] [dim]No open positions.[/dim]")
        return
    console.print(f"[green]Recalculated {len(rebuilt)} open position(s).[/green]")
    console.print(_positions_table(rebuilt))


@click.command()
@click.option("-m", "--months", type=int, default=12, show_default=True, help="Months of P&L history.")
@user_option
@click.pass_context
def dashboard(ctx, months: int, user: Optional[str]) -> None:
    """Display realized and unrealized P&L.

    \b
    Examples:
      swingtrack dashboard
      swingtrack dashboard --months 6
    """
    from swingtrack.services.dashboard import get_dashboard

    user_id = resolve_user(ctx, user)
    try:
        stats = get_dashboard(get_store(ctx), user_id, months=months)
    except SwingTrackError as e:
        fail(f"Failed to load dashboard:\n\n{e}")
    portfolio = stats.portfolio
    realized = stats.realized

    summary = (
        f"[bold]Portfolio[/bold]\n"
        f"Positions:      {portfolio.total_positions}\n"
        f"Market value:   {money(portfolio.total_value)}\n"
        f"Cost:           {money(portfolio.total_cost)}\n"
        f"Unrealized P&L: {signed(portfolio.unrealized_pnl)} "
        f"({portfolio.unrealized_pnl_percent:.2f}%)\n\n"
        f"[bold]Realized[/bold]\n"
        f"Realized P&L:   {signed(realized.realized_pnl)}\n"
        f"Sells:          {realized.total_sells} "
        f"({realized.winning_trades} won / {realized.losing_trades} lost)\n"
        f"Win rate:       {realized.win_rate:.1f}%\n"
        f"Avg win:        {money(realized.avg_win)}\n"
        f"Avg loss:       {money(realized.avg_loss)}\n\n"
        f"[bold]Total P&L:      {signed(stats.total_pnl)}[/bold]"
    )
    console.print(Panel(summary, title="[bold cyan]Dashboard[/bold cyan]", border_style="cyan"))

    if stats.monthly_pnl:
        table = Table(title="Monthly Realized P&L")
        table.add_column("Month")
        table.add_column("Sells", justify="right")
        table.add_column("P&L", justify="right")
        for month in stats.monthly_pnl:
            table.add_row(month.month, str(month.trades), signed(month.pnl))
        console.print(table)

    if stats.recent_trades:
        console.print("\n[bold]Recent trades[/bold]")
        for trade in stats.recent_trades:
            console.print(
                f"  {trade.date:%Y-%m-%d}  {trade.action:<4}  {trade.ticker:<6} "
                f"{quantity(trade.shares)} @ {money(trade.price_per_share)}"
            )


@click.command()
@click.argument("ticker")
@click.argument("value", type=DECIMAL)
@user_option
@click.pass_context
def price(ctx, ticker: str, value, user: Optional[str]) -> None:
    """Record a market price for an open position.

    \b
    Examples:
      swingtrack price AAPL 182.30
    """
    from swingtrack.services.prices import PriceQuote, apply_quotes

    user_id = resolve_user(ctx, user)
    try:
        quote = PriceQuote(ticker=ticker, price=value)
    except ValueError as e:
        fail(f"Invalid quote:\n\n{e}")

    try:
        service = get_service(ctx)
        updated = apply_quotes(service.store, user_id, [quote], engine=service.engine)
    except SwingTrackError as e:
        fail(f"Failed to record price:\n\n{e}")
    if not updated:
        fail(f"No open position in {ticker.upper()}.", title="Not Found")

    position = updated[0]
    console.print(Panel(
        f"[bold]{position.ticker}[/bold] @ {money(position.current_price)}\n\n"
        f"Shares:     {quantity(position.total_shares)}\n"
        f"Cost:       {money(position.total_cost)}\n"
        f"Unrealized: {signed(position.unrealized_pnl)}",
        title="[bold green]Price updated[/bold green]",
        border_style="green",
    ))
