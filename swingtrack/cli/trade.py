"""Trade commands for SwingTrack CLI.

Handles recording buys and sells, listing the ledger, and editing or
deleting past trades.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from swingtrack.cli.common import (
    DATE_FORMATS,
    DECIMAL,
    console,
    fail,
    get_service,
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


def _result_panel(result, title: str, border_style: str) -> Panel:
    """Render a trade and the position it left behind."""
    trade = result.trade
    side_color = "green" if trade.is_buy else "red"
    text = (
        f"[bold]{trade.ticker}[/bold] {trade.company}\n\n"
        f"Trade ID:  {trade.id}\n"
        f"Side:      [{side_color}]{trade.action}[/{side_color}]\n"
        f"Shares:    {quantity(trade.shares)}\n"
        f"Price:     {money(trade.price_per_share)} {trade.currency}\n"
        f"Fee:       {money(trade.fee)}\n"
        f"Date:      {trade.date:%Y-%m-%d %H:%M}"
    )
    if trade.is_sell:
        text += (
            f"\nCost basis: {money(trade.cost_basis)}"
            f"\nRealized:   {signed(trade.realized_pnl)}"
        )
        if trade.inconsistent:
            text += "\n[yellow]Sold more shares than were open[/yellow]"

    position = result.position
    if position is None:
        text += f"\n\n[dim]No open position in {trade.ticker}[/dim]"
    else:
        text += (
            f"\n\n[bold]Position[/bold]\n"
            f"Shares:    {quantity(position.total_shares)}\n"
            f"Avg price: {money(position.average_price)}\n"
            f"Cost:      {money(position.total_cost)}"
        )
    return Panel(text, title=title, border_style=border_style)


def _record(
    ctx: click.Context,
    action: str,
    ticker: str,
    shares: Decimal,
    price: Decimal,
    fee: Decimal,
    date: Optional[datetime],
    company: Optional[str],
    logo: Optional[str],
    currency: str,
    user: Optional[str],
) -> None:
    user_id = resolve_user(ctx, user)
    payload = {
        "ticker": ticker,
        "action": action,
        "shares": shares,
        "price_per_share": price,
        "fee": fee,
        "date": date or datetime.now(),
        "company": company or ticker.upper(),
        "logo": logo,
        "currency": currency,
    }
    try:
        result = get_service(ctx).add_trade(user_id, payload)
    except SwingTrackError as e:
        fail(f"Failed to record trade:\n\n{e}")

    console.print(_result_panel(
        result,
        title=f"[bold green]{action} recorded[/bold green]",
        border_style="green",
    ))


def _trade_options(func):
    """Options shared by buy and sell."""
    func = user_option(func)
    func = click.option("--currency", default="USD", show_default=True, help="Trade currency.")(func)
    func = click.option("--logo", default=None, help="Logo URL.")(func)
    func = click.option("--company", default=None, help="Company name.")(func)
    func = click.option(
        "-d", "--date",
        type=click.DateTime(formats=DATE_FORMATS),
        default=None,
        help="Trade date (default: now).",
    )(func)
    func = click.option(
        "-f", "--fee",
        type=DECIMAL,
        default="0",
        show_default=True,
        help="Flat fee for the trade.",
    )(func)
    return func


@click.command()
@click.argument("ticker")
@click.argument("shares", type=DECIMAL)
@click.argument("price", type=DECIMAL)
@_trade_options
@click.pass_context
def buy(ctx, ticker, shares, price, fee, date, company, logo, currency, user) -> None:
    """Record a purchase.

    TICKER is the symbol, SHARES the quantity (fractions allowed) and
    PRICE the price per share.

    \b
    Examples:
      swingtrack buy AAPL 10 150.25
      swingtrack buy MSFT 2.5 410 --fee 1.99 --date 2024-03-01
    """
    _record(ctx, "BUY", ticker, shares, price, fee, date, company, logo, currency, user)


@click.command()
@click.argument("ticker")
@click.argument("shares", type=DECIMAL)
@click.argument("price", type=DECIMAL)
@_trade_options
@click.pass_context
def sell(ctx, ticker, shares, price, fee, date, company, logo, currency, user) -> None:
    """Record a sale.

    Realized P&L is computed against the oldest open lots first. A sale
    larger than the shares held at its date is rejected.

    \b
    Examples:
      swingtrack sell AAPL 5 172.10
      swingtrack sell AAPL 5 172.10 --date 2024-06-14
    """
    _record(ctx, "SELL", ticker, shares, price, fee, date, company, logo, currency, user)


@click.command()
@click.option("-t", "--ticker", default=None, help="Only trades in this symbol.")
@click.option("-n", "--limit", type=int, default=50, show_default=True, help="Page size.")
@click.option("--offset", type=int, default=0, show_default=True, help="Trades to skip.")
@user_option
@click.pass_context
def trades(ctx, ticker: Optional[str], limit: int, offset: int, user: Optional[str]) -> None:
    """List recorded trades, newest first.

    \b
    Examples:
      swingtrack trades
      swingtrack trades --ticker AAPL --limit 10
    """
    user_id = resolve_user(ctx, user)
    try:
        page = get_service(ctx).list_trades(user_id, ticker=ticker, limit=limit, offset=offset)
    except SwingTrackError as e:
        fail(str(e))

    if not page.trades:
        console.print("[dim]No trades recorded.[/dim]")
        return

    table = Table(title=f"Trades ({page.offset + 1}-{page.offset + len(page.trades)} of {page.total})")
    table.add_column("ID", style="dim")
    table.add_column("Date")
    table.add_column("Ticker", style="cyan")
    table.add_column("Side")
    table.add_column("Shares", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Fee", justify="right")
    table.add_column("Realized", justify="right")

    for trade in page.trades:
        side = "[green]BUY[/green]" if trade.is_buy else "[red]SELL[/red]"
        realized = signed(trade.realized_pnl) if trade.is_sell else ""
        if trade.inconsistent:
            realized += " [yellow]![/yellow]"
        table.add_row(
            trade.id,
            f"{trade.date:%Y-%m-%d}",
            trade.ticker,
            side,
            quantity(trade.shares),
            money(trade.price_per_share),
            money(trade.fee),
            realized,
        )

    console.print(table)
    if page.has_more:
        console.print(f"[dim]More trades: --offset {page.offset + page.limit}[/dim]")


@click.command()
@click.argument("trade_id")
@click.option("-s", "--shares", type=DECIMAL, default=None, help="New share count.")
@click.option("-p", "--price", type=DECIMAL, default=None, help="New price per share.")
@click.option("-f", "--fee", type=DECIMAL, default=None, help="New fee.")
@click.option(
    "-d", "--date",
    type=click.DateTime(formats=DATE_FORMATS),
    default=None,
    help="New trade date.",
)
@user_option
@click.pass_context
def edit(ctx, trade_id: str, shares, price, fee, date, user: Optional[str]) -> None:
    """Edit a recorded trade and recalculate its position.

    \b
    Examples:
      swingtrack edit 3f2a... --shares 12
      swingtrack edit 3f2a... --price 101.5 --date 2024-02-01
    """
    changes = {
        key: value
        for key, value in (
            ("shares", shares),
            ("price_per_share", price),
            ("fee", fee),
            ("date", date),
        )
        if value is not None
    }
    if not changes:
        fail("Nothing to change. Pass --shares, --price, --fee or --date.")

    user_id = resolve_user(ctx, user)
    try:
        result = get_service(ctx).edit_trade(user_id, trade_id, changes)
    except SwingTrackError as e:
        fail(f"Failed to edit trade:\n\n{e}")

    console.print(_result_panel(
        result,
        title="[bold cyan]Trade updated[/bold cyan]",
        border_style="cyan",
    ))


@click.command()
@click.argument("trade_id")
@user_option
@click.pass_context
def delete(ctx, trade_id: str, user: Optional[str]) -> None:
    """Delete a recorded trade and recalculate its position."""
    user_id = resolve_user(ctx, user)
    try:
        result = get_service(ctx).delete_trade(user_id, trade_id)
    except SwingTrackError as e:
        fail(f"Failed to delete trade:\n\n{e}")

    if result is None:
        console.print(f"[dim]No trade {escape(trade_id)}; nothing deleted.[/dim]")
        return

    console.print(_result_panel(
        result,
        title="[bold yellow]Trade deleted[/bold yellow]",
        border_style="yellow",
    ))
