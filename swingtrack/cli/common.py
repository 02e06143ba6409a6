"""Shared helpers for SwingTrack CLI commands."""

from decimal import Decimal, InvalidOperation
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from swingtrack.config import AppConfig, load_config

console = Console()

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


class DecimalType(click.ParamType):
    """Click parameter parsed exactly as a Decimal."""

    name = "decimal"

    def convert(self, value, param, ctx):
        if isinstance(value, Decimal):
            return value
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            self.fail(f"{value!r} is not a valid number", param, ctx)
        if not result.is_finite():
            self.fail(f"{value!r} is not a finite number", param, ctx)
        return result


DECIMAL = DecimalType()


def get_config(ctx: click.Context) -> AppConfig:
    """Configuration loaded by the root group, or loaded now."""
    obj = ctx.find_object(dict)
    if obj is not None and "config" in obj:
        return obj["config"]
    return load_config()


def get_store(ctx: click.Context):
    """Open the ledger store named in the configuration."""
    from swingtrack.db.store import LedgerStore

    config = get_config(ctx)
    return LedgerStore(config.db_path, busy_timeout=config.database.busy_timeout)


def get_service(ctx: click.Context):
    """Build a trade service over the configured store."""
    from swingtrack.engine.recalc import PositionEngine
    from swingtrack.services.trades import TradeService

    config = get_config(ctx)
    store = get_store(ctx)
    engine = PositionEngine(
        store,
        max_retries=config.engine.max_retries,
        retry_backoff=config.engine.retry_backoff,
    )
    return TradeService(store, engine)


def resolve_user(ctx: click.Context, user: Optional[str]) -> str:
    """Explicit ``--user`` wins over the configured default."""
    return user or get_config(ctx).user.id


def fail(message: str, title: str = "Error") -> None:
    """Print an error panel and exit with status 1."""
    console.print(Panel(
        f"[red]{escape(message)}[/red]",
        title=f"[bold red]{title}[/bold red]",
        border_style="red",
    ))
    raise SystemExit(1)


def money(value: Optional[Decimal]) -> str:
    """Format an amount with two decimals, or a dash when missing."""
    if value is None:
        return "-"
    return f"{value:,.2f}"


def signed(value: Optional[Decimal]) -> str:
    """Format a P&L amount in green or red."""
    if value is None:
        return "-"
    color = "green" if value >= 0 else "red"
    sign = "+" if value > 0 else ""
    return f"[{color}]{sign}{value:,.2f}[/{color}]"


def quantity(value: Decimal) -> str:
    """Format a share count without trailing zeros."""
    return format(value.normalize(), "f")
