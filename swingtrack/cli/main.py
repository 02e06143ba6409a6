"""Main CLI entry point for SwingTrack.

This module provides the main click group and lazy loading
for command modules to improve startup time.
"""

import importlib
from pathlib import Path
from typing import Optional

import click

from swingtrack.cli.common import fail
from swingtrack.config import load_config
from swingtrack.errors import ConfigError
from swingtrack.log import setup_logging


class LazyGroup(click.Group):
    """Command group that imports command modules on first use.

    Subcommands are registered as ``"package.module:attribute"`` import
    strings, so ``swingtrack --help`` and each command only pay for the
    modules they touch.
    """

    def __init__(self, *args, lazy_subcommands: dict[str, str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.lazy_subcommands = dict(lazy_subcommands or {})

    def list_commands(self, ctx: click.Context) -> list[str]:
        return sorted({*super().list_commands(ctx), *self.lazy_subcommands})

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        command = super().get_command(ctx, cmd_name)
        if command is None and cmd_name in self.lazy_subcommands:
            command = self._resolve(cmd_name)
            self.add_command(command, cmd_name)
        return command

    def _resolve(self, cmd_name: str) -> click.Command:
        target = self.lazy_subcommands[cmd_name]
        module_path, _, attr = target.partition(":")
        command = getattr(importlib.import_module(module_path), attr or cmd_name, None)
        if not isinstance(command, click.Command):
            raise click.ClickException(f"{target} is not a click command")
        return command


LAZY_SUBCOMMANDS = {
    "buy": "swingtrack.cli.trade:buy",
    "sell": "swingtrack.cli.trade:sell",
    "trades": "swingtrack.cli.trade:trades",
    "edit": "swingtrack.cli.trade:edit",
    "delete": "swingtrack.cli.trade:delete",
    "positions": "swingtrack.cli.portfolio:positions",
    "recalc": "swingtrack.cli.portfolio:recalc",
    "dashboard": "swingtrack.cli.portfolio:dashboard",
    "price": "swingtrack.cli.portfolio:price",
}


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(cls=LazyGroup, lazy_subcommands=LAZY_SUBCOMMANDS, context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="swingtrack")
@click.option(
    "-c", "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/swingtrack/config.toml).",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[Path], verbose: bool) -> None:
    """SwingTrack - swing-trading portfolio tracker.

    Log BUY and SELL trades; positions and realized P&L are derived from
    the ledger with FIFO cost basis after every change.

    \b
    Quick Start:
      swingtrack buy AAPL 10 150.25     # Record a purchase
      swingtrack sell AAPL 5 170        # Record a sale
      swingtrack positions              # View open positions
      swingtrack dashboard              # Realized and unrealized P&L
    """
    ctx.ensure_object(dict)
    try:
        config = load_config(config_file)
    except ConfigError as e:
        fail(str(e), title="Configuration Error")
    setup_logging("DEBUG" if verbose else config.logging.level)
    ctx.obj["config"] = config


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
