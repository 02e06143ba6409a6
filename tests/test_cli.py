"""Tests for the command-line interface."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import click
import pytest
from click.testing import CliRunner

from swingtrack.cli.common import console
from swingtrack.cli.main import LAZY_SUBCOMMANDS, LazyGroup, cli
from swingtrack.db.store import LedgerStore
from swingtrack.errors import TransactionConflictError


@pytest.fixture
def workspace():
    """Config file pointing at a throwaway database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        config = root / "config.toml"
        config.write_text(
            f'[database]\npath = "{(root / "ledger.db").as_posix()}"\n\n'
            '[engine]\nretry_backoff = 0\n\n'
            '[user]\nid = "tester"\n'
        )
        yield root, config


@pytest.fixture
def run(workspace):
    _, config = workspace
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(cli, ["--config", str(config), *args])

    # Wide enough that trade tables never wrap.
    width = console.width
    console.width = 200
    yield invoke
    console.width = width


def ledger(workspace) -> LedgerStore:
    root, _ = workspace
    return LedgerStore(root / "ledger.db")


class TestCommandRegistry:
    def test_all_commands_listed(self):
        result = CliRunner().invoke(cli, ["--help"])

        assert result.exit_code == 0
        for name in LAZY_SUBCOMMANDS:
            assert name in result.output

    def test_every_lazy_command_loads(self):
        ctx = cli.make_context("swingtrack", ["--help"], resilient_parsing=True)
        for name in LAZY_SUBCOMMANDS:
            assert cli.get_command(ctx, name) is not None

    def test_lazy_commands_resolve_to_their_names(self):
        ctx = cli.make_context("swingtrack", ["--help"], resilient_parsing=True)
        for name in LAZY_SUBCOMMANDS:
            assert cli.get_command(ctx, name).name == name

    def test_target_that_is_not_a_command(self):
        group = LazyGroup(name="broken", lazy_subcommands={"oops": "swingtrack.cli.common:money"})
        ctx = click.Context(group)

        with pytest.raises(click.ClickException):
            group.get_command(ctx, "oops")

    def test_unknown_command(self, run):
        result = run("bogus")
        assert result.exit_code != 0


class TestTradeCommands:
    def test_buy_records_trade(self, run, workspace):
        result = run("buy", "acme", "10", "12.5", "--fee", "1", "--date", "2024-01-02")

        assert result.exit_code == 0, result.output
        assert "BUY recorded" in result.output
        trades = ledger(workspace).list_ordered("tester", "ACME")
        assert len(trades) == 1
        assert str(trades[0].price_per_share) == "12.5"

    def test_sell_shows_realized_pnl(self, run):
        run("buy", "ACME", "10", "10", "--date", "2024-01-02")
        result = run("sell", "ACME", "4", "15", "--date", "2024-01-03")

        assert result.exit_code == 0, result.output
        assert "+20.00" in result.output

    def test_oversell_fails(self, run, workspace):
        run("buy", "ACME", "1", "10", "--date", "2024-01-02")
        result = run("sell", "ACME", "2", "10", "--date", "2024-01-03")

        assert result.exit_code == 1
        assert "Insufficient shares" in result.output
        assert ledger(workspace).count_trades("tester") == 1

    def test_invalid_number(self, run):
        result = run("buy", "ACME", "ten", "10")
        assert result.exit_code == 2

    def test_non_positive_shares(self, run):
        result = run("buy", "ACME", "0", "10")
        assert result.exit_code == 1
        assert "Failed to record trade" in result.output

    def test_user_option(self, run, workspace):
        run("buy", "ACME", "1", "10", "--user", "someone")

        store = ledger(workspace)
        assert store.count_trades("someone") == 1
        assert store.count_trades("tester") == 0

    def test_trades_listing(self, run):
        run("buy", "ACME", "1", "10", "--date", "2024-01-02")
        run("buy", "BETA", "2", "20", "--date", "2024-01-03")

        result = run("trades", "--ticker", "beta")

        assert result.exit_code == 0, result.output
        assert "BETA" in result.output
        assert "ACME" not in result.output

    def test_trades_empty(self, run):
        result = run("trades")
        assert result.exit_code == 0
        assert "No trades recorded" in result.output

    def test_edit(self, run, workspace):
        run("buy", "ACME", "10", "10", "--date", "2024-01-02")
        trade = ledger(workspace).list_ordered("tester", "ACME")[0]

        result = run("edit", trade.id, "--shares", "12")

        assert result.exit_code == 0, result.output
        assert ledger(workspace).get_position("tester", "ACME").total_shares == 12

    def test_edit_requires_a_change(self, run):
        result = run("edit", "anything")
        assert result.exit_code == 1
        assert "Nothing to change" in result.output

    def test_edit_missing_trade(self, run):
        result = run("edit", "missing", "--shares", "1")
        assert result.exit_code == 1

    def test_delete(self, run, workspace):
        run("buy", "ACME", "10", "10", "--date", "2024-01-02")
        trade = ledger(workspace).list_ordered("tester", "ACME")[0]

        result = run("delete", trade.id)

        assert result.exit_code == 0, result.output
        assert ledger(workspace).get_position("tester", "ACME") is None

    def test_delete_missing_trade_is_noop(self, run):
        result = run("delete", "missing")
        assert result.exit_code == 0, result.output
        assert "nothing deleted" in result.output


class TestPortfolioCommands:
    def test_positions(self, run):
        run("buy", "ACME", "10", "10", "--date", "2024-01-02")

        result = run("positions")

        assert result.exit_code == 0, result.output
        assert "ACME" in result.output

    def test_positions_empty(self, run):
        result = run("positions")
        assert "No open positions" in result.output

    def test_recalc(self, run):
        run("buy", "ACME", "10", "10", "--date", "2024-01-02")

        result = run("recalc")

        assert result.exit_code == 0, result.output
        assert "Recalculated 1 open position" in result.output

    def test_price_and_dashboard(self, run, workspace):
        run("buy", "ACME", "10", "10", "--date", "2024-01-02")
        run("sell", "ACME", "5", "12", "--date", "2024-02-02")

        result = run("price", "ACME", "11")
        assert result.exit_code == 0, result.output
        assert ledger(workspace).get_position("tester", "ACME").current_price == 11

        result = run("dashboard")
        assert result.exit_code == 0, result.output
        assert "2024-02" in result.output

    def test_price_conflict_shows_error_panel(self, run):
        run("buy", "ACME", "10", "10", "--date", "2024-01-02")

        with patch(
            "swingtrack.services.prices.apply_quotes",
            side_effect=TransactionConflictError("database is locked"),
        ):
            result = run("price", "ACME", "11")

        assert result.exit_code == 1
        assert "Failed to record price" in result.output
        assert "Traceback" not in result.output

    def test_dashboard_conflict_shows_error_panel(self, run):
        with patch(
            "swingtrack.services.dashboard.get_dashboard",
            side_effect=TransactionConflictError("database is locked"),
        ):
            result = run("dashboard")

        assert result.exit_code == 1
        assert "Failed to load dashboard" in result.output

    def test_price_without_position(self, run):
        result = run("price", "ACME", "11")
        assert result.exit_code == 1
        assert "No open position" in result.output


class TestConfigHandling:
    def test_bad_config_exits(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = Path(tmpdir) / "config.toml"
            config.write_text("[engine\n")

            result = CliRunner().invoke(cli, ["--config", str(config), "positions"])

        assert result.exit_code == 1
        assert "Configuration Error" in result.output
