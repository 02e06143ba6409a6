"""Tests for FIFO lot matching.

**Feature: fifo-ledger**
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from swingtrack.engine.fifo import replay
from swingtrack.errors import InsufficientSharesError
from swingtrack.models import Trade

D = Decimal
START = datetime(2024, 1, 1, 9, 30)


def make_trade(action, shares, price, day, fee="0", trade_id=None, sequence=None):
    """Build a trade for user u1 in ACME."""
    return Trade(
        id=trade_id or f"t{day}-{action}-{sequence}",
        user_id="u1",
        ticker="ACME",
        action=action,
        shares=D(str(shares)),
        price_per_share=D(str(price)),
        fee=D(str(fee)),
        date=START + timedelta(days=day),
        sequence=sequence,
    )


decimal_shares = st.decimals(min_value=D("0.01"), max_value=D("500"), places=2)
decimal_prices = st.decimals(min_value=D("0.01"), max_value=D("1000"), places=2)
decimal_fees = st.decimals(min_value=D("0"), max_value=D("25"), places=2)


@st.composite
def covered_history(draw):
    """Generate a ledger where no SELL exceeds the shares held."""
    steps = draw(
        st.lists(
            st.tuples(st.booleans(), decimal_shares, decimal_prices, decimal_fees),
            min_size=1,
            max_size=30,
        )
    )
    trades = []
    held = D("0")
    for day, (is_sell, shares, price, fee) in enumerate(steps):
        if is_sell and held > 0:
            shares = min(shares, held)
            held -= shares
            action = "SELL"
        else:
            held += shares
            action = "BUY"
        trades.append(make_trade(action, shares, price, day, fee=fee, sequence=day))
    return trades


class TestFifoScenarios:
    """Worked examples of lot consumption."""

    def test_sell_spanning_two_lots(self):
        trades = [
            make_trade("BUY", 10, 10, 1),
            make_trade("BUY", 10, 20, 2),
            make_trade("SELL", 15, 30, 3),
        ]
        result = replay(trades)

        sell = result.sells[0]
        assert sell.cost_basis == D("200")
        assert sell.realized_pnl == D("250")
        assert result.total_shares == D("5")
        assert result.total_cost == D("100")
        assert result.lots[0].unit_cost == D("20")

    def test_partial_sell_across_lots(self):
        trades = [
            make_trade("BUY", 5, 100, 1),
            make_trade("BUY", 5, 200, 2),
            make_trade("SELL", 7, 250, 3),
        ]
        result = replay(trades)

        sell = result.sells[0]
        assert sell.cost_basis == D("900")
        assert sell.realized_pnl == D("850")
        assert result.total_shares == D("3")
        assert result.total_cost == D("600")
        assert result.total_cost / result.total_shares == D("200")

    def test_matches_record_each_lot_consumed(self):
        trades = [
            make_trade("BUY", 5, 100, 1, trade_id="b1"),
            make_trade("BUY", 5, 200, 2, trade_id="b2"),
            make_trade("SELL", 7, 250, 3, trade_id="s1"),
        ]
        matches = replay(trades).sells[0].matches

        assert [m.lot_trade_id for m in matches] == ["b1", "b2"]
        assert [m.shares for m in matches] == [D("5"), D("2")]

    def test_sell_fee_reduces_realized_pnl(self):
        trades = [
            make_trade("BUY", 10, 10, 1),
            make_trade("SELL", 10, 12, 2, fee="5"),
        ]
        sell = replay(trades).sells[0]

        assert sell.cost_basis == D("100")
        assert sell.realized_pnl == D("15")

    def test_exact_close_leaves_no_lots(self):
        trades = [
            make_trade("BUY", 3, 10, 1),
            make_trade("BUY", 2, 11, 2),
            make_trade("SELL", 5, 12, 3),
        ]
        result = replay(trades)

        assert result.lots == []
        assert result.total_shares == D("0")
        assert result.total_cost == D("0")

    def test_fractional_shares(self):
        trades = [
            make_trade("BUY", "0.5", 100, 1),
            make_trade("BUY", "1.25", 120, 2),
            make_trade("SELL", "0.75", 130, 3),
        ]
        result = replay(trades)

        assert result.sells[0].cost_basis == D("80.00")
        assert result.total_shares == D("1.00")
        assert result.total_cost == D("120.00")

    def test_sell_before_any_buy_in_date_order_is_oversold(self):
        trades = [
            make_trade("SELL", 5, 10, 1),
            make_trade("BUY", 5, 8, 2),
        ]
        result = replay(trades)

        assert result.sells[0].unmatched_shares == D("5")
        assert result.total_shares == D("5")


class TestFeeHandling:
    """BUY fees count toward position cost, never toward unit cost."""

    def test_buy_fee_included_in_position_cost(self):
        result = replay([make_trade("BUY", 10, 10, 1, fee="5")])

        assert result.total_cost == D("105")
        assert result.lots[0].unit_cost == D("10")

    def test_large_fee_does_not_change_cost_basis(self):
        trades = [
            make_trade("BUY", 10, 10, 1, fee="100"),
            make_trade("BUY", 10, 12, 2),
            make_trade("SELL", 10, 15, 3),
        ]
        result = replay(trades)

        # The fee-heavy first lot is still the cheap one and is sold first.
        assert result.sells[0].cost_basis == D("100")
        assert result.sells[0].realized_pnl == D("50")
        assert result.total_cost == D("120")

    def test_partial_consumption_releases_fee_pro_rata(self):
        trades = [
            make_trade("BUY", 10, 10, 1, fee="10"),
            make_trade("SELL", 4, 11, 2),
        ]
        result = replay(trades)

        assert result.sells[0].cost_basis == D("40")
        assert result.total_shares == D("6")
        assert result.total_cost == D("66")


class TestOversold:
    """Behavior when a SELL outruns its lots."""

    def test_clamps_by_default(self):
        trades = [
            make_trade("BUY", 5, 10, 1),
            make_trade("SELL", 8, 20, 2),
        ]
        result = replay(trades)

        sell = result.sells[0]
        assert sell.oversold
        assert sell.unmatched_shares == D("3")
        assert sell.cost_basis == D("50")
        assert sell.realized_pnl == D("110")
        assert result.total_shares == D("0")

    def test_strict_mode_raises(self):
        trades = [
            make_trade("BUY", 5, 10, 1),
            make_trade("SELL", 8, 20, 2, trade_id="s1"),
        ]
        with pytest.raises(InsufficientSharesError) as exc_info:
            replay(trades, strict=True)

        assert exc_info.value.trade_id == "s1"
        assert exc_info.value.requested == D("8")
        assert exc_info.value.available == D("5")

    def test_later_buy_does_not_cover_earlier_sell(self):
        trades = [
            make_trade("BUY", 2, 10, 1),
            make_trade("SELL", 4, 20, 2),
            make_trade("BUY", 10, 30, 3),
            make_trade("SELL", 5, 40, 4),
        ]
        result = replay(trades)

        assert result.sells[0].unmatched_shares == D("2")
        assert not result.sells[1].oversold
        assert result.sells[1].cost_basis == D("150")
        assert result.total_shares == D("5")


class TestFifoProperties:
    """
    **Feature: fifo-ledger, Property: Conservation**

    *For any* covered ledger, open shares equal bought minus sold shares and
    cost is neither created nor lost.
    """

    @given(trades=covered_history())
    @settings(max_examples=100)
    def test_share_conservation(self, trades):
        result = replay(trades)

        bought = sum((t.shares for t in trades if t.is_buy), D("0"))
        sold = sum((t.shares for t in trades if t.is_sell), D("0"))
        assert result.total_shares == bought - sold
        assert not result.oversold

    @given(trades=covered_history())
    @settings(max_examples=100)
    def test_cost_conservation(self, trades):
        """Cost consumed by SELLs plus cost still open equals cost bought."""
        result = replay(trades)

        bought = sum((t.shares * t.price_per_share for t in trades if t.is_buy), D("0"))
        consumed = sum((s.cost_basis for s in result.sells), D("0"))
        still_open = sum((lot.remaining * lot.unit_cost for lot in result.lots), D("0"))
        assert consumed + still_open == bought

    @given(trades=covered_history())
    @settings(max_examples=100)
    def test_realized_pnl_identity(self, trades):
        result = replay(trades)
        sells = [t for t in trades if t.is_sell]

        for trade, sell in zip(sells, result.sells):
            proceeds = trade.shares * trade.price_per_share - trade.fee
            assert sell.realized_pnl == proceeds - sell.cost_basis

    @given(trades=covered_history())
    @settings(max_examples=50)
    def test_replay_is_deterministic(self, trades):
        assert replay(trades) == replay(trades)

    @given(trades=covered_history())
    @settings(max_examples=50)
    def test_lots_stay_in_date_order(self, trades):
        lots = replay(trades).lots

        assert all(lot.remaining > 0 for lot in lots)
        assert [lot.opened_at for lot in lots] == sorted(lot.opened_at for lot in lots)
