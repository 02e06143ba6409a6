"""Tests for recording market prices on positions."""

import tempfile
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from swingtrack.db.store import LedgerStore
from swingtrack.engine.recalc import PositionEngine
from swingtrack.errors import TransactionConflictError
from swingtrack.services.prices import PriceQuote, apply_quotes
from swingtrack.services.trades import TradeService

D = Decimal

NOW = datetime(2024, 3, 1, 16, 0)


@pytest.fixture
def service():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield TradeService(LedgerStore(Path(tmpdir) / "test.db"))


def buy(service, ticker, shares, price, fee="0", user="u1"):
    return service.add_trade(
        user,
        {
            "ticker": ticker,
            "action": "BUY",
            "shares": shares,
            "price_per_share": price,
            "fee": fee,
            "date": datetime(2024, 1, 2),
        },
    )


class TestPriceQuote:
    def test_normalizes_ticker_and_timezone(self):
        quote = PriceQuote(
            ticker=" acme ",
            price="10",
            timestamp=datetime(2024, 1, 1, 12, tzinfo=timezone(timedelta(hours=2))),
        )
        assert quote.ticker == "ACME"
        assert quote.timestamp == datetime(2024, 1, 1, 10)

    @pytest.mark.parametrize("price", ["0", "-1"])
    def test_rejects_non_positive_price(self, price):
        with pytest.raises(PydanticValidationError):
            PriceQuote(ticker="ACME", price=price)


class TestApplyQuotes:
    def test_writes_price_fields(self, service):
        buy(service, "ACME", "10", "10", fee="5")

        updated = apply_quotes(
            service.store, "u1", [PriceQuote(ticker="ACME", price="12", timestamp=NOW)]
        )

        assert len(updated) == 1
        stored = service.get_position("u1", "ACME")
        assert stored.current_price == D("12")
        assert stored.last_price_update == NOW
        assert stored.unrealized_pnl == D("15")
        assert updated[0].model_dump() == stored.model_dump()

    def test_latest_quote_wins(self, service):
        buy(service, "ACME", "1", "10")
        quotes = [
            PriceQuote(ticker="ACME", price="11", timestamp=NOW),
            PriceQuote(ticker="ACME", price="9", timestamp=NOW - timedelta(hours=1)),
        ]

        apply_quotes(service.store, "u1", quotes)

        assert service.get_position("u1", "ACME").current_price == D("11")

    def test_ignores_symbols_without_position(self, service):
        buy(service, "ACME", "1", "10")

        updated = apply_quotes(
            service.store, "u1", [PriceQuote(ticker="OTHER", price="5", timestamp=NOW)]
        )

        assert updated == []
        assert service.get_position("u1", "ACME").current_price is None

    def test_scoped_to_user(self, service):
        buy(service, "ACME", "1", "10", user="other")

        assert apply_quotes(
            service.store, "u1", [PriceQuote(ticker="ACME", price="5", timestamp=NOW)]
        ) == []
        assert service.get_position("other", "ACME").current_price is None

    def test_recalculation_keeps_price_fields(self, service):
        buy(service, "ACME", "10", "10")
        apply_quotes(service.store, "u1", [PriceQuote(ticker="ACME", price="12", timestamp=NOW)])

        buy(service, "ACME", "10", "14")
        position = service.get_position("u1", "ACME")

        assert position.total_shares == D("20")
        assert position.current_price == D("12")
        assert position.last_price_update == NOW
        # Paper P&L is refreshed by the next quote, not by recalculation.
        assert position.unrealized_pnl == D("20")


class TestQuoteConflicts:
    def _locked_for(self, store, failures):
        real = store.transaction
        calls = {"count": 0}

        @contextmanager
        def transaction():
            calls["count"] += 1
            if calls["count"] <= failures:
                raise TransactionConflictError("database is locked")
            with real() as conn:
                yield conn

        return transaction, calls

    def test_retried_until_written(self, service):
        buy(service, "ACME", "10", "10")
        store = service.store
        transaction, calls = self._locked_for(store, failures=2)
        engine = PositionEngine(store, max_retries=3, retry_backoff=0)

        with patch.object(store, "transaction", transaction):
            updated = apply_quotes(
                store, "u1", [PriceQuote(ticker="ACME", price="12", timestamp=NOW)], engine=engine
            )

        assert calls["count"] == 3
        assert [p.current_price for p in updated] == [D("12")]
        assert service.get_position("u1", "ACME").current_price == D("12")

    def test_surfaces_after_retries(self, service):
        buy(service, "ACME", "10", "10")
        store = service.store
        transaction, calls = self._locked_for(store, failures=5)
        engine = PositionEngine(store, max_retries=2, retry_backoff=0)

        with patch.object(store, "transaction", transaction):
            with pytest.raises(TransactionConflictError):
                apply_quotes(
                    store, "u1", [PriceQuote(ticker="ACME", price="12", timestamp=NOW)], engine=engine
                )

        assert calls["count"] == 2
        assert service.get_position("u1", "ACME").current_price is None
