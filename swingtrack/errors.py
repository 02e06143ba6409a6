"""Exception hierarchy for SwingTrack."""

from decimal import Decimal
from typing import Optional


class SwingTrackError(Exception):
    """Base class for all SwingTrack errors."""


class ConfigError(SwingTrackError):
    """Raised when the configuration file cannot be read or is invalid."""


class ValidationError(SwingTrackError, ValueError):
    """Raised for malformed trade input.

    Rejected before anything is written to the ledger.
    """


class NotFoundError(SwingTrackError, LookupError):
    """Raised when a trade or position lookup has no matching row."""


class TransactionConflictError(SwingTrackError):
    """Raised when the store could not serialize a transaction.

    The engine retries these internally and only lets one escape after
    the retry budget is exhausted.
    """


class InsufficientSharesError(SwingTrackError):
    """Raised when a SELL consumes more shares than the open lots hold."""

    def __init__(
        self,
        ticker: str,
        requested: Decimal,
        available: Decimal,
        trade_id: Optional[str] = None,
    ):
        self.ticker = ticker
        self.requested = requested
        self.available = available
        self.trade_id = trade_id
        super().__init__(
            f"Insufficient shares to sell {requested} {ticker}: "
            f"only {available} available"
        )
