"""SQLite ledger store for SwingTrack."""

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterator, Optional

from swingtrack.errors import TransactionConflictError, ValidationError
from swingtrack.models import Position, Trade, validate_trade

logger = logging.getLogger(__name__)

_CONFLICT_MARKERS = ("database is locked", "database is busy", "database table is locked")


def _dec(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def _text(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _timestamp(value: datetime) -> str:
    # Fixed width so string order matches chronological order.
    return value.isoformat(timespec="microseconds")


def _is_conflict(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


class LedgerStore:
    """SQLite-backed trade ledger and position table.

    Every method accepts an optional ``conn`` so callers can run several
    operations inside one :meth:`transaction`. Without it, reads use a
    short-lived connection and writes open their own transaction.
    """

    REQUIRED_TABLES = ["trades", "positions"]

    def __init__(self, db_path: Path, busy_timeout: float = 5.0):
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
            busy_timeout: Seconds a connection waits on a locked database.
        """
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._ensure_db_dir()
        self._init_schema()

    def _ensure_db_dir(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with manual transaction control."""
        conn = sqlite3.connect(
            self.db_path, timeout=self.busy_timeout, isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        """Initialize database schema on first run."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS trades (
                    id TEXT PRIMARY KEY,
                    sequence INTEGER NOT NULL UNIQUE,
                    user_id TEXT NOT NULL,
                    ticker TEXT NOT NULL,
                    company TEXT NOT NULL DEFAULT '',
                    logo TEXT,
                    currency TEXT NOT NULL DEFAULT 'USD',
                    action TEXT NOT NULL CHECK (action IN ('BUY', 'SELL')),
                    shares TEXT NOT NULL,
                    price_per_share TEXT NOT NULL,
                    fee TEXT NOT NULL,
                    date TEXT NOT NULL,
                    total_value TEXT NOT NULL,
                    total_cost TEXT NOT NULL,
                    cost_basis TEXT,
                    realized_pnl TEXT,
                    inconsistent INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_trades_pair
                ON trades (user_id, ticker, date, sequence)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS positions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    ticker TEXT NOT NULL,
                    company TEXT NOT NULL DEFAULT '',
                    logo TEXT,
                    currency TEXT NOT NULL DEFAULT 'USD',
                    total_shares TEXT NOT NULL,
                    total_cost TEXT NOT NULL,
                    average_price TEXT NOT NULL,
                    inconsistent INTEGER NOT NULL DEFAULT 0,
                    current_price TEXT,
                    last_price_update TEXT,
                    unrealized_pnl TEXT,
                    updated_at TEXT NOT NULL,
                    UNIQUE (user_id, ticker)
                )
            """)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside one write transaction.

        ``BEGIN IMMEDIATE`` takes the database write lock before the first
        read, so two transactions on the same ledger never interleave.
        The block is rolled back if it raises.

        Raises:
            TransactionConflictError: If the lock could not be acquired or
                the commit failed because the database was busy.
        """
        conn = self._get_connection()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                if _is_conflict(exc):
                    raise TransactionConflictError(str(exc)) from exc
                raise
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.OperationalError as exc:
                conn.execute("ROLLBACK")
                if _is_conflict(exc):
                    raise TransactionConflictError(str(exc)) from exc
                raise
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    @contextmanager
    def _use(
        self, conn: Optional[sqlite3.Connection], write: bool = False
    ) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
        elif write:
            with self.transaction() as own:
                yield own
        else:
            own = self._get_connection()
            try:
                yield own
            finally:
                own.close()

    def get_tables(self) -> list[str]:
        """Get list of all tables in the database."""
        with self._use(None) as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            return [row["name"] for row in cursor.fetchall()]

    # ==================== Row mapping ====================

    @staticmethod
    def _row_to_trade(row: sqlite3.Row) -> Trade:
        return Trade(
            id=row["id"],
            sequence=row["sequence"],
            user_id=row["user_id"],
            ticker=row["ticker"],
            company=row["company"],
            logo=row["logo"],
            currency=row["currency"],
            action=row["action"],
            shares=Decimal(row["shares"]),
            price_per_share=Decimal(row["price_per_share"]),
            fee=Decimal(row["fee"]),
            date=datetime.fromisoformat(row["date"]),
            cost_basis=_dec(row["cost_basis"]),
            realized_pnl=_dec(row["realized_pnl"]),
            inconsistent=bool(row["inconsistent"]),
        )

    @staticmethod
    def _row_to_position(row: sqlite3.Row) -> Position:
        last_update = row["last_price_update"]
        return Position(
            id=row["id"],
            user_id=row["user_id"],
            ticker=row["ticker"],
            company=row["company"],
            logo=row["logo"],
            currency=row["currency"],
            total_shares=Decimal(row["total_shares"]),
            total_cost=Decimal(row["total_cost"]),
            average_price=Decimal(row["average_price"]),
            inconsistent=bool(row["inconsistent"]),
            current_price=_dec(row["current_price"]),
            last_price_update=datetime.fromisoformat(last_update) if last_update else None,
            unrealized_pnl=_dec(row["unrealized_pnl"]),
        )

    # ==================== Trades ====================

    def insert(self, trade: Trade, conn: Optional[sqlite3.Connection] = None) -> Trade:
        """Persist a trade.

        Assigns an ID if the trade has none and always assigns a fresh
        insertion sequence. Derived P&L fields are cleared; only the
        recalculation engine writes them.

        Args:
            trade: Trade to insert.
            conn: Optional open transaction.

        Returns:
            The stored trade.

        Raises:
            ValidationError: If the trade breaks a ledger rule or its ID
                is already taken.
        """
        validate_trade(trade)
        trade_id = trade.id or uuid.uuid4().hex
        with self._use(conn, write=True) as db:
            sequence = db.execute(
                "SELECT COALESCE(MAX(sequence), 0) + 1 AS next FROM trades"
            ).fetchone()["next"]
            stored = trade.model_copy(
                update={
                    "id": trade_id,
                    "sequence": sequence,
                    "cost_basis": None,
                    "realized_pnl": None,
                    "inconsistent": False,
                }
            )
            try:
                db.execute(
                    """
                    INSERT INTO trades
                    (id, sequence, user_id, ticker, company, logo, currency, action,
                     shares, price_per_share, fee, date, total_value, total_cost,
                     cost_basis, realized_pnl, inconsistent, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, 0, ?)
                    """,
                    (
                        stored.id,
                        stored.sequence,
                        stored.user_id,
                        stored.ticker,
                        stored.company,
                        stored.logo,
                        stored.currency,
                        stored.action,
                        str(stored.shares),
                        str(stored.price_per_share),
                        str(stored.fee),
                        _timestamp(stored.date),
                        str(stored.total_value),
                        str(stored.total_cost),
                        _timestamp(datetime.now()),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValidationError(f"Trade {trade_id} already exists") from exc
        logger.debug("Inserted %s %s %s (%s)", stored.action, stored.shares, stored.ticker, stored.id)
        return stored

    def delete_by_id(
        self, trade_id: str, user_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """Delete a trade owned by ``user_id``.

        Returns:
            True if a row was removed. False when the trade does not exist
            or belongs to someone else; both cases look the same.
        """
        with self._use(conn, write=True) as db:
            cursor = db.execute(
                "DELETE FROM trades WHERE id = ? AND user_id = ?", (trade_id, user_id)
            )
            return cursor.rowcount > 0

    def get_trade(
        self, trade_id: str, user_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Trade]:
        """Get a trade by ID, scoped to its owner."""
        with self._use(conn) as db:
            row = db.execute(
                "SELECT * FROM trades WHERE id = ? AND user_id = ?", (trade_id, user_id)
            ).fetchone()
            return self._row_to_trade(row) if row else None

    def list_ordered(
        self, user_id: str, ticker: str, conn: Optional[sqlite3.Connection] = None
    ) -> list[Trade]:
        """All trades of a pair in replay order: date, then insertion sequence."""
        with self._use(conn) as db:
            cursor = db.execute(
                """
                SELECT * FROM trades
                WHERE user_id = ? AND ticker = ?
                ORDER BY date ASC, sequence ASC
                """,
                (user_id, ticker.upper()),
            )
            return [self._row_to_trade(row) for row in cursor.fetchall()]

    def list_trades(
        self,
        user_id: str,
        ticker: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Trade]:
        """Get a user's trades, newest first.

        Args:
            user_id: Owning user.
            ticker: Optional symbol filter.
            limit: Maximum number of trades. None returns all.
            offset: Number of trades to skip.
        """
        query = "SELECT * FROM trades WHERE user_id = ?"
        params: list = [user_id]
        if ticker:
            query += " AND ticker = ?"
            params.append(ticker.upper())
        query += " ORDER BY date DESC, sequence DESC"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        elif offset:
            query += " LIMIT -1 OFFSET ?"
            params.append(offset)
        with self._use(conn) as db:
            cursor = db.execute(query, params)
            return [self._row_to_trade(row) for row in cursor.fetchall()]

    def count_trades(
        self,
        user_id: str,
        ticker: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Count a user's trades, optionally for one symbol."""
        query = "SELECT COUNT(*) AS count FROM trades WHERE user_id = ?"
        params: list = [user_id]
        if ticker:
            query += " AND ticker = ?"
            params.append(ticker.upper())
        with self._use(conn) as db:
            return db.execute(query, params).fetchone()["count"]

    def list_tickers(
        self, user_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> list[str]:
        """Symbols the user has trades or a position for."""
        with self._use(conn) as db:
            cursor = db.execute(
                """
                SELECT ticker FROM trades WHERE user_id = ?
                UNION
                SELECT ticker FROM positions WHERE user_id = ?
                ORDER BY ticker
                """,
                (user_id, user_id),
            )
            return [row["ticker"] for row in cursor.fetchall()]

    def update_trade_result(
        self, trade: Trade, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """Write the engine-owned fields of a trade back to its row."""
        with self._use(conn, write=True) as db:
            db.execute(
                """
                UPDATE trades
                SET cost_basis = ?, realized_pnl = ?, inconsistent = ?
                WHERE id = ?
                """,
                (
                    _text(trade.cost_basis),
                    _text(trade.realized_pnl),
                    1 if trade.inconsistent else 0,
                    trade.id,
                ),
            )

    # ==================== Positions ====================

    def get_position(
        self, user_id: str, ticker: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Position]:
        """Get the position for a pair, if one is open."""
        with self._use(conn) as db:
            row = db.execute(
                "SELECT * FROM positions WHERE user_id = ? AND ticker = ?",
                (user_id, ticker.upper()),
            ).fetchone()
            return self._row_to_position(row) if row else None

    def get_positions(
        self, user_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> list[Position]:
        """Get all open positions of a user, ordered by ticker."""
        with self._use(conn) as db:
            cursor = db.execute(
                "SELECT * FROM positions WHERE user_id = ? ORDER BY ticker", (user_id,)
            )
            return [self._row_to_position(row) for row in cursor.fetchall()]

    def upsert_position(
        self, position: Position, conn: Optional[sqlite3.Connection] = None
    ) -> Position:
        """Insert or replace the derived fields of a position.

        The row ID and the price fields survive the replace; they are not
        derived from the ledger.

        Returns:
            The stored position.
        """
        with self._use(conn, write=True) as db:
            db.execute(
                """
                INSERT INTO positions
                (id, user_id, ticker, company, logo, currency,
                 total_shares, total_cost, average_price, inconsistent, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, ticker) DO UPDATE SET
                    company = excluded.company,
                    logo = excluded.logo,
                    currency = excluded.currency,
                    total_shares = excluded.total_shares,
                    total_cost = excluded.total_cost,
                    average_price = excluded.average_price,
                    inconsistent = excluded.inconsistent,
                    updated_at = excluded.updated_at
                """,
                (
                    position.id or uuid.uuid4().hex,
                    position.user_id,
                    position.ticker,
                    position.company,
                    position.logo,
                    position.currency,
                    str(position.total_shares),
                    str(position.total_cost),
                    str(position.average_price),
                    1 if position.inconsistent else 0,
                    _timestamp(datetime.now()),
                ),
            )
            stored = self.get_position(position.user_id, position.ticker, conn=db)
        return stored

    def delete_position(
        self, user_id: str, ticker: str, conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        """Delete the position for a pair.

        Returns:
            True if a row was removed.
        """
        with self._use(conn, write=True) as db:
            cursor = db.execute(
                "DELETE FROM positions WHERE user_id = ? AND ticker = ?",
                (user_id, ticker.upper()),
            )
            return cursor.rowcount > 0

    def update_position_price(
        self,
        user_id: str,
        ticker: str,
        price: Decimal,
        timestamp: datetime,
        unrealized_pnl: Optional[Decimal],
        conn: Optional[sqlite3.Connection] = None,
    ) -> bool:
        """Write a quote onto an open position.

        Returns:
            True if the position exists and was updated.
        """
        with self._use(conn, write=True) as db:
            cursor = db.execute(
                """
                UPDATE positions
                SET current_price = ?, last_price_update = ?, unrealized_pnl = ?
                WHERE user_id = ? AND ticker = ?
                """,
                (
                    str(price),
                    _timestamp(timestamp),
                    _text(unrealized_pnl),
                    user_id,
                    ticker.upper(),
                ),
            )
            return cursor.rowcount > 0

    # ==================== Stats ====================

    def get_stats(self) -> dict:
        """Get database statistics.

        Returns:
            Dictionary with table record counts.
        """
        with self._use(None) as conn:
            stats = {}
            for table in self.REQUIRED_TABLES:
                row = conn.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
                stats[table] = row["count"]
            return stats
