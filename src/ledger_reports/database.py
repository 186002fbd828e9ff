"""SQLite ledger store: users, categories, transactions, delivery log and run locks."""

import sqlite3
import time
from datetime import date, datetime
from pathlib import Path
from typing import Any

from .models import Category, PeriodKind, Transaction, TransactionKind, User


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id        TEXT PRIMARY KEY,
    name      TEXT NOT NULL,
    email     TEXT,
    whatsapp  TEXT     -- raw phone number as typed by the user, NULL if none
);

CREATE TABLE IF NOT EXISTS categories (
    id     TEXT PRIMARY KEY,
    name   TEXT NOT NULL,
    color  TEXT,     -- '#RRGGBB'
    user   TEXT NOT NULL,
    UNIQUE (user, name)
);

CREATE TABLE IF NOT EXISTS transactions (
    id           TEXT PRIMARY KEY,
    description  TEXT,
    amount       REAL NOT NULL,   -- always positive, sign comes from type
    type         TEXT NOT NULL CHECK (type IN ('INCOME', 'EXPENSE')),
    date         TEXT NOT NULL,   -- 'YYYY-MM-DD HH:MM:SS'
    category     TEXT,            -- categories.id
    user         TEXT NOT NULL
);

-- Append-only history of delivered reports, one row per (user, type, period)
CREATE TABLE IF NOT EXISTS reports_sent (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    user             TEXT NOT NULL,
    type             TEXT NOT NULL,   -- 'weekly' | 'monthly'
    period           TEXT NOT NULL,   -- window label
    sent_at          TEXT NOT NULL,
    whatsapp_number  TEXT,
    UNIQUE (user, type, period)
);

-- Leased "run in progress" markers for batch jobs
CREATE TABLE IF NOT EXISTS run_locks (
    name        TEXT PRIMARY KEY,
    holder      TEXT NOT NULL,
    expires_at  REAL NOT NULL   -- unix time
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_tx_user_date ON transactions(user, date);
CREATE INDEX IF NOT EXISTS idx_categories_user ON categories(user);
CREATE INDEX IF NOT EXISTS idx_reports_sent_user ON reports_sent(user);
"""


def to_db_timestamp(value: date | datetime | str) -> str:
    """Normalize a date, datetime or ISO string to the stored timestamp format.

    Aware datetimes are converted to local time first; stored timestamps are
    naive local time with second precision so that string comparison orders them.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.isoformat(sep=" ", timespec="seconds")


class Database:
    """SQLite database wrapper for the ledger."""

    def __init__(self, db_path: str | Path | None = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite file, or None/":memory:" for in-memory DB.
        """
        if db_path is None:
            db_path = ":memory:"
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def init_schema(self) -> None:
        """Create all tables and indexes."""
        conn = self.connect()
        conn.executescript(SCHEMA)
        conn.executescript(INDEXES)
        conn.commit()

    # -------------------------------------------------------------------------
    # Upserts (used by imports and fixtures)
    # -------------------------------------------------------------------------

    def upsert_users(self, items: list[dict[str, Any]]) -> int:
        """Upsert users."""
        conn = self.connect()
        count = 0
        for item in items:
            conn.execute(
                "INSERT OR REPLACE INTO users (id, name, email, whatsapp) VALUES (?, ?, ?, ?)",
                (item["id"], item["name"], item.get("email"), item.get("whatsapp")),
            )
            count += 1
        conn.commit()
        return count

    def upsert_categories(self, items: list[dict[str, Any]]) -> int:
        """Upsert categories. Names are unique per user."""
        conn = self.connect()
        count = 0
        for item in items:
            conn.execute(
                "INSERT OR REPLACE INTO categories (id, name, color, user) VALUES (?, ?, ?, ?)",
                (item["id"], item["name"], item.get("color"), item["userId"]),
            )
            count += 1
        conn.commit()
        return count

    def upsert_transactions(self, items: list[dict[str, Any]]) -> int:
        """Upsert transactions.

        ``date`` may be a date, a datetime or an ISO string; ``type`` is
        "INCOME" or "EXPENSE" (a TransactionKind is accepted too).
        """
        conn = self.connect()
        count = 0
        for item in items:
            kind = TransactionKind(item["type"])
            conn.execute(
                """
                INSERT OR REPLACE INTO transactions
                (id, description, amount, type, date, category, user)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item["id"],
                    item.get("description", ""),
                    float(item["amount"]),
                    kind.value,
                    to_db_timestamp(item["date"]),
                    item.get("categoryId"),
                    item["userId"],
                ),
            )
            count += 1
        conn.commit()
        return count

    # -------------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------------

    def count_table(self, table: str) -> int:
        """Count rows in a table."""
        conn = self.connect()
        row = conn.execute(f"SELECT COUNT(*) as cnt FROM {table}").fetchone()  # noqa: S608
        return row["cnt"]

    def get_user(self, user_id: str) -> User | None:
        conn = self.connect()
        row = conn.execute(
            "SELECT id, name, whatsapp FROM users WHERE id = ?", (user_id,)
        ).fetchone()
        if row is None:
            return None
        return User(id=row["id"], name=row["name"], destination=row["whatsapp"])

    def find_eligible_users(self) -> list[User]:
        """Users with a non-empty WhatsApp number, in insertion order."""
        conn = self.connect()
        rows = conn.execute("""
            SELECT id, name, whatsapp FROM users
            WHERE whatsapp IS NOT NULL AND TRIM(whatsapp) != ''
            ORDER BY rowid
        """).fetchall()
        return [User(id=r["id"], name=r["name"], destination=r["whatsapp"]) for r in rows]

    def find_transactions(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Transaction]:
        """Transactions of one user with start <= date <= end, newest first.

        Categories are resolved; a dangling category id yields None.
        """
        conn = self.connect()
        rows = conn.execute(
            """
            SELECT t.id, t.description, t.amount, t.type, t.date, t.user,
                   c.id as category_id, c.name as category_name, c.color as category_color
            FROM transactions t
            LEFT JOIN categories c ON c.id = t.category
            WHERE t.user = ? AND t.date >= ? AND t.date <= ?
            ORDER BY t.date DESC, t.rowid
            """,
            (user_id, to_db_timestamp(start), to_db_timestamp(end)),
        ).fetchall()

        transactions = []
        for row in rows:
            category = None
            if row["category_id"] is not None:
                category = Category(
                    id=row["category_id"],
                    name=row["category_name"],
                    color=row["category_color"],
                    user_id=row["user"],
                )
            transactions.append(
                Transaction(
                    id=row["id"],
                    description=row["description"] or "",
                    amount=row["amount"],
                    kind=TransactionKind(row["type"]),
                    timestamp=datetime.fromisoformat(row["date"]),
                    user_id=row["user"],
                    category=category,
                )
            )
        return transactions

    # -------------------------------------------------------------------------
    # Delivery log
    # -------------------------------------------------------------------------

    def insert_report_sent(
        self,
        user_id: str,
        kind: PeriodKind,
        period: str,
        sent_at: datetime,
        whatsapp_number: str | None,
    ) -> None:
        """Record a delivered report. Re-sending the same period replaces the row."""
        conn = self.connect()
        conn.execute(
            """
            INSERT OR REPLACE INTO reports_sent
            (user, type, period, sent_at, whatsapp_number)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, kind.value, period, to_db_timestamp(sent_at), whatsapp_number),
        )
        conn.commit()

    def recent_reports_sent(self, limit: int = 50) -> list[dict[str, Any]]:
        conn = self.connect()
        rows = conn.execute(
            """
            SELECT r.user, u.name, r.type, r.period, r.sent_at, r.whatsapp_number
            FROM reports_sent r
            LEFT JOIN users u ON u.id = r.user
            ORDER BY r.sent_at DESC, r.id DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [
            {
                "user_id": row["user"],
                "user_name": row["name"],
                "type": row["type"],
                "period": row["period"],
                "sent_at": row["sent_at"],
                "whatsapp_number": row["whatsapp_number"],
            }
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Run locks
    # -------------------------------------------------------------------------

    def acquire_lock(self, name: str, holder: str, ttl_seconds: float) -> bool:
        """Take the named lease unless someone else holds an unexpired one.

        Returns:
            True if the lease was acquired.

        Raises:
            ValueError: If ttl_seconds is not positive.
        """
        if ttl_seconds <= 0:
            raise ValueError(f"Lock TTL must be positive, got {ttl_seconds}")
        now = time.time()
        conn = self.connect()
        conn.execute(
            "DELETE FROM run_locks WHERE name = ? AND expires_at <= ?", (name, now)
        )
        cursor = conn.execute(
            "INSERT OR IGNORE INTO run_locks (name, holder, expires_at) VALUES (?, ?, ?)",
            (name, holder, now + ttl_seconds),
        )
        conn.commit()
        return cursor.rowcount == 1

    def release_lock(self, name: str, holder: str) -> bool:
        """Release the lease if still held by holder."""
        conn = self.connect()
        cursor = conn.execute(
            "DELETE FROM run_locks WHERE name = ? AND holder = ?", (name, holder)
        )
        conn.commit()
        return cursor.rowcount == 1
