"""SQLite-backed local store for the six Unmatch tables.

The store offers the primitives everything else is built from: read-all,
insert, delete-all and an exclusive transaction whose statements commit
together or not at all. One process-wide lock serializes writers, so an
import in flight cannot interleave with a live write or a second import.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence

from unmatch.errors import StorageError

logger = logging.getLogger(__name__)

# Underlying table names in the fixed delete order.
TABLES: tuple[str, ...] = (
    "user_profile",
    "urge_event",
    "daily_checkin",
    "progress",
    "content_progress",
    "subscription_state",
)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_profile (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    locale TEXT NOT NULL,
    notification_style TEXT NOT NULL,
    plan_selected TEXT,
    goal_type TEXT NOT NULL,
    spending_budget_weekly REAL,
    spending_budget_daily REAL,
    spending_limit_mode TEXT
);

CREATE TABLE IF NOT EXISTS urge_event (
    id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    from_screen TEXT NOT NULL,
    urge_level INTEGER NOT NULL,
    protocol_completed INTEGER NOT NULL DEFAULT 0,
    urge_kind TEXT NOT NULL DEFAULT 'swipe',
    action_type TEXT,
    action_id TEXT,
    outcome TEXT,
    trigger_tag TEXT,
    spend_category TEXT,
    spend_item_type TEXT,
    spend_amount REAL
);
CREATE INDEX IF NOT EXISTS idx_urge_event_started_at ON urge_event(started_at);

CREATE TABLE IF NOT EXISTS daily_checkin (
    id TEXT PRIMARY KEY,
    date_local TEXT NOT NULL UNIQUE,
    mood INTEGER NOT NULL,
    fatigue INTEGER NOT NULL,
    urge INTEGER NOT NULL,
    note TEXT,
    opened_at_night INTEGER,
    spent_today INTEGER,
    spent_amount REAL
);

CREATE TABLE IF NOT EXISTS progress (
    date_local TEXT PRIMARY KEY,
    streak_current INTEGER NOT NULL DEFAULT 0,
    resist_count_total INTEGER NOT NULL DEFAULT 0,
    rank_level INTEGER NOT NULL DEFAULT 1,
    last_success_date TEXT,
    spend_avoided_count_total INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS content_progress (
    content_id TEXT PRIMARY KEY,
    completed_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subscription_state (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    product_id TEXT,
    period TEXT,
    started_at TEXT,
    expires_at TEXT
);
"""

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# One lock per database file, shared by every LocalStore opened on it.
_LOCKS: dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        if key not in _LOCKS:
            _LOCKS[key] = threading.RLock()
        return _LOCKS[key]


def _connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(db_path), timeout=5.0, isolation_level=None, check_same_thread=False
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    return conn


def _row_dicts(rows: Sequence[sqlite3.Row]) -> list[dict[str, Any]]:
    return [dict(r) for r in rows]


class Transaction:
    """Write handle valid only inside ``LocalStore.exclusive_transaction``."""

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        self._store._run(sql, params)

    def insert(self, table: str, row: Mapping[str, Any], replace: bool = False) -> None:
        self._store._insert(table, row, replace)

    def delete_all(self, table: str) -> None:
        self._store._delete_all(table)


class LocalStore:
    """Transactional row storage over one SQLite file."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._lock = _lock_for(self.db_path)
        self._in_transaction = False
        self._columns: dict[str, tuple[str, ...]] = {}
        try:
            self._conn = _connect(self.db_path)
            self._conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise StorageError(f"Could not open store at {self.db_path}: {e}") from e

    # ── Lifecycle ─────────────────────────────────────────────

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> LocalStore:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ── Reads ─────────────────────────────────────────────────

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._lock:
            try:
                return _row_dicts(self._conn.execute(sql, tuple(params)).fetchall())
            except (sqlite3.Error, OverflowError) as e:
                raise StorageError(f"Read failed: {e}") from e

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def read_all(self, table: str) -> list[dict[str, Any]]:
        """Every row and column of *table*, in insertion order."""
        self._check_table(table)
        return self.query(f"SELECT * FROM {table} ORDER BY rowid ASC")

    def columns(self, table: str) -> tuple[str, ...]:
        self._check_table(table)
        if table not in self._columns:
            rows = self.query(f"PRAGMA table_info({table})")
            self._columns[table] = tuple(r["name"] for r in rows)
        return self._columns[table]

    # ── Single-statement writes ───────────────────────────────

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Run one write statement; it commits on its own unless a transaction is open."""
        with self._lock:
            self._run(sql, params)

    def insert(self, table: str, row: Mapping[str, Any], replace: bool = False) -> None:
        with self._lock:
            self._insert(table, row, replace)

    def delete_all(self, table: str) -> None:
        with self._lock:
            self._delete_all(table)

    # ── Transactions ──────────────────────────────────────────

    @contextmanager
    def exclusive_transaction(self) -> Iterator[Transaction]:
        """All statements inside commit together or not at all.

        Any exception rolls back and is re-raised. A failed rollback raises
        StorageError chained to the original failure.
        """
        with self._lock:
            if self._in_transaction:
                raise StorageError("An exclusive transaction is already in progress")
            try:
                self._conn.execute("BEGIN EXCLUSIVE")
            except sqlite3.Error as e:
                raise StorageError(f"Could not begin transaction: {e}") from e
            self._in_transaction = True
            try:
                yield Transaction(self)
            except BaseException as exc:
                self._rollback(exc)
                raise
            else:
                try:
                    self._conn.execute("COMMIT")
                except sqlite3.Error as e:
                    self._rollback(e)
                    raise StorageError(f"Commit failed: {e}") from e
            finally:
                self._in_transaction = False

    @contextmanager
    def read_transaction(self) -> Iterator[LocalStore]:
        """Reads inside all see the database as of one point in time.

        Inside an open exclusive transaction this is a no-op.
        """
        with self._lock:
            if self._in_transaction:
                yield self
                return
            try:
                self._conn.execute("BEGIN")
            except sqlite3.Error as e:
                raise StorageError(f"Could not begin transaction: {e}") from e
            self._in_transaction = True
            try:
                yield self
            except BaseException as exc:
                self._rollback(exc)
                raise
            else:
                try:
                    self._conn.execute("COMMIT")
                except sqlite3.Error as e:
                    self._rollback(e)
                    raise StorageError(f"Commit failed: {e}") from e
            finally:
                self._in_transaction = False

    def _rollback(self, cause: BaseException) -> None:
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error("Rollback failed after %s: %s", type(cause).__name__, e)
            raise StorageError(f"Rollback failed: {e}") from cause
        logger.warning("Transaction rolled back after %s", type(cause).__name__)

    # ── Internals (caller holds the lock) ─────────────────────

    def _run(self, sql: str, params: Sequence[Any]) -> None:
        try:
            self._conn.execute(sql, tuple(params))
        except (sqlite3.Error, OverflowError) as e:
            raise StorageError(f"Write failed: {e}") from e

    def _insert(self, table: str, row: Mapping[str, Any], replace: bool) -> None:
        cols = list(row.keys())
        if not cols:
            raise StorageError(f"Cannot insert an empty row into {table}")
        self._check_columns(table, cols)
        verb = "INSERT OR REPLACE" if replace else "INSERT"
        placeholders = ", ".join("?" for _ in cols)
        sql = f"{verb} INTO {table} ({', '.join(cols)}) VALUES ({placeholders})"
        self._run(sql, [row[c] for c in cols])

    def _delete_all(self, table: str) -> None:
        self._check_table(table)
        self._run(f"DELETE FROM {table}", ())

    def _check_table(self, table: str) -> None:
        if table not in TABLES:
            raise StorageError(f"Unknown table: {table!r}")

    def _check_columns(self, table: str, cols: Sequence[str]) -> None:
        known = self.columns(table)
        for c in cols:
            if not isinstance(c, str) or not _IDENTIFIER.match(c) or c not in known:
                raise StorageError(f"Unknown column {c!r} for table {table}")


def delete_all_data(store: LocalStore) -> None:
    """Remove every row from every table in one transaction."""
    with store.exclusive_transaction() as txn:
        for table in TABLES:
            txn.delete_all(table)
    logger.info("All local data deleted")
