"""Read-only connection to one account's exported message store."""

import logging
import re
import sqlite3
import threading
from pathlib import Path

from .errors import AccountNotFound, StoreIntegrityViolation

logger = logging.getLogger(__name__)

STORE_FILENAME = "msg-db.sqlite"
RECORD_TABLES = ("messages", "labels", "uids", "settings")

# Leading keywords rejected before a statement ever reaches SQLite
WRITE_KEYWORDS = frozenset({
    "ALTER", "ATTACH", "CREATE", "DELETE", "DETACH", "DROP",
    "INSERT", "REINDEX", "REPLACE", "UPDATE", "VACUUM",
})

# Authorizer actions denied regardless of table
SCHEMA_ACTIONS = frozenset(
    getattr(sqlite3, name) for name in (
        "SQLITE_ALTER_TABLE", "SQLITE_ATTACH", "SQLITE_DETACH",
        "SQLITE_CREATE_INDEX", "SQLITE_CREATE_TABLE", "SQLITE_CREATE_TEMP_INDEX",
        "SQLITE_CREATE_TEMP_TABLE", "SQLITE_CREATE_TEMP_TRIGGER", "SQLITE_CREATE_TEMP_VIEW",
        "SQLITE_CREATE_TRIGGER", "SQLITE_CREATE_VIEW", "SQLITE_CREATE_VTABLE",
        "SQLITE_DROP_INDEX", "SQLITE_DROP_TABLE", "SQLITE_DROP_TEMP_INDEX",
        "SQLITE_DROP_TEMP_TABLE", "SQLITE_DROP_TEMP_TRIGGER", "SQLITE_DROP_TEMP_VIEW",
        "SQLITE_DROP_TRIGGER", "SQLITE_DROP_VIEW", "SQLITE_DROP_VTABLE",
        "SQLITE_REINDEX",
    )
    if hasattr(sqlite3, name)
)
ROW_WRITE_ACTIONS = frozenset({sqlite3.SQLITE_INSERT, sqlite3.SQLITE_UPDATE, sqlite3.SQLITE_DELETE})

# Pragmas that must not be reassigned once the guards are in place
LOCKED_PRAGMAS = frozenset({"query_only", "writable_schema", "journal_mode", "foreign_keys"})

_LEADING_KEYWORD = re.compile(r"^\s*(?:(?:--[^\n]*(?:\n|$)|/\*.*?\*/)\s*)*(\w+)", re.DOTALL)


def leading_keyword(sql: str) -> str:
    """First SQL keyword of a statement, skipping whitespace and comments."""
    m = _LEADING_KEYWORD.match(sql)
    return m.group(1).upper() if m else ""


class ArchiveSession:
    """Owns the single read-only store connection and the current account.

    `open_account` and `close` are the only state transitions. Every
    transition and every query runs under one re-entrant lock, so an
    account switch never interleaves with a query on the old connection.
    """

    def __init__(self, accounts_dir: str | Path):
        self.accounts_dir = Path(accounts_dir)
        self._conn: sqlite3.Connection | None = None
        self._account: str | None = None
        self._guarded: frozenset[str] = frozenset()
        self._blocked: str | None = None
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def current_account(self) -> str | None:
        return self._account

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def guarded_tables(self) -> frozenset[str]:
        return self._guarded

    @property
    def conn(self) -> sqlite3.Connection:
        if not self._conn:
            raise RuntimeError("Not connected")
        return self._conn

    def store_path(self, account: str) -> Path:
        """Path of an account's store file (no existence check)."""
        return self.accounts_dir / account / STORE_FILENAME

    def account_dir(self, account: str) -> Path:
        return self.accounts_dir / account

    def open_account(self, account: str) -> None:
        """Make `account` the current account.

        No-op if it is already current and the connection answers. A failed
        open leaves the previous account and connection untouched.
        """
        with self._lock:
            if account == self._account and self._healthy():
                return
            if not account or "/" in account or "\\" in account or account in (".", ".."):
                raise AccountNotFound(account)
            path = self.store_path(account)
            if not path.is_file():
                raise AccountNotFound(account)

            conn, guarded = self._connect(path)
            self._close_locked()
            self._conn = conn
            self._guarded = guarded
            self._account = account
            logger.info("Opened account %s read-only (%s)", account, path)

    def close(self) -> None:
        """Release the connection and clear the current account. Idempotent."""
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        if self._conn:
            self._conn.close()
            logger.debug("Closed account %s", self._account)
        self._conn = None
        self._account = None
        self._guarded = frozenset()
        self._blocked = None

    def _healthy(self) -> bool:
        if not self._conn:
            return False
        try:
            self._conn.execute("SELECT 1").fetchone()
        except sqlite3.Error:
            return False
        return True

    def _connect(self, path: Path) -> tuple[sqlite3.Connection, frozenset[str]]:
        """Open `path` read-only and install the write guards."""
        uri = f"{path.resolve().as_uri()}?mode=ro"
        conn = sqlite3.connect(uri, uri=True, timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            guarded = self._install_guards(conn, path)
            # Blocks temp tables/triggers, which mode=ro alone still permits
            conn.execute("PRAGMA query_only = ON")
            conn.set_authorizer(self._make_authorizer(guarded))
        except sqlite3.Error:
            conn.close()
            raise
        return conn, guarded

    def _install_guards(self, conn: sqlite3.Connection, path: Path) -> frozenset[str]:
        """Pick which record tables the authorizer guards.

        A record table missing from the store is logged and skipped; the
        file-level read-only mode still covers it.
        """
        existing = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        guarded = set()
        for table in RECORD_TABLES:
            if table in existing:
                guarded.add(table)
            else:
                logger.warning("Write guard not installed for table %s in %s: table missing", table, path)
        return frozenset(guarded)

    def _make_authorizer(self, guarded: frozenset[str]):
        def authorizer(action, arg1, arg2, db_name, trigger):
            if action in ROW_WRITE_ACTIONS and arg1 in guarded:
                self._blocked = f"write to {arg1}"
                return sqlite3.SQLITE_DENY
            if action in SCHEMA_ACTIONS:
                self._blocked = "schema change"
                return sqlite3.SQLITE_DENY
            if action == sqlite3.SQLITE_PRAGMA and arg2 is not None and arg1.lower() in LOCKED_PRAGMAS:
                self._blocked = f"pragma {arg1}"
                return sqlite3.SQLITE_DENY
            return sqlite3.SQLITE_OK
        return authorizer

    def execute(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        """Run one read statement and return all rows.

        Raises StoreIntegrityViolation for any statement that would write,
        whether caught by keyword, by the authorizer or by SQLite itself.
        """
        keyword = leading_keyword(sql)
        if keyword in WRITE_KEYWORDS:
            self._violation(sql, f"{keyword} statement")
        with self._lock:
            conn = self.conn
            self._blocked = None
            try:
                return conn.execute(sql, params).fetchall()
            except sqlite3.DatabaseError as e:
                reason = self._blocked
                if reason or "readonly" in str(e) or "read-only" in str(e):
                    self._violation(sql, reason or str(e), e)
                raise
            finally:
                self._blocked = None

    def execute_one(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        rows = self.execute(sql, params)
        return rows[0] if rows else None

    def has_column(self, table: str, column: str) -> bool:
        """Whether `table` in the open store has `column`."""
        if table not in RECORD_TABLES:
            raise ValueError(f"Unknown table: {table}")
        rows = self.execute(f"PRAGMA table_info({table})")
        return any(row["name"] == column for row in rows)

    def _violation(self, sql: str, reason: str, cause: Exception | None = None):
        logger.critical(
            "Blocked write on read-only store (account=%s): %s [%s]",
            self._account, sql.strip()[:200], reason,
        )
        raise StoreIntegrityViolation(sql, reason) from cause

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
