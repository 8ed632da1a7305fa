"""Tests for the read-only archive session."""

import logging
import sqlite3

import pytest

from gybview.errors import AccountNotFound, StoreIntegrityViolation
from gybview.store import RECORD_TABLES, ArchiveSession, leading_keyword

from .conftest import build_account


class TestOpenAccount:
    def test_open(self, session, archive):
        assert session.current_account is None
        assert not session.is_open
        session.open_account("alice")
        assert session.current_account == "alice"
        assert session.is_open
        assert session.store_path("alice") == archive / "alice" / "msg-db.sqlite"

    def test_open_is_idempotent(self, session):
        session.open_account("alice")
        conn = session.conn
        session.open_account("alice")
        assert session.conn is conn

    def test_switch_replaces_connection(self, session):
        session.open_account("alice")
        old = session.conn
        session.open_account("bob")
        assert session.current_account == "bob"
        assert session.conn is not old
        with pytest.raises(sqlite3.ProgrammingError):
            old.execute("SELECT 1")

    def test_missing_account(self, session):
        with pytest.raises(AccountNotFound):
            session.open_account("nope")
        assert session.current_account is None

    def test_failed_open_keeps_previous(self, session):
        session.open_account("alice")
        with pytest.raises(AccountNotFound):
            session.open_account("not-an-account")
        assert session.current_account == "alice"
        assert session.execute_one("SELECT COUNT(*) AS n FROM messages")["n"] == 28

    @pytest.mark.parametrize("name", ["", ".", "..", "../alice", "alice/../bob"])
    def test_path_like_ids_rejected(self, session, name):
        with pytest.raises(AccountNotFound):
            session.open_account(name)

    def test_close_is_idempotent(self, session):
        session.open_account("alice")
        session.close()
        session.close()
        assert session.current_account is None
        assert not session.is_open
        with pytest.raises(RuntimeError):
            session.conn

    def test_context_manager_closes(self, archive):
        with ArchiveSession(archive) as s:
            s.open_account("bob")
            assert s.is_open
        assert not s.is_open

    def test_foreign_keys_enabled(self, session):
        session.open_account("alice")
        assert session.execute_one("PRAGMA foreign_keys")[0] == 1

    def test_all_record_tables_guarded(self, session):
        session.open_account("alice")
        assert session.guarded_tables == frozenset(RECORD_TABLES)

    def test_missing_table_logs_and_opens(self, tmp_path, caplog):
        schema = """
            CREATE TABLE messages (message_num INTEGER PRIMARY KEY, message_filename TEXT,
                                   message_internaldate TIMESTAMP);
            CREATE TABLE labels (message_num INTEGER, label TEXT);
            CREATE TABLE uids (message_num INTEGER, uid TEXT PRIMARY KEY);
        """
        build_account(tmp_path, "old", [], schema=schema)
        s = ArchiveSession(tmp_path)
        with caplog.at_level(logging.WARNING, logger="gybview.store"):
            s.open_account("old")
        assert s.current_account == "old"
        assert "settings" not in s.guarded_tables
        assert any("settings" in r.getMessage() for r in caplog.records)
        s.close()


class TestReadOnly:
    @pytest.mark.parametrize("sql,params", [
        ("INSERT INTO messages (message_num, message_filename) VALUES (?, ?)", (999, "x.eml")),
        ("UPDATE messages SET message_filename = ? WHERE message_num = 1", ("x.eml",)),
        ("DELETE FROM messages", ()),
        ("INSERT INTO labels (message_num, label) VALUES (?, ?)", (1, "Hacked")),
        ("DELETE FROM labels WHERE label = ?", ("INBOX",)),
        ("UPDATE uids SET uid = ? WHERE message_num = 1", ("zzz",)),
        ("REPLACE INTO settings (name, value) VALUES (?, ?)", ("db_version", "99")),
        ("DROP TABLE labels", ()),
        ("CREATE TEMP TABLE scratch (x)", ()),
        ("  -- sneaky\n  delete from uids", ()),
    ])
    def test_writes_blocked_before_execute(self, session, sql, params):
        session.open_account("alice")
        with pytest.raises(StoreIntegrityViolation):
            session.execute(sql, params)
        assert session.execute_one("SELECT COUNT(*) AS n FROM messages")["n"] == 28
        assert session.execute_one("SELECT COUNT(*) AS n FROM labels WHERE label = 'INBOX'")["n"] == 25

    @pytest.mark.parametrize("table", ["messages", "labels", "uids", "settings"])
    def test_cte_delete_blocked_by_authorizer(self, session, table):
        session.open_account("alice")
        with pytest.raises(StoreIntegrityViolation):
            session.execute(f"WITH doomed AS (SELECT 1) DELETE FROM {table}")
        assert session.execute_one(f"SELECT COUNT(*) AS n FROM {table}")["n"] > 0

    def test_raw_connection_write_denied(self, session):
        session.open_account("alice")
        with pytest.raises(sqlite3.DatabaseError):
            session.conn.execute("DELETE FROM messages")
        with pytest.raises(sqlite3.DatabaseError):
            session.conn.execute("CREATE TEMP TABLE scratch (x)")

    def test_cannot_lift_query_only(self, session):
        session.open_account("alice")
        with pytest.raises(StoreIntegrityViolation):
            session.execute("PRAGMA query_only = OFF")
        assert session.execute_one("PRAGMA query_only")[0] == 1

    def test_violation_logged_critical(self, session, caplog):
        session.open_account("alice")
        with caplog.at_level(logging.CRITICAL, logger="gybview.store"):
            with pytest.raises(StoreIntegrityViolation):
                session.execute("DELETE FROM messages")
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    def test_session_usable_after_violation(self, session):
        session.open_account("alice")
        with pytest.raises(StoreIntegrityViolation):
            session.execute("WITH x AS (SELECT 1) UPDATE labels SET label = 'x'")
        assert session.execute_one("SELECT COUNT(*) AS n FROM uids")["n"] == 27

    def test_store_mtime_unchanged(self, session, archive):
        store = archive / "alice" / "msg-db.sqlite"
        before = store.stat().st_mtime_ns
        session.open_account("alice")
        session.execute("SELECT * FROM messages")
        session.execute("SELECT DISTINCT label FROM labels ORDER BY label")
        for sql in ("DELETE FROM messages", "WITH x AS (SELECT 1) INSERT INTO labels VALUES (1, 'y')"):
            with pytest.raises(StoreIntegrityViolation):
                session.execute(sql)
        session.open_account("bob")
        session.open_account("alice")
        session.close()
        assert store.stat().st_mtime_ns == before
        assert not (archive / "alice" / "msg-db.sqlite-journal").exists()
        assert not (archive / "alice" / "msg-db.sqlite-wal").exists()


class TestHelpers:
    @pytest.mark.parametrize("sql,keyword", [
        ("SELECT 1", "SELECT"),
        ("  select 1", "SELECT"),
        ("-- comment\nDELETE FROM x", "DELETE"),
        ("/* block */ insert into x values (1)", "INSERT"),
        ("WITH a AS (SELECT 1) SELECT * FROM a", "WITH"),
        ("", ""),
    ])
    def test_leading_keyword(self, sql, keyword):
        assert leading_keyword(sql) == keyword

    def test_has_column(self, session):
        session.open_account("alice")
        assert session.has_column("messages", "from_address")
        assert not session.has_column("messages", "subject")
        with pytest.raises(ValueError):
            session.has_column("sqlite_master", "name")
