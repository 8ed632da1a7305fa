"""Fixtures building throwaway GYB-style archives."""

import sqlite3
from datetime import datetime, timedelta
from email.message import EmailMessage
from email.utils import format_datetime
from pathlib import Path

import pytest

from gybview.accounts import AccountRegistry
from gybview.enrich import MessageEnricher
from gybview.queries import MessageQueries
from gybview.store import STORE_FILENAME, ArchiveSession

SCHEMA = """
    CREATE TABLE messages (
        message_num INTEGER PRIMARY KEY,
        message_filename TEXT,
        message_internaldate TIMESTAMP,
        from_address TEXT
    );
    CREATE TABLE labels (message_num INTEGER, label TEXT);
    CREATE TABLE uids (message_num INTEGER, uid TEXT PRIMARY KEY);
    CREATE TABLE settings (name TEXT PRIMARY KEY, value TEXT);
"""

BASE_DATE = datetime(2020, 1, 1, 8, 0, 0)
INBOX_COUNT = 25
CORRUPT_BYTES = b"\x00\x01\x02\xff\xfe garbage without any header\n"


def make_eml(subject: str, sender: str, to: str, date: datetime, body: str = "Hello.\n") -> bytes:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to
    msg["Date"] = format_datetime(date)
    msg["Message-ID"] = f"<{abs(hash((subject, sender, date)))}@example.com>"
    msg.set_content(body)
    return msg.as_bytes()


def build_account(
    root: Path,
    name: str,
    messages: list[dict],
    settings: dict[str, str] | None = None,
    schema: str = SCHEMA,
) -> Path:
    """Write an account directory: store file plus raw files.

    Each message dict has num, labels, and optionally uid, date, sender,
    raw (bytes, or None to leave the file missing).
    """
    account_dir = root / name
    account_dir.mkdir(parents=True)
    conn = sqlite3.connect(account_dir / STORE_FILENAME)
    conn.executescript(schema)
    for m in messages:
        filename = m.get("filename", f"{m['date']:%Y/%m/%d}/{m['num']}.eml")
        conn.execute(
            "INSERT INTO messages (message_num, message_filename, message_internaldate, from_address) "
            "VALUES (?, ?, ?, ?)",
            (m["num"], filename, f"{m['date']:%Y-%m-%d %H:%M:%S}", m.get("sender")),
        )
        for label in m["labels"]:
            conn.execute("INSERT INTO labels (message_num, label) VALUES (?, ?)", (m["num"], label))
        if m.get("uid"):
            conn.execute("INSERT INTO uids (message_num, uid) VALUES (?, ?)", (m["num"], m["uid"]))
        raw = m.get("raw")
        if raw is not None:
            path = account_dir / filename
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(raw)
    for key, value in (settings or {}).items():
        conn.execute("INSERT INTO settings (name, value) VALUES (?, ?)", (key, value))
    conn.commit()
    conn.close()
    return account_dir


def alice_messages() -> list[dict]:
    messages = []
    for n in range(1, INBOX_COUNT + 1):
        date = BASE_DATE + timedelta(hours=n)
        sender = f"sender{n % 3}@example.com"
        labels = ["INBOX"]
        if n % 5 == 0:
            labels.append("Work")
        messages.append({
            "num": n,
            "uid": f"a{n:03d}",
            "date": date,
            "sender": sender,
            "labels": labels,
            "raw": make_eml(f"Message {n}", f"Sender {n % 3} <{sender}>", "alice@example.com", date),
        })
    date = BASE_DATE + timedelta(days=2)
    messages.append({
        "num": 26, "uid": "missing", "date": date, "sender": "Ghost@Example.com",
        "labels": ["Sent", "Important"], "raw": None,
    })
    messages.append({
        "num": 27, "uid": "corrupt", "date": date + timedelta(hours=1), "sender": "broken@example.com",
        "labels": ["Drafts"], "raw": CORRUPT_BYTES,
    })
    messages.append({
        "num": 28, "uid": None, "date": date + timedelta(hours=2), "sender": "nouid@example.com",
        "labels": ["Orphan"],
        "raw": make_eml("No UID", "nouid@example.com", "alice@example.com", date),
    })
    return messages


def bob_messages() -> list[dict]:
    messages = []
    for n in range(1, 4):
        date = BASE_DATE + timedelta(days=n)
        messages.append({
            "num": n,
            "uid": f"b{n:03d}",
            "date": date,
            "sender": "carol@example.org",
            "labels": ["INBOX", "Important"] if n == 1 else ["Personal"],
            "raw": make_eml(f"Bob {n}", "carol@example.org", "bob@example.com", date),
        })
    return messages


@pytest.fixture
def archive(tmp_path) -> Path:
    """Archive root with accounts alice (25 INBOX + broken messages) and bob."""
    root = tmp_path / "accounts"
    build_account(root, "alice", alice_messages(), {"email_address": "alice@example.com", "db_version": "6"})
    build_account(root, "bob", bob_messages(), {"email_address": "bob@example.com", "db_version": "5"})
    (root / "not-an-account").mkdir()
    (root / "stray-file.txt").write_text("ignored")
    return root


@pytest.fixture
def session(archive):
    s = ArchiveSession(archive)
    yield s
    s.close()


@pytest.fixture
def registry(session):
    return AccountRegistry(session)


@pytest.fixture
def queries(session, registry):
    return MessageQueries(session, registry)


@pytest.fixture
def enricher(session):
    return MessageEnricher(session, read_timeout=5.0)
