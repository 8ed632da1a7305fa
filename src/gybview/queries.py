"""Label, message, and sender queries against the current account's store."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Literal

from .accounts import AccountRegistry
from .errors import InvalidInput, RecordNotFound
from .store import ArchiveSession

logger = logging.getLogger(__name__)

SortField = Literal["date", "from", "subject"]
SortOrder = Literal["asc", "desc"]
SORT_FIELDS = ("date", "from", "subject")
SORT_ORDERS = ("asc", "desc")

MIN_SENDER_QUERY = 2
MAX_SENDER_RESULTS = 10
UNKNOWN = "Unknown"


@dataclass
class StoredMessage:
    """A message row as stored, with its UID and labels."""
    message_num: int
    message_filename: str
    message_internaldate: str | None
    uid: str
    labels: list[str] = field(default_factory=list)
    account: str | None = None

    def to_dict(self) -> dict:
        d = asdict(self)
        del d["account"]
        return d


@dataclass
class MessagePage:
    """One page of a label listing."""
    messages: list[StoredMessage]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


@dataclass
class SystemInfo:
    email_address: str
    db_version: str
    total_messages: int
    label_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "emailAddress": self.email_address,
            "dbVersion": self.db_version,
            "totalMessages": self.total_messages,
            "labelCounts": self.label_counts,
        }


def order_by_clause(sort_field: str, sort_order: str) -> str:
    """ORDER BY for a label listing.

    Only the receipt date is indexed in the store; `from` and `subject`
    live in the raw files, so those sorts also order by receipt date.
    """
    if sort_field not in SORT_FIELDS:
        raise InvalidInput(f"Invalid sort field: {sort_field!r} (expected one of {', '.join(SORT_FIELDS)})")
    order = sort_order.lower() if isinstance(sort_order, str) else sort_order
    if order not in SORT_ORDERS:
        raise InvalidInput(f"Invalid sort order: {sort_order!r} (expected asc or desc)")
    direction = order.upper()
    return f"m.message_internaldate {direction}, m.message_num {direction}"


class MessageQueries:
    """Read-only queries. Each call runs against the current account,
    selecting the default account first if none is open."""

    def __init__(self, session: ArchiveSession, registry: AccountRegistry | None = None):
        self.session = session
        self.registry = registry or AccountRegistry(session)

    def list_labels(self) -> list[str]:
        with self.session.lock:
            self.registry.ensure_selected()
            rows = self.session.execute("SELECT DISTINCT label FROM labels ORDER BY label")
        return [row["label"] for row in rows]

    def list_by_label(
        self,
        label: str,
        page: int = 1,
        page_size: int = 20,
        sort_field: SortField = "date",
        sort_order: SortOrder = "desc",
    ) -> MessagePage:
        """Page of messages carrying `label`, plus the label's total count.

        Messages without a UID are not listed.
        """
        if not label:
            raise InvalidInput("Label parameter is required")
        if not isinstance(page, int) or page < 1:
            raise InvalidInput(f"page must be >= 1, got {page!r}")
        if not isinstance(page_size, int) or page_size < 1:
            raise InvalidInput(f"page_size must be >= 1, got {page_size!r}")
        order_by = order_by_clause(sort_field, sort_order)
        offset = (page - 1) * page_size

        with self.session.lock:
            self.registry.ensure_selected()
            rows = self.session.execute(
                f"""SELECT m.message_num, m.message_filename, m.message_internaldate, u.uid
                    FROM messages m
                    JOIN labels l ON m.message_num = l.message_num
                    JOIN uids u ON m.message_num = u.message_num
                    WHERE l.label = ?
                    ORDER BY {order_by}
                    LIMIT ? OFFSET ?""",
                (label, page_size, offset),
            )
            messages = [self._row_to_message(row, self.session.current_account) for row in rows]
            self._attach_labels(messages)
            total = self._count_by_label(label)
        return MessagePage(messages=messages, total=total, page=page, page_size=page_size)

    def count_by_label(self, label: str) -> int:
        with self.session.lock:
            self.registry.ensure_selected()
            return self._count_by_label(label)

    def _count_by_label(self, label: str) -> int:
        row = self.session.execute_one(
            """SELECT COUNT(*) AS count
               FROM messages m
               JOIN labels l ON m.message_num = l.message_num
               WHERE l.label = ?""",
            (label,),
        )
        return row["count"]

    def get_by_uid(self, uid: str) -> StoredMessage | None:
        """Look up a message by UID. None if no such UID in the current account."""
        if not uid:
            return None
        with self.session.lock:
            self.registry.ensure_selected()
            row = self.session.execute_one(
                """SELECT m.message_num, m.message_filename, m.message_internaldate, u.uid
                   FROM messages m
                   JOIN uids u ON m.message_num = u.message_num
                   WHERE u.uid = ?""",
                (uid,),
            )
            if not row:
                return None
            message = self._row_to_message(row, self.session.current_account)
            self._attach_labels([message])
        return message

    def require_by_uid(self, uid: str) -> StoredMessage:
        """Like `get_by_uid`, raising RecordNotFound instead of returning None."""
        message = self.get_by_uid(uid)
        if message is None:
            raise RecordNotFound(f"Email not found: {uid}")
        return message

    def search_senders(self, prefix: str, limit: int = MAX_SENDER_RESULTS) -> list[str]:
        """Distinct sender addresses containing `prefix` (case-sensitive), sorted.

        Queries shorter than two characters return [] without touching the store.
        """
        if not prefix or len(prefix) < MIN_SENDER_QUERY:
            return []
        limit = max(0, min(limit, MAX_SENDER_RESULTS))
        if not limit:
            return []
        with self.session.lock:
            self.registry.ensure_selected()
            if not self.session.has_column("messages", "from_address"):
                logger.warning(
                    "Store for %s has no messages.from_address column; sender search unavailable",
                    self.session.current_account,
                )
                return []
            rows = self.session.execute(
                """SELECT DISTINCT from_address AS sender
                   FROM messages
                   WHERE from_address IS NOT NULL AND instr(from_address, ?) > 0
                   ORDER BY from_address
                   LIMIT ?""",
                (prefix, limit),
            )
        return [row["sender"] for row in rows]

    def label_counts(self) -> dict[str, int]:
        with self.session.lock:
            self.registry.ensure_selected()
            rows = self.session.execute(
                "SELECT label, COUNT(*) AS count FROM labels GROUP BY label ORDER BY label"
            )
        return {row["label"]: row["count"] for row in rows}

    def system_info(self) -> SystemInfo:
        """Account metadata from the settings table plus message/label counts."""
        with self.session.lock:
            self.registry.ensure_selected()
            email_address = self._setting("email_address")
            db_version = self._setting("db_version")
            total = self.session.execute_one("SELECT COUNT(*) AS count FROM messages")
            counts = self.label_counts()
        logger.debug("System info for %s: %s, v%s", self.session.current_account, email_address, db_version)
        return SystemInfo(
            email_address=email_address,
            db_version=db_version,
            total_messages=total["count"] if total else 0,
            label_counts=counts,
        )

    def _setting(self, name: str) -> str:
        if "settings" not in self.session.guarded_tables:
            return UNKNOWN
        row = self.session.execute_one("SELECT value FROM settings WHERE name = ?", (name,))
        if not row or row["value"] in (None, ""):
            return UNKNOWN
        return str(row["value"])

    def _attach_labels(self, messages: list[StoredMessage]) -> None:
        """Fill in labels for a batch of messages with one query."""
        if not messages:
            return
        by_num: dict[int, list[StoredMessage]] = {}
        for m in messages:
            by_num.setdefault(m.message_num, []).append(m)
        placeholders = ", ".join("?" for _ in by_num)
        rows = self.session.execute(
            f"SELECT message_num, label FROM labels WHERE message_num IN ({placeholders})",
            tuple(by_num),
        )
        for row in rows:
            for m in by_num[row["message_num"]]:
                m.labels.append(row["label"])

    @staticmethod
    def _row_to_message(row, account: str | None) -> StoredMessage:
        internaldate = row["message_internaldate"]
        return StoredMessage(
            message_num=row["message_num"],
            message_filename=row["message_filename"],
            message_internaldate=str(internaldate) if internaldate is not None else None,
            uid=str(row["uid"]),
            account=account,
        )
