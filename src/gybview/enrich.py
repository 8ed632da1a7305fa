"""Merge stored message metadata with content parsed from the raw .eml file.

Enrichment never fails a request: a missing/unreadable file or unparseable
content yields a placeholder record with the stored labels and UID intact
and a status saying what went wrong.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from .errors import ContentCorrupted, FileUnavailable
from .parsing import ParsedMessage, parse_message
from .queries import StoredMessage
from .store import ArchiveSession

logger = logging.getLogger(__name__)

PLACEHOLDER_SUBJECT = "(Subject not available)"
PLACEHOLDER_FROM = "(Sender not available)"
PLACEHOLDER_TO = "(Recipients not available)"

# Listing rows whose parsed header is empty
NO_SUBJECT = "(No Subject)"
NO_SENDER = "(No Sender)"
NO_RECIPIENTS = "(No Recipients)"


class EnrichmentStatus(str, Enum):
    OK = "ok"
    FILE_UNAVAILABLE = "file_unavailable"
    CONTENT_CORRUPTED = "content_corrupted"


@dataclass
class EnrichedMessage:
    """A stored message plus its parsed view (or the placeholder view)."""
    message: StoredMessage
    parsed: ParsedMessage
    status: EnrichmentStatus = EnrichmentStatus.OK
    original: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is EnrichmentStatus.OK

    def detail(self) -> dict:
        """Full parsed view with the stored labels and UID."""
        d = self.parsed.to_dict()
        d["labels"] = list(self.message.labels)
        d["uid"] = self.message.uid
        return d

    def summary(self) -> dict:
        """Stored row plus subject/from/to, as shown in a listing."""
        d = self.message.to_dict()
        if self.ok:
            d["subject"] = self.parsed.subject or NO_SUBJECT
            d["from"] = self.parsed.from_ or NO_SENDER
            d["to"] = self.parsed.to or NO_RECIPIENTS
        else:
            d["subject"] = self.parsed.subject
            d["from"] = self.parsed.from_
            d["to"] = self.parsed.to
        d["status"] = self.status.value
        return d


def locate(accounts_dir: str | Path, account: str, message_filename: str) -> Path:
    """Path of a message's raw file. No existence check."""
    return Path(accounts_dir) / account / message_filename


def placeholder(message: StoredMessage, status: EnrichmentStatus, error: str | None = None) -> EnrichedMessage:
    return EnrichedMessage(
        message=message,
        parsed=ParsedMessage(
            subject=PLACEHOLDER_SUBJECT,
            from_=PLACEHOLDER_FROM,
            to=PLACEHOLDER_TO,
            date=message.message_internaldate,
            text="",
        ),
        status=status,
        original="",
        error=error,
    )


class MessageEnricher:
    """Reads raw files for stored messages and hands them to a parser."""

    def __init__(
        self,
        session: ArchiveSession,
        parser: Callable[[bytes], ParsedMessage] = parse_message,
        read_timeout: float = 10.0,
    ):
        self.session = session
        self.parser = parser
        self.read_timeout = read_timeout

    def locate(self, message: StoredMessage) -> Path:
        account = message.account or self.session.current_account
        if not account:
            raise FileUnavailable(message.message_filename, "no account selected")
        return locate(self.session.accounts_dir, account, message.message_filename)

    def read_raw(self, message: StoredMessage) -> bytes:
        """Raw bytes of a message's file. Raises FileUnavailable."""
        return self._read(self.locate(message))

    @staticmethod
    def _read(path: Path) -> bytes:
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise FileUnavailable(path, e.strerror or str(e)) from e

    def enrich(self, message: StoredMessage) -> EnrichedMessage:
        try:
            path = self.locate(message)
            raw = self._read(path)
        except FileUnavailable as e:
            return self._unavailable(message, e)
        return self._from_raw(message, path, raw)

    async def enrich_async(self, message: StoredMessage) -> EnrichedMessage:
        """Like `enrich`, with the read and the parse each in a worker thread under `read_timeout`."""
        try:
            path = self.locate(message)
            raw = await asyncio.wait_for(asyncio.to_thread(self._read, path), self.read_timeout)
        except FileUnavailable as e:
            return self._unavailable(message, e)
        except asyncio.TimeoutError:
            return self._unavailable(message, FileUnavailable(path, f"read timed out after {self.read_timeout}s"))
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._from_raw, message, path, raw), self.read_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Parsing %s (uid %s) timed out after %ss", path, message.uid, self.read_timeout)
            return placeholder(message, EnrichmentStatus.CONTENT_CORRUPTED, ContentCorrupted.describe)

    async def enrich_page(self, messages: list[StoredMessage]) -> list[EnrichedMessage]:
        """Enrich messages concurrently; one bad message never fails the rest.

        Cancelling the caller cancels the outstanding reads. The session is
        not touched.
        """
        results = await asyncio.gather(
            *(self.enrich_async(m) for m in messages),
            return_exceptions=True,
        )
        enriched = []
        for message, result in zip(messages, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.warning("Enrichment of uid %s failed: %r", message.uid, result)
                result = placeholder(message, EnrichmentStatus.CONTENT_CORRUPTED, ContentCorrupted.describe)
            enriched.append(result)
        return enriched

    def _from_raw(self, message: StoredMessage, path: Path, raw: bytes) -> EnrichedMessage:
        try:
            parsed = self.parser(raw)
        except Exception as e:
            logger.warning("Could not parse %s (uid %s): %s", path, message.uid, e)
            return placeholder(message, EnrichmentStatus.CONTENT_CORRUPTED, ContentCorrupted.describe)
        return EnrichedMessage(
            message=message,
            parsed=parsed,
            status=EnrichmentStatus.OK,
            original=raw.decode("utf-8", errors="replace"),
        )

    def _unavailable(self, message: StoredMessage, error: FileUnavailable) -> EnrichedMessage:
        logger.warning("Raw file unavailable for uid %s: %s", message.uid, error)
        return placeholder(message, EnrichmentStatus.FILE_UNAVAILABLE, FileUnavailable.describe)
