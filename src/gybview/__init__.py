"""Read-only browser for Got Your Back (GYB) mail archives."""

from .accounts import AccountRegistry
from .enrich import EnrichedMessage, EnrichmentStatus, MessageEnricher, locate
from .errors import (
    AccountNotFound,
    ContentCorrupted,
    FileUnavailable,
    GybViewError,
    InvalidInput,
    NoAccountsAvailable,
    RecordNotFound,
    StoreIntegrityViolation,
)
from .parsing import ParsedMessage, parse_message
from .queries import MessagePage, MessageQueries, StoredMessage, SystemInfo
from .store import ArchiveSession

__all__ = [
    "AccountNotFound",
    "AccountRegistry",
    "ArchiveSession",
    "ContentCorrupted",
    "EnrichedMessage",
    "EnrichmentStatus",
    "FileUnavailable",
    "GybViewError",
    "InvalidInput",
    "MessageEnricher",
    "MessagePage",
    "MessageQueries",
    "NoAccountsAvailable",
    "ParsedMessage",
    "RecordNotFound",
    "StoreIntegrityViolation",
    "StoredMessage",
    "SystemInfo",
    "locate",
    "parse_message",
]
