"""Exceptions raised by the archive browser."""


class GybViewError(Exception):
    """Base class for all gybview errors."""


class AccountNotFound(GybViewError):
    """No store file exists for the requested account."""

    def __init__(self, account: str):
        super().__init__(f"Account not found: {account}")
        self.account = account


class NoAccountsAvailable(GybViewError):
    """The archive root holds no account with a store file."""

    def __init__(self, accounts_dir=None):
        msg = "No accounts available"
        if accounts_dir is not None:
            msg += f" in {accounts_dir}"
        super().__init__(msg)
        self.accounts_dir = accounts_dir


class InvalidInput(GybViewError):
    """A required parameter is missing or malformed."""


class RecordNotFound(GybViewError):
    """The request was valid but matched no message or file."""


class EnrichmentError(GybViewError):
    """Raw message content could not be turned into a parsed view."""

    def __init__(self, path, reason: str | None = None):
        msg = f"{self.describe}: {path}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.path = path
        self.reason = reason

    describe = "Enrichment failed"


class FileUnavailable(EnrichmentError):
    describe = "EML file is missing or inaccessible"


class ContentCorrupted(EnrichmentError):
    describe = "EML file is corrupted or invalid"


class StoreIntegrityViolation(GybViewError):
    """A write against the read-only store was attempted and blocked."""

    def __init__(self, statement: str, reason: str | None = None):
        msg = f"Write blocked on read-only store: {statement.strip()[:200]}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.statement = statement
        self.reason = reason
