"""Account discovery and selection."""

import logging

from .errors import AccountNotFound, NoAccountsAvailable
from .store import STORE_FILENAME, ArchiveSession

logger = logging.getLogger(__name__)


class AccountRegistry:
    """Accounts are the subdirectories of the archive root holding a store file."""

    def __init__(self, session: ArchiveSession):
        self.session = session

    @property
    def accounts_dir(self):
        return self.session.accounts_dir

    def list_accounts(self) -> list[str]:
        """Account ids, sorted. Empty if the archive root doesn't exist."""
        root = self.accounts_dir
        if not root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in root.iterdir()
            if entry.is_dir() and (entry / STORE_FILENAME).is_file()
        )

    def current_account(self) -> str | None:
        return self.session.current_account

    def ensure_selected(self) -> str:
        """Return the current account, opening the first available one if none is open."""
        with self.session.lock:
            current = self.session.current_account
            if current and self.session.is_open:
                return current
            accounts = self.list_accounts()
            if not accounts:
                raise NoAccountsAvailable(self.accounts_dir)
            logger.info("No account selected, defaulting to %s", accounts[0])
            self.session.open_account(accounts[0])
            return accounts[0]

    def select(self, account: str) -> str:
        """Switch to `account`. The current account is unchanged on failure."""
        if account not in self.list_accounts():
            raise AccountNotFound(account)
        self.session.open_account(account)
        return account

    def describe(self) -> dict:
        return {
            "accounts": self.list_accounts(),
            "currentAccount": self.session.current_account,
        }
