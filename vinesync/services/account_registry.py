"""
Client account registry.
Accounts (including their API credentials) are persisted as one JSON list in
the credential store under the "clients" key.
"""

import json
from uuid import uuid4

import structlog

from vinesync.models.inventory import FULFILLMENT_OPTIONS, Account
from vinesync.services.credential_store import BaseCredentialStore, CredentialStoreError

logger = structlog.get_logger()

ACCOUNTS_KEY = "clients"


class AccountNotFoundError(LookupError):
    """Raised when an account id or name does not match any saved account."""

    pass


class AccountRegistry:
    """Saved accounts plus the currently selected one."""

    def __init__(self, store: BaseCredentialStore):
        self.store = store
        self._accounts: list[Account] = []
        self._selected_id: str | None = None

    def load(self) -> list[Account]:
        """Load accounts from the store and select the first one."""
        raw = self.store.get(ACCOUNTS_KEY)
        if not raw:
            self._accounts = []
            self._selected_id = None
            return []

        try:
            records = json.loads(raw)
            if not isinstance(records, list):
                raise ValueError("saved accounts must be a JSON list")
            self._accounts = [Account.model_validate(record) for record in records]
        except ValueError as e:
            logger.error("Failed to load saved accounts", error=str(e))
            raise CredentialStoreError(f"Saved accounts are unreadable: {e}") from e

        self._selected_id = self._accounts[0].id if self._accounts else None
        logger.info("Loaded accounts", count=len(self._accounts))
        return self.accounts

    def _save(self):
        payload = json.dumps([account.model_dump() for account in self._accounts])
        self.store.save(ACCOUNTS_KEY, payload)

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts)

    @property
    def selected(self) -> Account | None:
        if self._selected_id is None:
            return None
        return next((a for a in self._accounts if a.id == self._selected_id), None)

    def get(self, account_id: str) -> Account:
        for account in self._accounts:
            if account.id == account_id:
                return account
        raise AccountNotFoundError(f"Account not found: {account_id}")

    def find_by_name(self, name: str) -> Account:
        """First account whose name contains the given text (case-insensitive)."""
        needle = name.strip().lower()
        for account in self._accounts:
            if needle and needle in account.name.lower():
                return account
        available = ", ".join(account.name for account in self._accounts)
        raise AccountNotFoundError(f'Client "{name}" not found. Available clients: {available}')

    def add_account(
        self, name: str, credential: str, fulfillment_center: str = FULFILLMENT_OPTIONS[0]
    ) -> Account:
        if not name or not name.strip():
            raise ValueError("Account name is required")
        if not credential or not credential.strip():
            raise ValueError("Account credential is required")

        account = Account(
            id=uuid4().hex,
            name=name.strip(),
            credential=credential.strip(),
            fulfillment_center=fulfillment_center,
        )
        self._accounts.append(account)
        self._save()

        if self._selected_id is None:
            self._selected_id = account.id

        logger.info("Account added", account_id=account.id, name=account.name)
        return account

    def replace_account(self, account: Account) -> Account:
        """Replace a saved account wholesale (accounts are never patched in place)."""
        for index, existing in enumerate(self._accounts):
            if existing.id == account.id:
                self._accounts[index] = account
                self._save()
                logger.info("Account replaced", account_id=account.id)
                return account
        raise AccountNotFoundError(f"Account not found: {account.id}")

    def remove_account(self, account_id: str) -> list[Account]:
        """Delete an account. If it was selected, selection moves to the first remaining account."""
        self.get(account_id)
        self._accounts = [a for a in self._accounts if a.id != account_id]
        self._save()

        if self._selected_id == account_id:
            self._selected_id = self._accounts[0].id if self._accounts else None

        logger.info("Account removed", account_id=account_id)
        return self.accounts

    def select(self, account_id: str) -> Account:
        account = self.get(account_id)
        self._selected_id = account.id
        return account
