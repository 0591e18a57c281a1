"""
Interactive inventory session.
Holds the selected account, the uploaded truth CSV and the caller-owned view of
remote inventory, and implements the handlers that assistant actions trigger.
"""
from typing import List, Optional

import structlog

from vinesync.models.inventory import (
    Account,
    AccountSummary,
    CanonicalInventoryItem,
    ComparisonEntry,
    InventoryLoadResult,
    LogLevel,
    SyncOutcome,
)
from vinesync.services.account_registry import AccountNotFoundError, AccountRegistry
from vinesync.services.csv_parser import parse_inventory_csv
from vinesync.services.inventory_view import RemoteInventoryView
from vinesync.services.reconciliation import compare
from vinesync.workers.orchestrator import MultiAccountOrchestrator

logger = structlog.get_logger()

NO_CSV_MESSAGE = "No CSV uploaded. Please upload a CSV file first."
NO_ACCOUNT_MESSAGE = "No client selected."
NO_INVENTORY_MESSAGE = "Current Vinoshipper inventory could not be loaded; sync cancelled."


class InventorySession:
    """State for one operator working across client accounts."""

    def __init__(self, registry: AccountRegistry, orchestrator: MultiAccountOrchestrator):
        self.registry = registry
        self.orchestrator = orchestrator
        self.truth: Optional[List[CanonicalInventoryItem]] = None
        self.view = RemoteInventoryView()
        self.last_load: Optional[InventoryLoadResult] = None
        self._loaded_account_id: Optional[str] = None

    @property
    def activity_log(self):
        return self.orchestrator.activity_log

    def load_truth_csv(self, text: str) -> List[CanonicalInventoryItem]:
        """Parse and keep CSV text as the truth inventory. Raises CSVParseError."""
        self.truth = parse_inventory_csv(text)
        self.activity_log.add(f"Loaded CSV: {len(self.truth)} items")
        return self.truth

    def clear_truth(self):
        self.truth = None

    async def refresh_inventory(self) -> Optional[InventoryLoadResult]:
        """Reload the selected account's remote inventory into the view."""
        account = self.registry.selected
        if account is None:
            return None

        result = await self.orchestrator.load_inventory(account)
        self.view.replace(result.items)
        self.last_load = result
        self._loaded_account_id = account.id

        if result.success:
            self.activity_log.add(f"Loaded {len(result.items)} products for {account.name}")
        elif result.from_cache:
            self.activity_log.add(
                f"Could not reach Vinoshipper ({result.error}); showing cached inventory", LogLevel.ERROR
            )
        else:
            self.activity_log.add(f"Failed to load inventory: {result.error}", LogLevel.ERROR)
        return result

    async def _ready_for_sync(self) -> Optional[Account]:
        if self.truth is None:
            self.activity_log.add(NO_CSV_MESSAGE, LogLevel.ERROR)
            return None
        account = self.registry.selected
        if account is None:
            self.activity_log.add(NO_ACCOUNT_MESSAGE, LogLevel.ERROR)
            return None

        # The view must hold a successful fetch for this account
        if self.last_load is None or not self.last_load.success or self._loaded_account_id != account.id:
            await self.refresh_inventory()
        if not self.last_load.success:
            self.activity_log.add(NO_INVENTORY_MESSAGE, LogLevel.ERROR)
            return None
        return account

    async def switch_client(self, client_name: str) -> Optional[Account]:
        try:
            account = self.registry.find_by_name(client_name)
        except AccountNotFoundError as e:
            self.activity_log.add(str(e), LogLevel.ERROR)
            return None

        self.registry.select(account.id)
        self.activity_log.add(f"Switched to client: {account.name}")
        await self.refresh_inventory()
        return account

    async def check_all_clients(self) -> List[AccountSummary]:
        return await self.orchestrator.check_all_accounts(self.registry.accounts)

    async def _run_sync(self, account: Account, skus: Optional[List[str]]) -> List[SyncOutcome]:
        outcomes = []
        async with self.orchestrator.client_factory(account) as client:
            engine = self.orchestrator.engine_for(client, account)
            if skus is None:
                stream = engine.iter_full_sync(self.truth, self.view.items)
            else:
                stream = engine.iter_partial_sync(skus, self.truth, self.view.items)
            async for outcome in stream:
                self.view.apply_outcome(outcome)
                outcomes.append(outcome)
        return outcomes

    async def sync_all(self) -> List[SyncOutcome]:
        account = await self._ready_for_sync()
        if account is None:
            return []
        return await self._run_sync(account, None)

    async def sync_skus(self, skus: List[str]) -> List[SyncOutcome]:
        account = await self._ready_for_sync()
        if account is None:
            return []
        return await self._run_sync(account, skus)

    async def compare(self) -> List[ComparisonEntry]:
        if self.truth is None:
            self.activity_log.add(NO_CSV_MESSAGE, LogLevel.ERROR)
            return []
        entries = compare(self.truth, self.view.items)
        self.activity_log.add(f"Comparison: {len(entries)} difference(s)")
        return entries
