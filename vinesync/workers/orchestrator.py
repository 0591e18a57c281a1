"""
Multi-account orchestrator.
Runs inventory scans and reconciliation passes across client accounts, one
account at a time. A failure on one account is logged and recorded in that
account's result; the remaining accounts are still processed.
"""
import asyncio
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import structlog

from vinesync.config import settings
from vinesync.models.inventory import (
    Account,
    AccountSummary,
    CanonicalInventoryItem,
    ComparisonEntry,
    InventoryLoadResult,
    LogLevel,
    RemoteInventoryItem,
    SyncOutcome,
    SyncOutcomeKind,
    utc_now,
)
from vinesync.services.activity_log import ActivityLog
from vinesync.services.inventory_cache import InventoryCache
from vinesync.services.reconciliation import ReconciliationEngine, compare
from vinesync.services.vinoshipper_client import VinoshipperClient

logger = structlog.get_logger()

ClientFactory = Callable[[Account], VinoshipperClient]


def default_client_factory(account: Account) -> VinoshipperClient:
    return VinoshipperClient(account.credential)


class MultiAccountOrchestrator:
    """Sequential cross-account operations on top of the reconciliation engine."""

    def __init__(
        self,
        client_factory: Optional[ClientFactory] = None,
        low_stock_threshold: Optional[int] = None,
        account_delay: Optional[float] = None,
        item_delay: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        cache: Optional[InventoryCache] = None,
        activity_log: Optional[ActivityLog] = None,
    ):
        """
        Args:
            client_factory: Builds a VinoshipperClient for an account
            low_stock_threshold: Items with quantity below this count as low stock
            account_delay: Seconds to wait between accounts in a scan
            item_delay: Seconds to wait between items in a sync pass
            sleep: Async sleep used for both delays
            cache: Inventory cache used as fallback when a fetch fails
            activity_log: Shared user-visible log
        """
        self.client_factory = client_factory or default_client_factory
        self.low_stock_threshold = (
            settings.low_stock_threshold if low_stock_threshold is None else low_stock_threshold
        )
        self.account_delay = (
            settings.account_check_delay_seconds if account_delay is None else account_delay
        )
        self.item_delay = item_delay
        self._sleep = sleep or asyncio.sleep
        self.cache = cache
        self.activity_log = activity_log if activity_log is not None else ActivityLog()

    def engine_for(self, client: VinoshipperClient, account: Account) -> ReconciliationEngine:
        return ReconciliationEngine(
            client,
            account_name=account.name,
            item_delay=self.item_delay,
            sleep=self._sleep,
            activity_log=self.activity_log,
        )

    async def _pause_between_accounts(self, position: int):
        if position > 0 and self.account_delay > 0:
            await self._sleep(self.account_delay)

    async def load_inventory(self, account: Account) -> InventoryLoadResult:
        """
        Fetch an account's remote inventory, refreshing the cache on success.
        On failure, falls back to the cached inventory when one exists.
        """
        try:
            async with self.client_factory(account) as client:
                items = await client.get_inventory()
        except Exception as e:
            logger.error("Failed to load inventory", account_id=account.id, error=str(e))
            cached = self.cache.get(account.id) if self.cache else None
            if cached is not None:
                logger.info(
                    "Serving inventory from cache",
                    account_id=account.id,
                    fetched_at=cached.fetched_at.isoformat(),
                )
                return InventoryLoadResult(
                    items=cached.items,
                    success=False,
                    from_cache=True,
                    fetched_at=cached.fetched_at,
                    error=str(e),
                )
            return InventoryLoadResult(success=False, error=str(e))

        fetched_at = utc_now()
        if self.cache:
            self.cache.set(account.id, items, fetched_at)
        return InventoryLoadResult(items=items, success=True, fetched_at=fetched_at)

    async def check_all_accounts(self, accounts: Iterable[Account]) -> List[AccountSummary]:
        """
        Read-only low stock scan across accounts.

        Returns:
            One summary per account, in input order; failed accounts carry an error
        """
        accounts = list(accounts)
        self.activity_log.add("Checking inventory across all clients...")
        summaries = []

        for position, account in enumerate(accounts):
            await self._pause_between_accounts(position)
            try:
                async with self.client_factory(account) as client:
                    items = await client.get_inventory()
            except Exception as e:
                logger.error(
                    "Account inventory check failed",
                    account_id=account.id,
                    account_name=account.name,
                    error=str(e),
                )
                self.activity_log.add(f"{account.name}: check failed - {e}", LogLevel.ERROR)
                summaries.append(
                    AccountSummary(account_id=account.id, account_name=account.name, error=str(e))
                )
                continue

            low_stock = [item for item in items if item.quantity < self.low_stock_threshold]
            summary = AccountSummary(
                account_id=account.id,
                account_name=account.name,
                total_items=len(items),
                low_stock_count=len(low_stock),
            )
            logger.info(
                "Account inventory checked",
                account_id=account.id,
                total_items=summary.total_items,
                low_stock_count=summary.low_stock_count,
                low_stock_skus=[item.sku for item in low_stock],
            )
            self.activity_log.add(
                f"{account.name}: {summary.low_stock_count} low stock items",
                LogLevel.INFO if summary.low_stock_count > 0 else LogLevel.SUCCESS,
            )
            summaries.append(summary)

        return summaries

    async def sync_account(
        self,
        account: Account,
        truth: List[CanonicalInventoryItem],
        remote_snapshot: Optional[List[RemoteInventoryItem]] = None,
    ) -> List[SyncOutcome]:
        """Full sync for one account. Fetches the remote snapshot if none is given."""
        async with self.client_factory(account) as client:
            if remote_snapshot is None:
                remote_snapshot = await client.get_inventory()
            return await self.engine_for(client, account).full_sync(truth, remote_snapshot)

    async def partial_sync_account(
        self,
        account: Account,
        skus: List[str],
        truth: List[CanonicalInventoryItem],
        remote_snapshot: Optional[List[RemoteInventoryItem]] = None,
    ) -> List[SyncOutcome]:
        """Partial sync for one account. Fetches the remote snapshot if none is given."""
        async with self.client_factory(account) as client:
            if remote_snapshot is None:
                remote_snapshot = await client.get_inventory()
            return await self.engine_for(client, account).partial_sync(skus, truth, remote_snapshot)

    async def compare_account(
        self,
        account: Account,
        truth: List[CanonicalInventoryItem],
        remote_snapshot: Optional[List[RemoteInventoryItem]] = None,
    ) -> List[ComparisonEntry]:
        """Diff truth against an account's remote inventory without changing anything."""
        if remote_snapshot is None:
            async with self.client_factory(account) as client:
                remote_snapshot = await client.get_inventory()
        return compare(truth, remote_snapshot)

    async def sync_accounts(
        self,
        accounts: Iterable[Account],
        truth_by_account_id: Dict[str, List[CanonicalInventoryItem]],
    ) -> Dict[str, List[SyncOutcome]]:
        """
        Full sync for several accounts in turn.
        Accounts without truth data are skipped. An account whose snapshot
        cannot be fetched gets a single FAILED outcome and the run moves on.

        Returns:
            Outcomes keyed by account id
        """
        results: Dict[str, List[SyncOutcome]] = {}

        for position, account in enumerate(accounts):
            truth = truth_by_account_id.get(account.id)
            if truth is None:
                logger.info("No truth inventory for account, skipping", account_id=account.id)
                continue

            await self._pause_between_accounts(position)
            try:
                results[account.id] = await self.sync_account(account, truth)
            except Exception as e:
                logger.error(
                    "Account sync failed",
                    account_id=account.id,
                    account_name=account.name,
                    error=str(e),
                )
                self.activity_log.add(f"{account.name}: sync failed - {e}", LogLevel.ERROR)
                results[account.id] = [
                    SyncOutcome(sku="*", kind=SyncOutcomeKind.FAILED, reason=str(e))
                ]

        return results
