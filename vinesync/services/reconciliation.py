"""
Reconciliation engine: pushes truth (CSV) quantities onto one account's Vinoshipper inventory.

Truth always wins. Items missing remotely are created, items with a different
quantity are updated, and SKUs that only exist remotely are left alone (sync
never deletes). Items are processed one at a time, in input order, with a
courtesy delay between them. A failing item becomes a FAILED outcome and the
pass continues with the next one.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

import structlog

from vinesync.config import settings
from vinesync.models.inventory import (
    CanonicalInventoryItem,
    ComparisonEntry,
    ComparisonKind,
    InventoryUpdate,
    LogLevel,
    RemoteInventoryItem,
    SyncOutcome,
    SyncOutcomeKind,
)
from vinesync.services.activity_log import ActivityLog
from vinesync.services.vinoshipper_client import VinoshipperClient

logger = structlog.get_logger()

OUTCOME_LOG_LEVELS = {
    SyncOutcomeKind.CREATED: LogLevel.SUCCESS,
    SyncOutcomeKind.UPDATED: LogLevel.SUCCESS,
    SyncOutcomeKind.ALREADY_IN_SYNC: LogLevel.INFO,
    SyncOutcomeKind.SKIPPED_NOT_IN_TRUTH: LogLevel.ERROR,
    SyncOutcomeKind.FAILED: LogLevel.ERROR,
}


def dedupe_truth(truth: Iterable[CanonicalInventoryItem]) -> list[CanonicalInventoryItem]:
    """
    Collapse duplicate SKUs in the truth list.
    The last row for a SKU wins; the SKU keeps the position of its first row.
    """
    latest: dict[str, CanonicalInventoryItem] = {}
    for item in truth:
        latest[item.sku] = item
    return list(latest.values())


def find_duplicate_skus(truth: Iterable[CanonicalInventoryItem]) -> list[str]:
    seen: set[str] = set()
    duplicates: list[str] = []
    for item in truth:
        if item.sku in seen and item.sku not in duplicates:
            duplicates.append(item.sku)
        seen.add(item.sku)
    return duplicates


def index_remote(remote_snapshot: Iterable[RemoteInventoryItem]) -> dict[str, RemoteInventoryItem]:
    """Index remote items by SKU; the first occurrence of a SKU is used."""
    index: dict[str, RemoteInventoryItem] = {}
    for item in remote_snapshot:
        index.setdefault(item.sku, item)
    return index


def compare(
    truth: Iterable[CanonicalInventoryItem],
    remote_snapshot: Iterable[RemoteInventoryItem],
) -> list[ComparisonEntry]:
    """
    Diff truth against remote without touching either.

    Returns:
        NEW and DIFFERENT entries in truth order, then MISSING entries in
        remote order. SKUs with equal quantities are omitted.
    """
    truth_items = dedupe_truth(truth)
    remote_items = list(index_remote(remote_snapshot).values())
    remote_by_sku = {item.sku: item for item in remote_items}
    truth_skus = {item.sku for item in truth_items}

    entries: list[ComparisonEntry] = []

    for item in truth_items:
        remote = remote_by_sku.get(item.sku)
        if remote is None:
            entries.append(
                ComparisonEntry(sku=item.sku, kind=ComparisonKind.NEW, truth_qty=item.quantity)
            )
        elif remote.quantity != item.quantity:
            entries.append(
                ComparisonEntry(
                    sku=item.sku,
                    kind=ComparisonKind.DIFFERENT,
                    truth_qty=item.quantity,
                    remote_qty=remote.quantity,
                    delta=item.quantity - remote.quantity,
                )
            )

    for remote in remote_items:
        if remote.sku not in truth_skus:
            entries.append(
                ComparisonEntry(sku=remote.sku, kind=ComparisonKind.MISSING, remote_qty=remote.quantity)
            )

    return entries


class ReconciliationEngine:
    """Applies truth inventory to one account through its VinoshipperClient."""

    def __init__(
        self,
        client: VinoshipperClient,
        account_name: str = "",
        item_delay: float = None,
        sleep: Callable[[float], Awaitable[None]] = None,
        activity_log: ActivityLog = None,
    ):
        """
        Args:
            client: API client for the account being synced
            account_name: Display name used in activity log lines
            item_delay: Seconds to wait between items (defaults to settings)
            sleep: Async sleep used for the item delay
            activity_log: Log that receives one entry per outcome
        """
        self.client = client
        self.account_name = account_name
        self.item_delay = settings.sync_item_delay_seconds if item_delay is None else item_delay
        self._sleep = sleep or asyncio.sleep
        self.activity_log = activity_log if activity_log is not None else ActivityLog()

    def _log_activity(self, message: str, level: LogLevel = LogLevel.INFO):
        if self.account_name:
            message = f"{self.account_name}: {message}"
        self.activity_log.add(message, level)

    async def _throttle(self, position: int):
        if position > 0 and self.item_delay > 0:
            await self._sleep(self.item_delay)

    def _warn_duplicates(self, truth: list[CanonicalInventoryItem]):
        duplicates = find_duplicate_skus(truth)
        if duplicates:
            logger.warning(
                "Duplicate SKUs in truth inventory, using last row for each",
                account=self.account_name,
                skus=duplicates,
            )
            self._log_activity(
                f"Duplicate SKUs in CSV, using last row: {', '.join(duplicates)}", LogLevel.INFO
            )

    async def _reconcile_item(
        self, item: CanonicalInventoryItem, remote: RemoteInventoryItem | None
    ) -> SyncOutcome:
        """Bring one SKU in line with truth. Never raises."""
        previous = remote.quantity if remote is not None else None

        try:
            if remote is None:
                await self.client.create_product(item.sku, item.name, item.quantity)
                kind = SyncOutcomeKind.CREATED
            elif remote.quantity != item.quantity:
                await self.client.update_inventory(item.sku, item.quantity)
                kind = SyncOutcomeKind.UPDATED
            else:
                kind = SyncOutcomeKind.ALREADY_IN_SYNC
        except Exception as e:
            return SyncOutcome(
                sku=item.sku,
                kind=SyncOutcomeKind.FAILED,
                previous_quantity=previous,
                quantity=item.quantity,
                reason=str(e) or type(e).__name__,
            )

        return SyncOutcome(
            sku=item.sku,
            kind=kind,
            previous_quantity=previous,
            quantity=item.quantity,
            update=InventoryUpdate(sku=item.sku, name=item.name, quantity=item.quantity),
        )

    def _record(self, outcome: SyncOutcome) -> SyncOutcome:
        level = OUTCOME_LOG_LEVELS[outcome.kind]
        log_method = logger.error if level == LogLevel.ERROR else logger.info
        log_method(
            "Reconciled SKU",
            account=self.account_name,
            sku=outcome.sku,
            outcome=outcome.kind.value,
            previous_quantity=outcome.previous_quantity,
            quantity=outcome.quantity,
            reason=outcome.reason,
        )
        self._log_activity(outcome.message, level)
        return outcome

    def _log_completion(self, outcomes: list[SyncOutcome]):
        failed = sum(1 for outcome in outcomes if not outcome.succeeded)
        logger.info(
            "Sync pass completed",
            account=self.account_name,
            processed=len(outcomes),
            failed=failed,
        )
        level = LogLevel.SUCCESS if failed == 0 else LogLevel.ERROR
        self._log_activity(
            f"Sync completed: {len(outcomes)} item(s) processed, {failed} failed", level
        )

    async def iter_full_sync(
        self,
        truth: Iterable[CanonicalInventoryItem],
        remote_snapshot: Iterable[RemoteInventoryItem],
    ) -> AsyncIterator[SyncOutcome]:
        """
        Reconcile every truth item, yielding each outcome as soon as it is known.
        Stopping iteration early stops the pass before the next item.
        """
        truth = list(truth)
        self._warn_duplicates(truth)
        truth_items = dedupe_truth(truth)
        remote_by_sku = index_remote(remote_snapshot)

        logger.info("Starting full sync", account=self.account_name, item_count=len(truth_items))
        self._log_activity(f"Starting full sync: {len(truth_items)} items")

        outcomes = []
        for position, item in enumerate(truth_items):
            await self._throttle(position)
            outcome = self._record(await self._reconcile_item(item, remote_by_sku.get(item.sku)))
            outcomes.append(outcome)
            yield outcome

        self._log_completion(outcomes)

    async def full_sync(
        self,
        truth: Iterable[CanonicalInventoryItem],
        remote_snapshot: Iterable[RemoteInventoryItem],
    ) -> list[SyncOutcome]:
        """
        Reconcile every truth item against the remote snapshot.

        Returns:
            One outcome per distinct truth SKU, in truth order
        """
        return [outcome async for outcome in self.iter_full_sync(truth, remote_snapshot)]

    async def iter_partial_sync(
        self,
        skus: Iterable[str],
        truth: Iterable[CanonicalInventoryItem],
        remote_snapshot: Iterable[RemoteInventoryItem],
    ) -> AsyncIterator[SyncOutcome]:
        """Reconcile only the requested SKUs, yielding outcomes in request order."""
        truth = list(truth)
        self._warn_duplicates(truth)
        truth_by_sku = {item.sku: item for item in dedupe_truth(truth)}
        remote_by_sku = index_remote(remote_snapshot)
        requested = list(dict.fromkeys(skus))

        logger.info("Starting partial sync", account=self.account_name, skus=requested)
        self._log_activity(f"Syncing {len(requested)} item(s)")

        outcomes = []
        for position, sku in enumerate(requested):
            await self._throttle(position)
            item = truth_by_sku.get(sku)
            if item is None:
                outcome = SyncOutcome(sku=sku, kind=SyncOutcomeKind.SKIPPED_NOT_IN_TRUTH)
            else:
                outcome = await self._reconcile_item(item, remote_by_sku.get(sku))
            outcomes.append(self._record(outcome))
            yield outcome

        self._log_completion(outcomes)

    async def partial_sync(
        self,
        skus: Iterable[str],
        truth: Iterable[CanonicalInventoryItem],
        remote_snapshot: Iterable[RemoteInventoryItem],
    ) -> list[SyncOutcome]:
        """
        Reconcile a subset of SKUs.
        SKUs not present in truth are reported as SKIPPED_NOT_IN_TRUTH without any API call.

        Returns:
            One outcome per distinct requested SKU, in request order
        """
        return [
            outcome async for outcome in self.iter_partial_sync(skus, truth, remote_snapshot)
        ]

    def compare(
        self,
        truth: Iterable[CanonicalInventoryItem],
        remote_snapshot: Iterable[RemoteInventoryItem],
    ) -> list[ComparisonEntry]:
        """Read-only diff; see module-level compare()."""
        return compare(truth, remote_snapshot)
