"""
Caller-owned view of an account's remote inventory.

The reconciliation engine never mutates this view. It returns InventoryUpdate
instructions with each outcome, and the owner applies them so the view
reflects new quantities without re-fetching from Vinoshipper.
"""

from collections.abc import Iterable, Iterator
from datetime import datetime

from vinesync.models.inventory import (
    InventoryUpdate,
    RemoteInventoryItem,
    SyncOutcome,
    utc_now,
)


class RemoteInventoryView:
    """In-memory remote inventory keyed by SKU, in fetch order."""

    def __init__(self, items: Iterable[RemoteInventoryItem] = ()):
        self._items: dict[str, RemoteInventoryItem] = {}
        self.replace(items)

    def replace(self, items: Iterable[RemoteInventoryItem]):
        """Replace the whole view, e.g. after a fresh fetch."""
        self._items = {}
        for item in items:
            self._items.setdefault(item.sku, item)

    def apply(self, update: InventoryUpdate, now: datetime = None) -> RemoteInventoryItem:
        """
        Apply one update instruction.
        Existing SKUs get the new quantity and sync time; unknown SKUs are appended.
        """
        now = now or utc_now()
        existing = self._items.get(update.sku)
        if existing is not None:
            item = existing.model_copy(update={"quantity": update.quantity, "last_synced_at": now})
        else:
            item = RemoteInventoryItem(
                sku=update.sku,
                name=update.name or update.sku,
                quantity=update.quantity,
                last_synced_at=now,
            )
        self._items[update.sku] = item
        return item

    def apply_outcome(self, outcome: SyncOutcome) -> RemoteInventoryItem | None:
        if outcome.update is None:
            return None
        return self.apply(outcome.update)

    def apply_outcomes(self, outcomes: Iterable[SyncOutcome]) -> int:
        """Apply every update carried by the outcomes. Returns how many were applied."""
        return sum(1 for outcome in outcomes if self.apply_outcome(outcome) is not None)

    def get(self, sku: str) -> RemoteInventoryItem | None:
        return self._items.get(sku)

    @property
    def items(self) -> list[RemoteInventoryItem]:
        return list(self._items.values())

    def __contains__(self, sku: object) -> bool:
        return sku in self._items

    def __iter__(self) -> Iterator[RemoteInventoryItem]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)
