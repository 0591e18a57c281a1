"""
Per-account cache of the last fetched remote inventory.
Lets the inventory view fall back to the last known state when Vinoshipper is unreachable.
"""

from datetime import datetime
from pathlib import Path

import structlog
from pydantic import ValidationError

from vinesync.config import settings
from vinesync.models.inventory import CachedInventory, RemoteInventoryItem, utc_now

logger = structlog.get_logger()

CACHE_FILE_PREFIX = "inventory_cache_"


class InventoryCache:
    """JSON file per account under the cache directory."""

    def __init__(self, cache_dir: str | Path = None):
        self.cache_dir = Path(cache_dir or settings.inventory_cache_dir)

    def _path(self, account_id: str) -> Path:
        return self.cache_dir / f"{CACHE_FILE_PREFIX}{account_id}.json"

    def get(self, account_id: str) -> CachedInventory | None:
        path = self._path(account_id)
        if not path.exists():
            return None
        try:
            return CachedInventory.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable inventory cache", account_id=account_id, error=str(e))
            return None

    def set(
        self, account_id: str, items: list[RemoteInventoryItem], fetched_at: datetime = None
    ) -> CachedInventory:
        record = CachedInventory(items=items, fetched_at=fetched_at or utc_now())
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self._path(account_id).write_text(record.model_dump_json(), encoding="utf-8")
        except OSError as e:
            # A cache write failure must not fail the fetch that produced the data
            logger.warning("Failed to write inventory cache", account_id=account_id, error=str(e))
        return record

    def clear(self, account_id: str):
        self._path(account_id).unlink(missing_ok=True)
