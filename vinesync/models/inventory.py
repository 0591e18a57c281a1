"""
Pydantic models for accounts, inventory items and sync results.
Truth items come from the CSV source; remote items are normalized from the Vinoshipper API.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

FULFILLMENT_OPTIONS = ("Hydra (NY)", "ShipEz (CA)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ProductStatus(str, Enum):
    """Listing status reported by the remote service."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SOLD_OUT = "sold_out"


class Account(BaseModel):
    """One client account (tenant) on Vinoshipper."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    # Older saved data used apiKey/fulfillment
    credential: str = Field(
        ..., repr=False, validation_alias=AliasChoices("credential", "apiKey", "api_key")
    )
    fulfillment_center: str = Field(
        default=FULFILLMENT_OPTIONS[0],
        validation_alias=AliasChoices("fulfillment_center", "fulfillment"),
    )


class CanonicalInventoryItem(BaseModel):
    """Source-of-truth inventory row (from CSV)."""
    model_config = ConfigDict(frozen=True)

    sku: str = Field(..., min_length=1)
    name: str = ""
    quantity: int = Field(..., ge=0)


class RemoteInventoryItem(BaseModel):
    """Inventory item as held by the remote service, in canonical shape."""
    sku: str
    name: str
    quantity: int = Field(..., ge=0)
    price: Optional[float] = None
    category: Optional[str] = None
    vintage: Optional[str] = None
    bottle_size: Optional[str] = None
    status: Optional[ProductStatus] = None
    last_synced_at: datetime = Field(default_factory=utc_now)


class InventoryUpdate(BaseModel):
    """Instruction for the caller to advance its view of remote inventory."""
    model_config = ConfigDict(frozen=True)

    sku: str
    name: str
    quantity: int


class SyncOutcomeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    ALREADY_IN_SYNC = "already_in_sync"
    SKIPPED_NOT_IN_TRUTH = "skipped_not_in_truth"
    FAILED = "failed"


class SyncOutcome(BaseModel):
    """Result of reconciling a single SKU."""
    model_config = ConfigDict(frozen=True)

    sku: str
    kind: SyncOutcomeKind
    previous_quantity: Optional[int] = None
    quantity: Optional[int] = None
    reason: Optional[str] = None
    update: Optional[InventoryUpdate] = None

    @property
    def succeeded(self) -> bool:
        return self.kind not in (SyncOutcomeKind.FAILED, SyncOutcomeKind.SKIPPED_NOT_IN_TRUTH)

    @property
    def message(self) -> str:
        if self.kind == SyncOutcomeKind.CREATED:
            return f"{self.sku}: created ({self.quantity} units)"
        if self.kind == SyncOutcomeKind.UPDATED:
            return f"{self.sku}: updated {self.previous_quantity}→{self.quantity}"
        if self.kind == SyncOutcomeKind.ALREADY_IN_SYNC:
            return f"{self.sku}: already in sync"
        if self.kind == SyncOutcomeKind.SKIPPED_NOT_IN_TRUTH:
            return f"{self.sku}: not found in truth inventory"
        return f"{self.sku}: failed - {self.reason}"


class LogLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class SyncLogEntry(BaseModel):
    """One line of the user-visible activity log."""
    message: str
    level: LogLevel = LogLevel.INFO
    timestamp: datetime = Field(default_factory=utc_now)


class ComparisonKind(str, Enum):
    NEW = "new"  # in truth, not in remote
    DIFFERENT = "different"  # in both, quantities differ
    MISSING = "missing"  # in remote, not in truth


class ComparisonEntry(BaseModel):
    """Difference between truth and remote for one SKU."""
    model_config = ConfigDict(frozen=True)

    sku: str
    kind: ComparisonKind
    truth_qty: Optional[int] = None
    remote_qty: Optional[int] = None
    delta: Optional[int] = None


class BatchUpdateItem(BaseModel):
    sku: str
    quantity: int


class BatchUpdateResult(BaseModel):
    """Per-item result of a batch inventory update."""
    sku: str
    success: bool
    error: Optional[str] = None


class AccountSummary(BaseModel):
    """Outcome of the cross-account low stock scan for one account."""
    account_id: str
    account_name: str
    total_items: int = 0
    low_stock_count: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class InventoryLoadResult(BaseModel):
    """Remote inventory fetched for an account, possibly served from cache."""
    items: List[RemoteInventoryItem] = Field(default_factory=list)
    success: bool
    from_cache: bool = False
    fetched_at: Optional[datetime] = None
    error: Optional[str] = None


class CachedInventory(BaseModel):
    """On-disk cache record for one account."""
    items: List[RemoteInventoryItem]
    fetched_at: datetime

    @field_validator("fetched_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
