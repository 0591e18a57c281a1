"""
Normalization of Vinoshipper product records.

The API has returned products under several different field names over time
(sku/product_code/id, quantity/stock/inventory_count, ...). Each canonical
field is described by an ordered list of source keys; the first key holding a
usable value wins. New field-name variants only need to be added to
FIELD_RULES.
"""

import math
from collections.abc import Callable
from datetime import datetime
from typing import Any, NamedTuple

import structlog

from vinesync.models.inventory import ProductStatus, RemoteInventoryItem, utc_now

logger = structlog.get_logger()


def _text(value: Any) -> str | None:
    """Non-empty string, or None. Empty strings fall through to the next key."""
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _integer(value: Any) -> int | None:
    """Integer value, or None. Zero is a valid match."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    number = _number(value)
    if number is None:
        return None
    return int(number)


def _number(value: Any) -> float | None:
    """Finite float value, or None. Zero is a valid match."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        return None
    # inf and nan from drifting upstream data fall through to the next source
    return number if math.isfinite(number) else None


class FieldRule(NamedTuple):
    sources: tuple[str, ...]
    extract: Callable[[Any], Any]
    default: Any = None


FIELD_RULES: dict[str, FieldRule] = {
    "sku": FieldRule(("sku", "product_code", "id"), _text, "UNKNOWN"),
    "name": FieldRule(("name", "title", "description"), _text, "Unnamed Product"),
    "quantity": FieldRule(("quantity", "stock", "inventory_count"), _integer, 0),
    "price": FieldRule(("price", "retail_price"), _number),
    "category": FieldRule(("category", "type"), _text),
    "vintage": FieldRule(("vintage", "year"), _text),
    "bottle_size": FieldRule(("bottle_size", "size"), _text),
}

STATUS_ALIASES = {
    "active": ProductStatus.ACTIVE,
    "inactive": ProductStatus.INACTIVE,
    "sold_out": ProductStatus.SOLD_OUT,
    "sold out": ProductStatus.SOLD_OUT,
}


def extract_field(record: dict[str, Any], field_name: str) -> Any:
    """Apply the fallback chain for one canonical field."""
    rule = FIELD_RULES[field_name]
    for source in rule.sources:
        value = rule.extract(record.get(source))
        if value is not None:
            return value
    return rule.default


def normalize_status(record: dict[str, Any]) -> ProductStatus | None:
    """
    Derive listing status from a status string, falling back to a boolean 'active' flag.

    Unrecognized status strings are ignored rather than rejected.
    """
    status = record.get("status")
    if isinstance(status, str):
        matched = STATUS_ALIASES.get(status.strip().lower())
        if matched is not None:
            return matched

    active = record.get("active")
    if active is True:
        return ProductStatus.ACTIVE
    if active is False:
        return ProductStatus.INACTIVE
    return None


def normalize_product(record: dict[str, Any], now: datetime = None) -> RemoteInventoryItem:
    """
    Convert a raw Vinoshipper product record to a RemoteInventoryItem.

    Args:
        record: Product record as returned by the API
        now: Sync timestamp (defaults to current UTC time; never read from the remote)

    Returns:
        Normalized inventory item
    """
    values = {field_name: extract_field(record, field_name) for field_name in FIELD_RULES}

    if values["quantity"] < 0:
        logger.warning(
            "Remote product reported negative quantity, treating as 0",
            sku=values["sku"],
            quantity=values["quantity"],
        )
        values["quantity"] = 0

    return RemoteInventoryItem(
        **values,
        status=normalize_status(record),
        last_synced_at=now or utc_now(),
    )
