"""
CSV truth-source parser.
Detects SKU/name/quantity columns from a header row using common header synonyms.
"""

import csv
import io
import re
from pathlib import Path

import structlog

from vinesync.models.inventory import CanonicalInventoryItem

logger = structlog.get_logger()

CSV_HEADERS = {
    "sku": ("sku", "product_sku", "item_sku"),
    "name": ("name", "product_name", "item_name", "description"),
    "quantity": ("quantity", "qty", "stock", "inventory"),
}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class CSVParseError(ValueError):
    """Raised when CSV text cannot be used as a truth inventory."""

    pass


def _find_column(headers: list[str], synonyms: tuple[str, ...]) -> int | None:
    for index, header in enumerate(headers):
        if header in synonyms:
            return index
    return None


def _parse_quantity(value: str) -> int:
    """Leading integer of the cell ("12 cases" -> 12); anything else counts as 0."""
    match = _LEADING_INT.match(value or "")
    return int(match.group(1)) if match else 0


def _cell(row: list[str], index: int | None) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index].strip()


def parse_inventory_csv(text: str) -> list[CanonicalInventoryItem]:
    """
    Parse CSV text into truth inventory items.

    Args:
        text: CSV with a header row and at least one data row

    Returns:
        Items in file order. Rows without a SKU are skipped; a missing name
        defaults to the SKU.

    Raises:
        CSVParseError: Too few lines, or no SKU / quantity column
    """
    text = (text or "").lstrip("\ufeff").strip()
    lines = text.splitlines()

    if len(lines) < 2:
        raise CSVParseError("CSV must have at least a header row and one data row")

    reader = csv.reader(io.StringIO(text))
    headers = [header.strip().lower() for header in next(reader)]

    sku_index = _find_column(headers, CSV_HEADERS["sku"])
    name_index = _find_column(headers, CSV_HEADERS["name"])
    quantity_index = _find_column(headers, CSV_HEADERS["quantity"])

    if sku_index is None:
        raise CSVParseError("CSV must have a SKU column")
    if quantity_index is None:
        raise CSVParseError("CSV must have a Quantity column")

    items = []
    for line_number, row in enumerate(reader, start=2):
        if not any(cell.strip() for cell in row):
            continue

        sku = _cell(row, sku_index)
        if not sku:
            continue

        quantity = _parse_quantity(_cell(row, quantity_index))
        if quantity < 0:
            logger.warning(
                "Skipping CSV row with negative quantity",
                line=line_number,
                sku=sku,
                quantity=quantity,
            )
            continue

        name = _cell(row, name_index) or sku
        items.append(CanonicalInventoryItem(sku=sku, name=name, quantity=quantity))

    logger.info("Parsed truth inventory CSV", item_count=len(items))
    return items


def load_inventory_csv(path: str | Path) -> list[CanonicalInventoryItem]:
    """Read and parse a CSV file from disk."""
    return parse_inventory_csv(Path(path).read_text(encoding="utf-8-sig"))
