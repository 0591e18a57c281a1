"""
Single-pass full sync for one account.
Reads a truth CSV, pushes it to Vinoshipper for the given account, then exits.

Usage: python scripts/run_sync_once.py <account name or id> <inventory.csv> [--compare]

Exit code is 1 if any item failed (or the run could not start), else 0.
"""

import asyncio
import sys

import structlog

from vinesync.services.account_registry import AccountNotFoundError, AccountRegistry
from vinesync.services.credential_store import get_credential_store
from vinesync.services.csv_parser import CSVParseError, load_inventory_csv
from vinesync.services.inventory_cache import InventoryCache
from vinesync.services.vinoshipper_client import VinoshipperAPIError
from vinesync.utils.logger import configure_logging
from vinesync.workers.orchestrator import MultiAccountOrchestrator

configure_logging()
logger = structlog.get_logger()


async def main(account_ref: str, csv_path: str, compare_only: bool = False) -> int:
    registry = AccountRegistry(get_credential_store())
    registry.load()

    try:
        try:
            account = registry.get(account_ref)
        except AccountNotFoundError:
            account = registry.find_by_name(account_ref)
        truth = load_inventory_csv(csv_path)
    except (AccountNotFoundError, CSVParseError, OSError) as e:
        logger.error("Cannot start sync", error=str(e))
        return 1

    orchestrator = MultiAccountOrchestrator(cache=InventoryCache())

    try:
        if compare_only:
            entries = await orchestrator.compare_account(account, truth)
            for entry in entries:
                logger.info(
                    "Difference",
                    sku=entry.sku,
                    kind=entry.kind.value,
                    truth_qty=entry.truth_qty,
                    remote_qty=entry.remote_qty,
                    delta=entry.delta,
                )
            return 0

        outcomes = await orchestrator.sync_account(account, truth)
    except VinoshipperAPIError as e:
        logger.error("Sync failed", account=account.name, error=str(e), status_code=e.status_code)
        return 1

    failed = [outcome for outcome in outcomes if not outcome.succeeded]
    logger.info(
        "Sync run: done",
        account=account.name,
        processed=len(outcomes),
        failed=len(failed),
    )
    return 1 if failed else 0


if __name__ == "__main__":
    args = [arg for arg in sys.argv[1:] if arg != "--compare"]
    if len(args) != 2:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(args[0], args[1], compare_only="--compare" in sys.argv)))
