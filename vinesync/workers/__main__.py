"""
Entry point for the cross-account stock check.
Usage: python -m vinesync.workers
"""
import asyncio

import structlog

from vinesync.services.account_registry import AccountRegistry
from vinesync.services.credential_store import get_credential_store
from vinesync.utils.logger import configure_logging
from vinesync.workers.orchestrator import MultiAccountOrchestrator

logger = structlog.get_logger()


async def run_check() -> int:
    registry = AccountRegistry(get_credential_store())
    accounts = registry.load()
    if not accounts:
        logger.warning("No client accounts configured")
        return 0

    summaries = await MultiAccountOrchestrator().check_all_accounts(accounts)
    failed = [summary for summary in summaries if not summary.ok]
    logger.info(
        "Stock check finished",
        accounts=len(summaries),
        failed=len(failed),
        low_stock_total=sum(summary.low_stock_count for summary in summaries),
    )
    return 1 if failed else 0


if __name__ == "__main__":
    configure_logging()
    raise SystemExit(asyncio.run(run_check()))
