"""
FastAPI router for account management and inventory reconciliation.
Exposes full sync, partial sync, compare and the cross-account stock check.
"""

from functools import lru_cache
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from vinesync.models.inventory import (
    FULFILLMENT_OPTIONS,
    Account,
    AccountSummary,
    ComparisonEntry,
    SyncOutcome,
)
from vinesync.services.account_registry import AccountNotFoundError, AccountRegistry
from vinesync.services.credential_store import get_credential_store
from vinesync.services.csv_parser import CSVParseError, parse_inventory_csv
from vinesync.services.inventory_cache import InventoryCache
from vinesync.services.vinoshipper_client import VinoshipperAPIError
from vinesync.workers.orchestrator import MultiAccountOrchestrator

logger = structlog.get_logger()

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@lru_cache
def get_registry() -> AccountRegistry:
    registry = AccountRegistry(get_credential_store())
    registry.load()
    return registry


@lru_cache
def get_orchestrator() -> MultiAccountOrchestrator:
    return MultiAccountOrchestrator(cache=InventoryCache())


class CreateAccountRequest(BaseModel):
    """Request model for adding a client account."""

    name: str
    credential: str  # "key:secret"
    fulfillment_center: str = FULFILLMENT_OPTIONS[0]


class AccountResponse(BaseModel):
    """Account as returned by the API (credential never included)."""

    id: str
    name: str
    fulfillment_center: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(id=account.id, name=account.name, fulfillment_center=account.fulfillment_center)


class SyncRequest(BaseModel):
    """Truth inventory as CSV text."""

    csv: str


class PartialSyncRequest(SyncRequest):
    skus: List[str] = Field(..., min_length=1)


class SyncOutcomeResponse(BaseModel):
    sku: str
    kind: str
    previous_quantity: Optional[int] = None
    quantity: Optional[int] = None
    reason: Optional[str] = None
    message: str

    @classmethod
    def from_outcome(cls, outcome: SyncOutcome) -> "SyncOutcomeResponse":
        return cls(
            sku=outcome.sku,
            kind=outcome.kind.value,
            previous_quantity=outcome.previous_quantity,
            quantity=outcome.quantity,
            reason=outcome.reason,
            message=outcome.message,
        )


class SyncResponse(BaseModel):
    account_id: str
    outcomes: List[SyncOutcomeResponse]
    failed: int


class ValidateResponse(BaseModel):
    account_id: str
    valid: bool


def _get_account(registry: AccountRegistry, account_id: str) -> Account:
    try:
        return registry.get(account_id)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _parse_truth(csv_text: str):
    try:
        return parse_inventory_csv(csv_text)
    except CSVParseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _upstream_error(action: str, account: Account, e: VinoshipperAPIError) -> HTTPException:
    logger.error(action, account_id=account.id, error=str(e), status_code=e.status_code)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"{action}: {e.message}",
    )


def _sync_response(account: Account, outcomes: List[SyncOutcome]) -> SyncResponse:
    return SyncResponse(
        account_id=account.id,
        outcomes=[SyncOutcomeResponse.from_outcome(outcome) for outcome in outcomes],
        failed=sum(1 for outcome in outcomes if not outcome.succeeded),
    )


@router.get("/", response_model=List[AccountResponse])
async def list_accounts(registry: AccountRegistry = Depends(get_registry)):
    """List saved client accounts."""
    return [AccountResponse.from_account(account) for account in registry.accounts]


@router.post("/", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    request: CreateAccountRequest, registry: AccountRegistry = Depends(get_registry)
):
    """Add a client account. The credential goes to the credential store."""
    try:
        account = registry.add_account(request.name, request.credential, request.fulfillment_center)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return AccountResponse.from_account(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(account_id: str, registry: AccountRegistry = Depends(get_registry)):
    """Remove a client account."""
    try:
        registry.remove_account(account_id)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return None


@router.get("/check", response_model=List[AccountSummary])
async def check_all_accounts(
    registry: AccountRegistry = Depends(get_registry),
    orchestrator: MultiAccountOrchestrator = Depends(get_orchestrator),
):
    """Low stock count for every account. Accounts that fail carry an error field."""
    return await orchestrator.check_all_accounts(registry.accounts)


@router.post("/{account_id}/validate", response_model=ValidateResponse)
async def validate_account(
    account_id: str,
    registry: AccountRegistry = Depends(get_registry),
    orchestrator: MultiAccountOrchestrator = Depends(get_orchestrator),
):
    """Check the account's credential. Network problems return 502 rather than valid=false."""
    account = _get_account(registry, account_id)
    try:
        async with orchestrator.client_factory(account) as client:
            valid = await client.validate_credentials()
    except VinoshipperAPIError as e:
        raise _upstream_error("Credential check failed", account, e)
    return ValidateResponse(account_id=account.id, valid=valid)


@router.post("/{account_id}/sync", response_model=SyncResponse)
async def full_sync(
    account_id: str,
    request: SyncRequest,
    registry: AccountRegistry = Depends(get_registry),
    orchestrator: MultiAccountOrchestrator = Depends(get_orchestrator),
):
    """Push every CSV quantity to Vinoshipper for this account."""
    account = _get_account(registry, account_id)
    truth = _parse_truth(request.csv)
    try:
        outcomes = await orchestrator.sync_account(account, truth)
    except VinoshipperAPIError as e:
        raise _upstream_error("Failed to fetch remote inventory", account, e)
    return _sync_response(account, outcomes)


@router.post("/{account_id}/sync/partial", response_model=SyncResponse)
async def partial_sync(
    account_id: str,
    request: PartialSyncRequest,
    registry: AccountRegistry = Depends(get_registry),
    orchestrator: MultiAccountOrchestrator = Depends(get_orchestrator),
):
    """Push CSV quantities for the listed SKUs only."""
    account = _get_account(registry, account_id)
    truth = _parse_truth(request.csv)
    try:
        outcomes = await orchestrator.partial_sync_account(account, request.skus, truth)
    except VinoshipperAPIError as e:
        raise _upstream_error("Failed to fetch remote inventory", account, e)
    return _sync_response(account, outcomes)


@router.post("/{account_id}/compare", response_model=List[ComparisonEntry])
async def compare_inventory(
    account_id: str,
    request: SyncRequest,
    registry: AccountRegistry = Depends(get_registry),
    orchestrator: MultiAccountOrchestrator = Depends(get_orchestrator),
):
    """Differences between the CSV and Vinoshipper. Nothing is changed."""
    account = _get_account(registry, account_id)
    truth = _parse_truth(request.csv)
    try:
        return await orchestrator.compare_account(account, truth)
    except VinoshipperAPIError as e:
        raise _upstream_error("Failed to fetch remote inventory", account, e)
