"""
Vinoshipper API client for inventory synchronization.
One client instance is scoped to one account's credential.

API endpoints:
- List products: GET /products  (envelope: {"products": [...]})
- Get product: GET /products/{sku}
- Create product: POST /products  (body: {sku, name, quantity})
- Update inventory: PUT /products/{sku}  (body: {quantity})

Authentication is HTTP Basic with the account's "key:secret" credential.
Every network call runs under the client's RetryPolicy.
"""

import asyncio
import base64
import random
from collections.abc import Awaitable, Callable, Iterable
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from vinesync.config import settings
from vinesync.models.inventory import (
    BatchUpdateItem,
    BatchUpdateResult,
    RemoteInventoryItem,
    utc_now,
)
from vinesync.models.vinoshipper import CreateProductRequest, UpdateInventoryRequest
from vinesync.services.normalizer import normalize_product
from vinesync.utils.retry import RetryPolicy, retry_with_backoff

logger = structlog.get_logger()

CREDENTIAL_DELIMITER = ":"
AUTH_FAILURE_STATUS_CODES = (401, 403)


class VinoshipperAPIError(Exception):
    """Base exception for Vinoshipper API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: Any = None,
        is_retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.is_retryable = is_retryable

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in AUTH_FAILURE_STATUS_CODES


class VinoshipperValidationError(VinoshipperAPIError):
    """Raised for malformed input, before any network call is made."""

    pass


class VinoshipperTransportError(VinoshipperAPIError):
    """Raised when no response was received (network unreachable, timeout)."""

    def __init__(self, message: str):
        super().__init__(message, status_code=0, is_retryable=True)


class RetryableServiceError(VinoshipperAPIError):
    """Raised for HTTP statuses in the retry policy's retryable set."""

    pass


class TerminalServiceError(VinoshipperAPIError):
    """Raised for any other non-2xx status. Never retried."""

    pass


def parse_credential(credential: str) -> tuple[str, str]:
    """
    Split an account credential into API key and secret.

    Args:
        credential: "key:secret", or a bare key

    Returns:
        (key, secret); secret is "" when no delimiter is present
    """
    key, _, secret = (credential or "").partition(CREDENTIAL_DELIMITER)
    return key, secret


def _require_sku(sku: str, message: str) -> None:
    if not sku or not sku.strip():
        raise VinoshipperValidationError(message)


def _require_quantity(quantity: int) -> None:
    if quantity < 0:
        raise VinoshipperValidationError("Quantity cannot be negative")


class VinoshipperClient:
    """Client for interacting with the Vinoshipper inventory API."""

    def __init__(
        self,
        credential: str,
        base_url: str = None,
        retry_policy: RetryPolicy = None,
        transport: httpx.AsyncBaseTransport = None,
        sleep: Callable[[float], Awaitable[None]] = None,
        rng: random.Random = None,
    ):
        """
        Initialize Vinoshipper API client.

        Args:
            credential: Account credential, "key:secret" or a bare key
            base_url: Vinoshipper API base URL (defaults to settings)
            retry_policy: Retry configuration (defaults to settings)
            transport: Optional httpx transport (used by tests)
            sleep: Async sleep used between retries
            rng: Random source for backoff jitter
        """
        self.base_url = (base_url or settings.vinoshipper_api_base_url).rstrip("/")
        self.api_key, self.api_secret = parse_credential(credential)
        self._retry_policy = retry_policy or RetryPolicy.from_settings()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng

        # No explicit timeout: transport default applies
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": self._auth_header(),
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            follow_redirects=True,
            transport=transport,
        )

    def _auth_header(self) -> str:
        """Generate the Basic Authentication header value."""
        token = base64.b64encode(f"{self.api_key}:{self.api_secret}".encode("utf-8"))
        return f"Basic {token.decode('ascii')}"

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    def update_retry_policy(self, **changes: Any) -> RetryPolicy:
        """
        Replace the retry policy with a copy that has the given fields changed.

        Returns:
            The new policy
        """
        self._retry_policy = RetryPolicy(**{**self._retry_policy.model_dump(), **changes})
        return self._retry_policy

    def _build_error(self, response: httpx.Response) -> VinoshipperAPIError:
        """
        Build an error for a non-2xx response.
        Message comes from the JSON body (message, then error), else the
        response text, else the HTTP reason phrase.
        """
        status_code = response.status_code
        message = f"API request failed with status {status_code}"
        body: Any = None

        try:
            body = response.json()
        except ValueError:
            body = None

        if body is not None:
            if isinstance(body, dict):
                message = str(body.get("message") or body.get("error") or message)
        elif response.text and response.text.strip():
            message = response.text.strip()
        elif response.reason_phrase:
            message = response.reason_phrase

        if status_code in self._retry_policy.retryable_status_codes:
            error_class = RetryableServiceError
        else:
            error_class = TerminalServiceError

        return error_class(
            message,
            status_code=status_code,
            response_body=body if body is not None else (response.text or None),
            is_retryable=error_class is RetryableServiceError,
        )

    async def _execute_request(self, method: str, endpoint: str, payload: dict = None) -> Any:
        """Execute a single request attempt."""
        try:
            response = await self.client.request(method, endpoint, json=payload)
        except httpx.TransportError as e:
            raise VinoshipperTransportError(
                "Network error: Unable to reach Vinoshipper API. Please check your connection."
            ) from e

        if not response.is_success:
            raise self._build_error(response)

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise VinoshipperAPIError(
                "Vinoshipper API returned a response that is not valid JSON",
                status_code=response.status_code,
                response_body=response.text,
            ) from e

    async def _request(self, method: str, endpoint: str, payload: dict = None) -> Any:
        """Execute a request under the retry policy."""
        operation = retry_with_backoff(
            lambda: self._execute_request(method, endpoint, payload),
            self._retry_policy,
            sleep=self._sleep,
            rng=self._rng,
            operation_name=f"{method} {endpoint}",
        )
        return await operation()

    async def get_inventory(self) -> list[RemoteInventoryItem]:
        """
        Retrieve all products for this account.

        Returns:
            Normalized inventory items; empty if the response has no product list
        """
        try:
            data = await self._request("GET", "/products")
        except VinoshipperAPIError as e:
            logger.error(
                "Failed to get Vinoshipper inventory",
                error=str(e),
                status_code=e.status_code,
            )
            raise

        products = data.get("products") if isinstance(data, dict) else None
        if not isinstance(products, list):
            logger.warning(
                "Vinoshipper API returned unexpected format",
                response_type=type(data).__name__,
                keys=sorted(data)[:10] if isinstance(data, dict) else None,
            )
            return []

        now = utc_now()
        items = []
        for record in products:
            if not isinstance(record, dict):
                logger.warning("Skipping malformed product record", record_type=type(record).__name__)
                continue
            items.append(normalize_product(record, now=now))

        logger.info("Fetched Vinoshipper inventory", product_count=len(items))
        return items

    async def get_product(self, sku: str) -> RemoteInventoryItem | None:
        """
        Get a single product by SKU.

        Returns:
            The normalized product, or None if Vinoshipper answers 404
        """
        _require_sku(sku, "SKU is required")

        try:
            data = await self._request("GET", f"/products/{quote(sku, safe='')}")
        except VinoshipperAPIError as e:
            if e.status_code == 404:
                logger.info("Product not found in Vinoshipper", sku=sku)
                return None
            logger.error("Failed to get product", sku=sku, error=str(e), status_code=e.status_code)
            raise

        return normalize_product(data if isinstance(data, dict) else {})

    async def create_product(self, sku: str, name: str, quantity: int) -> Any:
        """
        Create a new product in Vinoshipper.

        Args:
            sku: Product SKU
            name: Product name
            quantity: Starting quantity

        Returns:
            Response data from Vinoshipper
        """
        _require_sku(sku, "SKU is required to create a product")
        if not name or not name.strip():
            raise VinoshipperValidationError("Product name is required")
        _require_quantity(quantity)

        request = CreateProductRequest(sku=sku, name=name, quantity=quantity)

        try:
            data = await self._request("POST", "/products", request.model_dump())
        except VinoshipperAPIError as e:
            logger.error("Failed to create product", sku=sku, error=str(e), status_code=e.status_code)
            raise

        logger.info("Created product in Vinoshipper", sku=sku, quantity=quantity)
        return data

    async def update_inventory(self, sku: str, quantity: int) -> Any:
        """
        Set the quantity of an existing product.

        Args:
            sku: Product SKU
            quantity: New absolute quantity

        Returns:
            Response data from Vinoshipper
        """
        _require_sku(sku, "SKU is required for inventory update")
        _require_quantity(quantity)

        request = UpdateInventoryRequest(quantity=quantity)

        try:
            data = await self._request("PUT", f"/products/{quote(sku, safe='')}", request.model_dump())
        except VinoshipperAPIError as e:
            logger.error(
                "Failed to update inventory", sku=sku, error=str(e), status_code=e.status_code
            )
            raise

        logger.info("Updated inventory in Vinoshipper", sku=sku, quantity=quantity)
        return data

    async def batch_update_inventory(
        self, updates: Iterable[BatchUpdateItem | dict[str, Any]]
    ) -> list[BatchUpdateResult]:
        """
        Update several products one after another.
        Vinoshipper has no bulk endpoint; each item is a separate update call.
        A failed item is recorded and the remaining items are still attempted.

        Args:
            updates: Items with sku and quantity

        Returns:
            One result per item, in input order
        """
        results = []

        for update in updates:
            sku = update.get("sku", "") if isinstance(update, dict) else update.sku
            try:
                if isinstance(update, dict):
                    update = BatchUpdateItem(**update)
                await self.update_inventory(update.sku, update.quantity)
                results.append(BatchUpdateResult(sku=update.sku, success=True))
            except Exception as e:
                results.append(BatchUpdateResult(sku=str(sku or ""), success=False, error=str(e)))

        failed = sum(1 for result in results if not result.success)
        logger.info("Batch inventory update finished", total=len(results), failed=failed)
        return results

    async def validate_credentials(self) -> bool:
        """
        Check the credential with a test request.

        Returns:
            True if accepted, False on 401/403.
            Any other failure is re-raised since it may be a network problem.
        """
        try:
            await self.get_inventory()
            return True
        except VinoshipperAPIError as e:
            if e.is_auth_error:
                logger.warning("Vinoshipper rejected credentials", status_code=e.status_code)
                return False
            raise

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
