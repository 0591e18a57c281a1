"""
Tests for the Vinoshipper API client against an in-memory fake API.

Run with: pytest tests/test_vinoshipper_client.py -v
"""

import base64

import httpx
import pytest

from conftest import FakeVinoshipper
from vinesync.models.inventory import BatchUpdateItem
from vinesync.services.vinoshipper_client import (
    RetryableServiceError,
    TerminalServiceError,
    VinoshipperAPIError,
    VinoshipperTransportError,
    VinoshipperValidationError,
    parse_credential,
)


def test_parse_credential_splits_on_first_colon():
    assert parse_credential("key:secret") == ("key", "secret")
    assert parse_credential("key:sec:ret") == ("key", "sec:ret")
    assert parse_credential("barekey") == ("barekey", "")


@pytest.mark.asyncio
async def test_requests_carry_basic_auth(make_client):
    seen = []

    def handler(request):
        seen.append(request.headers["Authorization"])
        return httpx.Response(200, json={"products": []})

    async with make_client(handler, credential="abc:xyz") as client:
        await client.get_inventory()

    expected = base64.b64encode(b"abc:xyz").decode("ascii")
    assert seen == [f"Basic {expected}"]


@pytest.mark.asyncio
async def test_get_inventory_normalizes_records(make_client):
    api = FakeVinoshipper(
        [
            {"sku": "WINE-001", "name": "Cabernet", "quantity": 45, "price": "29.99"},
            {"product_code": "WINE-002", "stock": 3},
        ]
    )
    async with make_client(api) as client:
        items = await client.get_inventory()

    assert [(item.sku, item.quantity) for item in items] == [("WINE-001", 45), ("WINE-002", 3)]
    assert items[0].price == 29.99
    assert items[1].name == "Unnamed Product"


@pytest.mark.asyncio
async def test_get_inventory_unexpected_envelope_returns_empty(make_client):
    api = FakeVinoshipper([{"sku": "A", "quantity": 1}], envelope_key="items")
    async with make_client(api) as client:
        assert await client.get_inventory() == []


@pytest.mark.asyncio
async def test_retryable_status_exhausts_after_max_retries_plus_one(make_client, fake_api, sleeps):
    fake_api.script("GET", None, *[httpx.Response(503, json={"message": "busy"})] * 10)

    async with make_client(fake_api) as client:
        with pytest.raises(RetryableServiceError) as exc_info:
            await client.get_inventory()

    assert exc_info.value.status_code == 503
    assert exc_info.value.message == "busy"
    assert len(fake_api.requests) == 4
    assert len(sleeps) == 3


@pytest.mark.asyncio
async def test_transient_failure_then_success(make_client, fake_api):
    fake_api.products["A"] = {"sku": "A", "quantity": 2}
    fake_api.script("GET", None, httpx.Response(502), httpx.Response(429))

    async with make_client(fake_api) as client:
        items = await client.get_inventory()

    assert [item.sku for item in items] == ["A"]
    assert len(fake_api.requests) == 3


@pytest.mark.asyncio
async def test_terminal_status_is_not_retried(make_client, fake_api, sleeps):
    fake_api.script("PUT", "A", httpx.Response(400, json={"error": "bad quantity"}))
    fake_api.products["A"] = {"sku": "A", "quantity": 1}

    async with make_client(fake_api) as client:
        with pytest.raises(TerminalServiceError) as exc_info:
            await client.update_inventory("A", 5)

    assert exc_info.value.status_code == 400
    assert str(exc_info.value) == "bad quantity"
    assert len(fake_api.requests) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_error_message_falls_back_to_text_then_reason(make_client, fake_api):
    fake_api.script("GET", "A", httpx.Response(400, text="plain failure"))
    fake_api.script("GET", "B", httpx.Response(400))

    async with make_client(fake_api) as client:
        with pytest.raises(VinoshipperAPIError, match="plain failure"):
            await client.get_product("A")
        with pytest.raises(VinoshipperAPIError, match="Bad Request"):
            await client.get_product("B")


@pytest.mark.asyncio
async def test_transport_error_reports_status_zero(make_client, fake_api):
    fake_api.script("GET", None, *[httpx.ConnectError("refused")] * 4)

    async with make_client(fake_api) as client:
        with pytest.raises(VinoshipperTransportError) as exc_info:
            await client.get_inventory()

    assert exc_info.value.status_code == 0
    assert "Unable to reach Vinoshipper" in exc_info.value.message
    assert len(fake_api.requests) == 4


@pytest.mark.asyncio
async def test_get_product_404_returns_none(make_client, fake_api):
    async with make_client(fake_api) as client:
        assert await client.get_product("MISSING") is None
    assert len(fake_api.requests) == 1


@pytest.mark.asyncio
async def test_get_product_found(make_client):
    api = FakeVinoshipper([{"sku": "WINE 7", "name": "Spaced", "quantity": 7}])
    async with make_client(api) as client:
        item = await client.get_product("WINE 7")
    assert item.sku == "WINE 7"
    assert item.quantity == 7


@pytest.mark.asyncio
async def test_create_and_update_send_expected_bodies(make_client, fake_api):
    async with make_client(fake_api) as client:
        await client.create_product("NEW-1", "Rosé", 12)
        await client.update_inventory("NEW-1", 20)

    assert fake_api.mutations == [
        ("POST", "/products", {"sku": "NEW-1", "name": "Rosé", "quantity": 12}),
        ("PUT", "/products/NEW-1", {"quantity": 20}),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda client: client.create_product("", "Name", 1),
        lambda client: client.create_product("SKU", "  ", 1),
        lambda client: client.create_product("SKU", "Name", -1),
        lambda client: client.update_inventory(" ", 1),
        lambda client: client.update_inventory("SKU", -5),
        lambda client: client.get_product(""),
    ],
)
async def test_invalid_input_makes_no_request(make_client, fake_api, call):
    async with make_client(fake_api) as client:
        with pytest.raises(VinoshipperValidationError):
            await call(client)
    assert fake_api.requests == []


@pytest.mark.asyncio
async def test_batch_update_isolates_failures(make_client):
    api = FakeVinoshipper([{"sku": "A", "quantity": 1}, {"sku": "C", "quantity": 1}])
    async with make_client(api) as client:
        results = await client.batch_update_inventory(
            [BatchUpdateItem(sku="A", quantity=5), {"sku": "B", "quantity": 6}, {"sku": "C", "quantity": 7}]
        )

    assert [(r.sku, r.success) for r in results] == [("A", True), ("B", False), ("C", True)]
    assert results[1].error == "not found"
    assert api.products["C"]["quantity"] == 7


@pytest.mark.asyncio
async def test_batch_update_records_malformed_items(make_client):
    api = FakeVinoshipper([{"sku": "A", "quantity": 1}, {"sku": "C", "quantity": 1}])
    async with make_client(api) as client:
        results = await client.batch_update_inventory(
            [{"sku": "A", "quantity": 5}, {"sku": "B"}, {"quantity": 3}, {"sku": "C", "quantity": 7}]
        )

    assert [(r.sku, r.success) for r in results] == [
        ("A", True),
        ("B", False),
        ("", False),
        ("C", True),
    ]
    assert "quantity" in results[1].error
    assert [path for _, path, _ in api.mutations] == ["/products/A", "/products/C"]


@pytest.mark.asyncio
async def test_validate_credentials(make_client, fake_api):
    async with make_client(fake_api) as client:
        assert await client.validate_credentials() is True

    fake_api.auth_status = 401
    async with make_client(fake_api) as client:
        assert await client.validate_credentials() is False


@pytest.mark.asyncio
async def test_validate_credentials_reraises_other_failures(make_client, fake_api):
    fake_api.script("GET", None, *[httpx.Response(500)] * 4)
    async with make_client(fake_api) as client:
        with pytest.raises(RetryableServiceError):
            await client.validate_credentials()


@pytest.mark.asyncio
async def test_update_retry_policy(make_client, fake_api):
    fake_api.script("GET", None, *[httpx.Response(503)] * 10)

    async with make_client(fake_api) as client:
        policy = client.update_retry_policy(max_retries=1)
        assert client.retry_policy is policy
        assert policy.initial_delay == 0.01
        with pytest.raises(RetryableServiceError):
            await client.get_inventory()

    assert len(fake_api.requests) == 2
