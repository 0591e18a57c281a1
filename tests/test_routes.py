"""
Tests for the HTTP API, with the registry and orchestrator swapped for in-memory fakes.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeVinoshipper
from vinesync.main import app
from vinesync.routers.inventory import get_orchestrator, get_registry
from vinesync.services.account_registry import AccountRegistry
from vinesync.services.credential_store import InMemoryCredentialStore
from vinesync.workers.orchestrator import MultiAccountOrchestrator

CSV_TEXT = "SKU,Name,Quantity\nWINE-001,Cabernet Sauvignon 2019,50\nWINE-003,Pinot Noir 2020,12\n"


@pytest.fixture
def api():
    return FakeVinoshipper(
        [
            {"sku": "WINE-001", "name": "Cabernet Sauvignon 2019", "quantity": 45},
            {"sku": "WINE-002", "name": "Chardonnay 2021", "quantity": 3},
        ]
    )


@pytest.fixture
def registry():
    return AccountRegistry(InMemoryCredentialStore())


@pytest.fixture
def client(api, registry, make_client, fake_sleep):
    orchestrator = MultiAccountOrchestrator(
        client_factory=lambda account: make_client(api, credential=account.credential),
        account_delay=0.0,
        item_delay=0.0,
        sleep=fake_sleep,
    )
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def account_id(client):
    response = client.post("/api/accounts/", json={"name": "Demo Winery", "credential": "key:secret"})
    return response.json()["id"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "service": "vinesync"}


def test_create_and_list_accounts_without_credentials(client, account_id):
    response = client.get("/api/accounts/")

    assert response.status_code == 200
    assert response.json() == [
        {"id": account_id, "name": "Demo Winery", "fulfillment_center": "Hydra (NY)"}
    ]


def test_create_account_requires_credential(client):
    response = client.post("/api/accounts/", json={"name": "Demo Winery", "credential": " "})
    assert response.status_code == 400


def test_delete_account(client, account_id):
    assert client.delete(f"/api/accounts/{account_id}").status_code == 204
    assert client.delete(f"/api/accounts/{account_id}").status_code == 404
    assert client.get("/api/accounts/").json() == []


def test_full_sync(client, account_id, api):
    response = client.post(f"/api/accounts/{account_id}/sync", json={"csv": CSV_TEXT})

    assert response.status_code == 200
    body = response.json()
    assert body["failed"] == 0
    assert [o["message"] for o in body["outcomes"]] == [
        "WINE-001: updated 45→50",
        "WINE-003: created (12 units)",
    ]
    assert api.products["WINE-003"]["quantity"] == 12


def test_partial_sync(client, account_id, api):
    response = client.post(
        f"/api/accounts/{account_id}/sync/partial",
        json={"csv": CSV_TEXT, "skus": ["WINE-003", "NOPE"]},
    )

    body = response.json()
    assert [o["kind"] for o in body["outcomes"]] == ["created", "skipped_not_in_truth"]
    assert body["failed"] == 1
    assert api.products["WINE-001"]["quantity"] == 45


def test_partial_sync_requires_skus(client, account_id):
    response = client.post(
        f"/api/accounts/{account_id}/sync/partial", json={"csv": CSV_TEXT, "skus": []}
    )
    assert response.status_code == 422


def test_compare(client, account_id, api):
    response = client.post(f"/api/accounts/{account_id}/compare", json={"csv": CSV_TEXT})

    assert response.status_code == 200
    assert [(e["sku"], e["kind"]) for e in response.json()] == [
        ("WINE-001", "different"),
        ("WINE-003", "new"),
        ("WINE-002", "missing"),
    ]
    assert api.mutations == []


def test_bad_csv_returns_400(client, account_id):
    response = client.post(f"/api/accounts/{account_id}/sync", json={"csv": "sku,name\nA,B"})
    assert response.status_code == 400
    assert "Quantity column" in response.json()["detail"]


def test_unknown_account_returns_404(client):
    response = client.post("/api/accounts/missing/compare", json={"csv": CSV_TEXT})
    assert response.status_code == 404


def test_remote_failure_returns_502(client, account_id, api):
    api.script("GET", None, *[httpx.Response(503, json={"message": "maintenance"})] * 4)

    response = client.post(f"/api/accounts/{account_id}/sync", json={"csv": CSV_TEXT})

    assert response.status_code == 502
    assert "maintenance" in response.json()["detail"]


def test_validate(client, account_id, api):
    assert client.post(f"/api/accounts/{account_id}/validate").json()["valid"] is True
    api.auth_status = 401
    assert client.post(f"/api/accounts/{account_id}/validate").json()["valid"] is False


def test_check_all(client, account_id):
    response = client.get("/api/accounts/check")

    assert response.status_code == 200
    assert response.json()[0]["low_stock_count"] == 1
    assert response.json()[0]["error"] is None
