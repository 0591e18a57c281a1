"""
Shared fixtures: an in-memory Vinoshipper API served through httpx.MockTransport.
"""

import json
from urllib.parse import unquote

import httpx
import pytest

from vinesync.models.inventory import Account
from vinesync.services.vinoshipper_client import VinoshipperClient
from vinesync.utils.retry import RetryPolicy

BASE_URL = "https://vinoshipper.test/api"

FAST_POLICY = RetryPolicy(max_retries=3, initial_delay=0.01, max_delay=0.05)


class FakeVinoshipper:
    """Minimal stand-in for the Vinoshipper products API."""

    def __init__(self, products=None, envelope_key="products"):
        self.products = {p["sku"]: dict(p) for p in products or []}
        self.envelope_key = envelope_key
        self.requests = []
        # (method, sku) -> list of responses/exceptions consumed in order, then falls through
        self.scripted = {}
        self.auth_status = None

    def script(self, method, sku, *responses):
        self.scripted.setdefault((method, sku), []).extend(responses)

    @property
    def mutations(self):
        return [(method, path, body) for method, path, body in self.requests if method in ("POST", "PUT")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path[len("/api"):]
        self.requests.append((request.method, path, body))

        if self.auth_status:
            return httpx.Response(self.auth_status, json={"message": "Invalid credentials"})

        parts = [unquote(part) for part in path.strip("/").split("/")]
        sku = parts[1] if len(parts) > 1 else None

        queue = self.scripted.get((request.method, sku))
        if queue:
            scripted = queue.pop(0)
            if isinstance(scripted, Exception):
                raise scripted
            return scripted

        if request.method == "GET" and sku is None:
            return httpx.Response(200, json={self.envelope_key: list(self.products.values())})
        if request.method == "GET":
            if sku not in self.products:
                return httpx.Response(404, json={"message": f"Product {sku} not found"})
            return httpx.Response(200, json=self.products[sku])
        if request.method == "POST":
            self.products[body["sku"]] = dict(body)
            return httpx.Response(201, json=body)
        if request.method == "PUT":
            if sku not in self.products:
                return httpx.Response(404, json={"error": "not found"})
            self.products[sku]["quantity"] = body["quantity"]
            return httpx.Response(200, json=self.products[sku])
        return httpx.Response(405)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds):
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
def fake_api():
    return FakeVinoshipper()


@pytest.fixture
def make_client(fake_sleep):
    def _make(handler, policy=FAST_POLICY, credential="key:secret"):
        return VinoshipperClient(
            credential,
            base_url=BASE_URL,
            retry_policy=policy,
            transport=httpx.MockTransport(handler),
            sleep=fake_sleep,
        )

    return _make


@pytest.fixture
def demo_account():
    return Account(id="acct-1", name="Demo Winery", credential="key:secret")
