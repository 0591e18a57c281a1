"""
Tests for assistant action tokens and the interactive inventory session.
"""

import pytest

from conftest import FakeVinoshipper
from vinesync.models.inventory import LogLevel, SyncOutcomeKind
from vinesync.services.account_registry import AccountRegistry
from vinesync.services.action_parser import ActionType, execute_action, parse_action
from vinesync.services.activity_log import ActivityLog
from vinesync.services.credential_store import InMemoryCredentialStore
from vinesync.workers.orchestrator import MultiAccountOrchestrator
from vinesync.workers.session import NO_CSV_MESSAGE, NO_INVENTORY_MESSAGE, InventorySession

CSV_TEXT = "SKU,Name,Quantity\nWINE-001,Cabernet Sauvignon 2019,50\nWINE-003,Pinot Noir 2020,12\n"


class TestParseAction:
    def test_no_action(self):
        assert parse_action("Your inventory looks healthy.") is None
        assert parse_action("") is None

    def test_switch_client(self):
        action = parse_action("Switching now.\nACTION:SWITCH_CLIENT Hill Top Vineyards\n")
        assert action.type == ActionType.SWITCH_CLIENT
        assert action.client_name == "Hill Top Vineyards"

    def test_sync_skus(self):
        action = parse_action("ACTION:SYNC [WINE-001, WINE-002 ,]")
        assert action.type == ActionType.SYNC_SKUS
        assert action.skus == ["WINE-001", "WINE-002"]

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("ACTION:CHECK_ALL_CLIENTS", ActionType.CHECK_ALL_CLIENTS),
            ("ACTION:SYNC_ALL", ActionType.SYNC_ALL),
            ("ACTION:COMPARE", ActionType.COMPARE),
            ("ACTION:COMPARE then ACTION:SYNC_ALL", ActionType.SYNC_ALL),
            ("ACTION:SYNC [A]\nACTION:SWITCH_CLIENT Demo", ActionType.SWITCH_CLIENT),
        ],
    )
    def test_precedence(self, text, expected):
        assert parse_action(text).type == expected

    def test_empty_sku_list_is_not_an_action(self):
        assert parse_action("ACTION:SYNC [ , ]") is None


class RecordingHandlers:
    def __init__(self):
        self.calls = []

    async def switch_client(self, client_name):
        self.calls.append(("switch_client", client_name))

    async def check_all_clients(self):
        self.calls.append(("check_all_clients",))

    async def sync_all(self):
        self.calls.append(("sync_all",))

    async def sync_skus(self, skus):
        self.calls.append(("sync_skus", skus))

    async def compare(self):
        self.calls.append(("compare",))


@pytest.mark.asyncio
async def test_execute_action_dispatches():
    handlers = RecordingHandlers()

    action = await execute_action("Sure. ACTION:SYNC [A,B]", handlers)
    await execute_action("nothing to do", handlers)

    assert action.type == ActionType.SYNC_SKUS
    assert handlers.calls == [("sync_skus", ["A", "B"])]


@pytest.fixture
def apis():
    return {}


@pytest.fixture
def session(apis, make_client, fake_sleep):
    registry = AccountRegistry(InMemoryCredentialStore())
    demo = registry.add_account("Demo Winery", "demo:key")
    hill = registry.add_account("Hill Top Vineyards", "hill:key")
    apis[demo.id] = FakeVinoshipper(
        [
            {"sku": "WINE-001", "name": "Cabernet Sauvignon 2019", "quantity": 45},
            {"sku": "WINE-002", "name": "Chardonnay 2021", "quantity": 30},
        ]
    )
    apis[hill.id] = FakeVinoshipper([{"sku": "HT-1", "quantity": 4}])
    orchestrator = MultiAccountOrchestrator(
        client_factory=lambda account: make_client(apis[account.id]),
        account_delay=0.0,
        item_delay=0.0,
        sleep=fake_sleep,
        activity_log=ActivityLog(),
    )
    return InventorySession(registry, orchestrator)


class TestInventorySession:
    @pytest.mark.asyncio
    async def test_sync_without_csv_is_refused(self, session, apis):
        assert await session.sync_all() == []
        assert session.activity_log.entries[-1].message == NO_CSV_MESSAGE
        assert session.activity_log.entries[-1].level == LogLevel.ERROR
        assert all(api.requests == [] for api in apis.values())

    @pytest.mark.asyncio
    async def test_sync_all_updates_view(self, session):
        await session.refresh_inventory()
        session.load_truth_csv(CSV_TEXT)

        outcomes = await session.sync_all()

        assert [o.kind for o in outcomes] == [SyncOutcomeKind.UPDATED, SyncOutcomeKind.CREATED]
        assert session.view.get("WINE-001").quantity == 50
        assert session.view.get("WINE-003").quantity == 12
        assert session.view.get("WINE-002").quantity == 30

    @pytest.mark.asyncio
    async def test_sync_loads_inventory_first(self, session, apis):
        session.load_truth_csv(CSV_TEXT)

        outcomes = await session.sync_all()

        demo_api = next(api for api in apis.values() if "WINE-001" in api.products)
        assert [o.kind for o in outcomes] == [SyncOutcomeKind.UPDATED, SyncOutcomeKind.CREATED]
        assert [method for method, _, _ in demo_api.mutations] == ["PUT", "POST"]
        assert session.last_load.success

    @pytest.mark.asyncio
    async def test_sync_refused_when_inventory_unavailable(self, session, apis):
        for api in apis.values():
            api.auth_status = 401
        session.load_truth_csv(CSV_TEXT)

        assert await session.sync_skus(["WINE-001"]) == []
        assert await session.sync_all() == []
        assert all(api.mutations == [] for api in apis.values())
        assert session.activity_log.entries[-1].message == NO_INVENTORY_MESSAGE

    @pytest.mark.asyncio
    async def test_compare_uses_view(self, session, apis):
        await session.refresh_inventory()
        session.load_truth_csv(CSV_TEXT)
        request_count = sum(len(api.requests) for api in apis.values())

        entries = await session.compare()

        assert [(e.sku, e.kind.value) for e in entries] == [
            ("WINE-001", "different"),
            ("WINE-003", "new"),
            ("WINE-002", "missing"),
        ]
        assert sum(len(api.requests) for api in apis.values()) == request_count

    @pytest.mark.asyncio
    async def test_assistant_switch_then_partial_sync(self, session, apis):
        session.load_truth_csv("sku,quantity\nHT-1,9\nHT-2,1\n")

        await execute_action("ACTION:SWITCH_CLIENT hill top", session)
        await execute_action("ACTION:SYNC [HT-1]", session)

        hill_api = next(api for api in apis.values() if "HT-1" in api.products)
        assert session.registry.selected.name == "Hill Top Vineyards"
        assert hill_api.products["HT-1"]["quantity"] == 9
        assert "HT-2" not in hill_api.products
        assert session.view.get("HT-1").quantity == 9

    @pytest.mark.asyncio
    async def test_switch_to_unknown_client(self, session):
        assert await session.switch_client("Nowhere") is None
        assert session.registry.selected.name == "Demo Winery"
        assert "not found" in session.activity_log.entries[-1].message

    @pytest.mark.asyncio
    async def test_check_all_clients(self, session):
        summaries = await session.check_all_clients()
        assert [s.low_stock_count for s in summaries] == [0, 1]
