import pytest

from scaleway_target.config import Blueprint, ServerFilter
from scaleway_target.core.exceptions import ProviderError
from scaleway_target.scaleway.instance import Instance, InstanceStatus, Inventory
from scaleway_target.scaleway.inventory import PAGE_SIZE, list_all
from tests.fakes import FailingPage, FakeProvider, make_server

pytestmark = [pytest.mark.unit]


class TestListAll:
    @pytest.mark.asyncio
    async def test_concatenates_pages_until_empty(self):
        provider = FailingPage([100, 100, 37, 0])
        inventory = await list_all(provider, ServerFilter())
        assert inventory.count() == 237
        assert provider.calls == [("list", "1"), ("list", "2"), ("list", "3"), ("list", "4")]

    @pytest.mark.asyncio
    async def test_keeps_arrival_order(self):
        provider = FailingPage([100, 5])
        inventory = await list_all(provider, ServerFilter())
        assert inventory.ids() == [f"srv-{i}" for i in range(105)]

    @pytest.mark.asyncio
    async def test_empty_account(self):
        provider = FailingPage([0])
        inventory = await list_all(provider, ServerFilter())
        assert inventory.count() == 0
        assert provider.calls == [("list", "1")]

    @pytest.mark.asyncio
    async def test_failing_page_aborts(self):
        provider = FailingPage([100, 100, 10], fail_page=2)
        with pytest.raises(ProviderError, match="page 2"):
            await list_all(provider, ServerFilter())

    @pytest.mark.asyncio
    async def test_blueprint_is_turned_into_filter(self):
        provider = FakeProvider([
            make_server(1, name="web"),
            make_server(2, name="batch"),
            make_server(3, name="web", tags=("other",)),
        ])
        inventory = await list_all(provider, Blueprint(name="web"))
        assert inventory.ids() == ["srv-1"]

    def test_default_page_size(self):
        assert PAGE_SIZE == 100


class TestInventory:
    def _inventory(self, *servers: Instance) -> Inventory:
        return Inventory(tuple(servers))

    def test_ready_when_all_running(self):
        assert self._inventory(make_server(1), make_server(2)).ready()

    def test_not_ready_with_transient_server(self):
        inv = self._inventory(make_server(1), make_server(2, status=InstanceStatus.STARTING))
        assert not inv.ready()

    def test_empty_is_ready(self):
        assert Inventory().ready()

    def test_with_ids_skips_unknown(self):
        inv = self._inventory(make_server(1), make_server(2), make_server(3))
        assert inv.with_ids("srv-3", "srv-9", "srv-1").ids() == ["srv-3", "srv-1"]

    def test_with_name(self):
        inv = self._inventory(make_server(1), make_server(2))
        found = inv.with_name("nomad-client-2")
        assert found is not None and found.id == "srv-2"
        assert inv.with_name("nomad-client") is None

    def test_sequence_access(self):
        inv = self._inventory(make_server(1), make_server(2))
        assert len(inv) == 2
        assert inv[1].id == "srv-2"
        assert [s.id for s in inv] == ["srv-1", "srv-2"]


class TestInstanceFromResponse:
    def test_volumes_in_slot_order(self):
        server = Instance.from_response({
            "id": "a",
            "zone": "fr-par-1",
            "state": "running",
            "volumes": {
                "1": {"id": "v-1", "name": "", "volume_type": "b_ssd", "size": 1, "zone": "fr-par-1"},
                "0": {"id": "v-0", "name": "", "volume_type": "l_ssd", "size": 1, "zone": "fr-par-1"},
            },
        })
        assert server.volume_ids == ("v-0", "v-1")

    def test_unknown_state(self):
        server = Instance.from_response({"id": "a", "zone": "fr-par-1", "state": "rebooting"})
        assert server.status is InstanceStatus.UNKNOWN
