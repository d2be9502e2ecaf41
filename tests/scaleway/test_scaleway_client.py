from __future__ import annotations

from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from scaleway_target.config import Blueprint, ServerFilter, TargetConfig
from scaleway_target.core.exceptions import ActionTimeoutError, ProviderError
from scaleway_target.scaleway.client import ScalewayClient
from scaleway_target.scaleway.instance import Instance, InstanceStatus, ServerAction

pytestmark = [pytest.mark.unit]

ZONE = "fr-par-1"
PREFIX = f"/instance/v1/zones/{ZONE}"


class FakeScalewayApi:
    """Just enough of the Instance API to exercise the client."""

    def __init__(self) -> None:
        self.servers: dict[str, dict[str, Any]] = {}
        self.user_data: dict[str, dict[str, str]] = {}
        self.requests: list[tuple[str, str]] = []
        self.list_queries: list[dict[str, str]] = []
        self.created: list[dict[str, Any]] = []
        self.transitions: dict[str, list[str]] = {
            "poweron": ["starting", "running"],
            "poweroff": ["stopping", "stopped"],
        }
        self.pending: dict[str, list[str]] = {}
        self.fail_volumes: set[str] = set()

    def add_server(self, server_id: str, state: str = "running", volumes: int = 1) -> None:
        self.servers[server_id] = {
            "id": server_id,
            "name": f"pool-{server_id}",
            "zone": ZONE,
            "commercial_type": "DEV1-S",
            "state": state,
            "tags": ["nomad", "client", "autoscaler"],
            "volumes": {
                str(i): {"id": f"{server_id}-vol-{i}", "name": "", "volume_type": "l_ssd",
                         "size": 20, "zone": ZONE}
                for i in range(volumes)
            },
        }

    def app(self) -> web.Application:
        app = web.Application()

        @web.middleware
        async def record(request: web.Request, handler):
            self.requests.append((request.method, request.path))
            if request.headers.get("X-Auth-Token") != "secret":
                return web.json_response({"message": "denied"}, status=401)
            return await handler(request)

        app.middlewares.append(record)

        async def list_servers(request: web.Request) -> web.Response:
            query = dict(request.query)
            self.list_queries.append(query)
            page, per_page = int(query["page"]), int(query["per_page"])
            items = list(self.servers.values())[(page - 1) * per_page: page * per_page]
            return web.json_response(
                {"servers": items}, headers={"X-Total-Count": str(len(self.servers))},
            )

        async def create_server(request: web.Request) -> web.Response:
            body = await request.json()
            self.created.append(body)
            server_id = f"new-{len(self.created)}"
            self.add_server(server_id, state="stopped")
            self.servers[server_id]["name"] = body["name"]
            return web.json_response({"server": self.servers[server_id]}, status=201)

        async def get_server(request: web.Request) -> web.Response:
            sid = request.match_info["sid"]
            if sid not in self.servers:
                return web.json_response({"message": "not found"}, status=404)
            if self.pending.get(sid):
                self.servers[sid]["state"] = self.pending[sid].pop(0)
            return web.json_response({"server": self.servers[sid]})

        async def action(request: web.Request) -> web.Response:
            sid = request.match_info["sid"]
            name = (await request.json())["action"]
            self.pending[sid] = list(self.transitions[name])
            return web.json_response(
                {"task": {"id": "task-1", "description": name, "status": "pending"}},
                status=202,
            )

        async def list_user_data(request: web.Request) -> web.Response:
            sid = request.match_info["sid"]
            return web.json_response({"user_data": sorted(self.user_data.get(sid, {}))})

        async def set_user_data(request: web.Request) -> web.Response:
            sid, key = request.match_info["sid"], request.match_info["key"]
            self.user_data.setdefault(sid, {})[key] = await request.text()
            return web.Response(status=204)

        async def delete_user_data(request: web.Request) -> web.Response:
            sid, key = request.match_info["sid"], request.match_info["key"]
            self.user_data.get(sid, {}).pop(key, None)
            return web.Response(status=204)

        async def delete_server(request: web.Request) -> web.Response:
            sid = request.match_info["sid"]
            if self.servers.get(sid, {}).get("state") == "running":
                return web.json_response({"message": "server should be stopped"}, status=400)
            self.servers.pop(sid, None)
            return web.Response(status=204)

        async def delete_volume(request: web.Request) -> web.Response:
            if request.match_info["vid"] in self.fail_volumes:
                return web.json_response({"message": "volume is in use"}, status=412)
            return web.Response(status=204)

        base = "/instance/v1/zones/{zone}"
        app.router.add_get(f"{base}/servers", list_servers)
        app.router.add_post(f"{base}/servers", create_server)
        app.router.add_get(f"{base}/servers/{{sid}}", get_server)
        app.router.add_delete(f"{base}/servers/{{sid}}", delete_server)
        app.router.add_post(f"{base}/servers/{{sid}}/action", action)
        app.router.add_get(f"{base}/servers/{{sid}}/user_data", list_user_data)
        app.router.add_patch(f"{base}/servers/{{sid}}/user_data/{{key}}", set_user_data)
        app.router.add_delete(f"{base}/servers/{{sid}}/user_data/{{key}}", delete_user_data)
        app.router.add_delete(f"{base}/volumes/{{vid}}", delete_volume)
        return app


@pytest.fixture
def api() -> FakeScalewayApi:
    return FakeScalewayApi()


@pytest.fixture
async def client(api: FakeScalewayApi):
    srv = TestServer(api.app())
    await srv.start_server()
    config = TargetConfig(secret_key="secret", project_id="proj", zone=ZONE,
                          api_url=f"http://{srv.host}:{srv.port}")
    async with ScalewayClient(config, poll_interval=0) as c:
        yield c
    await srv.close()


def _instance(api: FakeScalewayApi, sid: str) -> Instance:
    return Instance.from_response(api.servers[sid])  # type: ignore[arg-type]


class TestListServers:
    @pytest.mark.asyncio
    async def test_filter_becomes_query(self, client: ScalewayClient, api: FakeScalewayApi):
        await client.list_servers(
            ServerFilter(name="pool", commercial_type="DEV1-S", tags=("nomad", "web")),
            page=2, per_page=100,
        )
        assert api.list_queries == [{
            "page": "2", "per_page": "100", "name": "pool",
            "commercial_type": "DEV1-S", "tags": "nomad,web",
        }]

    @pytest.mark.asyncio
    async def test_empty_filter_sends_only_paging(self, client: ScalewayClient, api: FakeScalewayApi):
        await client.list_servers(ServerFilter(), page=1, per_page=100)
        assert api.list_queries == [{"page": "1", "per_page": "100"}]

    @pytest.mark.asyncio
    async def test_parses_servers(self, client: ScalewayClient, api: FakeScalewayApi):
        api.add_server("a", volumes=2)
        result = await client.list_servers(ServerFilter(), page=1, per_page=100)
        assert result == [
            Instance(
                id="a", zone=ZONE, name="pool-a", commercial_type="DEV1-S",
                tags=("nomad", "client", "autoscaler"), status=InstanceStatus.RUNNING,
                volume_ids=("a-vol-0", "a-vol-1"),
            )
        ]

    @pytest.mark.asyncio
    async def test_other_zone_in_path(self, client: ScalewayClient, api: FakeScalewayApi):
        await client.list_servers(ServerFilter(zone="nl-ams-1"), page=1, per_page=100)
        assert api.requests[-1] == ("GET", "/instance/v1/zones/nl-ams-1/servers")

    @pytest.mark.asyncio
    async def test_auth_failure_is_provider_error(self, api: FakeScalewayApi):
        srv = TestServer(api.app())
        await srv.start_server()
        config = TargetConfig(secret_key="wrong", api_url=f"http://{srv.host}:{srv.port}")
        async with ScalewayClient(config) as c:
            with pytest.raises(ProviderError, match="401"):
                await c.list_servers(ServerFilter(), page=1, per_page=100)
        await srv.close()


class TestCreateServer:
    @pytest.mark.asyncio
    async def test_request_body(self, client: ScalewayClient, api: FakeScalewayApi):
        bp = Blueprint(
            name="pool", zone=ZONE, commercial_type="DEV1-S",
            tags=("nomad", "client", "autoscaler", "web"), image="img",
            security_group="sg", placement_group="pg", dynamic_ip=True, enable_ipv6=True,
        )
        server = await client.create_server(bp)

        body = api.created[0]
        assert body["name"].startswith("pool-")
        assert body["commercial_type"] == "DEV1-S"
        assert body["tags"] == ["nomad", "client", "autoscaler", "web"]
        assert body["image"] == "img"
        assert body["security_group"] == "sg"
        assert body["placement_group"] == "pg"
        assert body["dynamic_ip_required"] is True
        assert body["enable_ipv6"] is True
        assert body["project"] == "proj"
        assert body["volumes"] == {}
        assert server.id == "new-1"
        assert server.status is InstanceStatus.STOPPED

    @pytest.mark.asyncio
    async def test_optional_references_omitted(self, client: ScalewayClient, api: FakeScalewayApi):
        await client.create_server(Blueprint(name="pool", commercial_type="DEV1-S"))
        body = api.created[0]
        assert "image" not in body
        assert "security_group" not in body
        assert "placement_group" not in body

    @pytest.mark.asyncio
    async def test_names_are_unique(self, client: ScalewayClient, api: FakeScalewayApi):
        bp = Blueprint(name="pool")
        await client.create_server(bp)
        await client.create_server(bp)
        assert api.created[0]["name"] != api.created[1]["name"]


class TestUserData:
    @pytest.mark.asyncio
    async def test_replaces_all_keys(self, client: ScalewayClient, api: FakeScalewayApi):
        api.add_server("a")
        api.user_data["a"] = {"stale": "x", "role": "old"}
        await client.set_user_data(_instance(api, "a"), {"role": "worker", "cloud-init": "#cfg"})
        assert api.user_data["a"] == {"role": "worker", "cloud-init": "#cfg"}


class TestActionAndWait:
    @pytest.mark.asyncio
    async def test_poweron_waits_for_running(self, client: ScalewayClient, api: FakeScalewayApi):
        api.add_server("a", state="stopped")
        server = await client.action_and_wait(_instance(api, "a"), ServerAction.POWERON, timeout=5)
        assert server.status is InstanceStatus.RUNNING
        gets = [r for r in api.requests if r == ("GET", f"{PREFIX}/servers/a")]
        assert len(gets) == 2

    @pytest.mark.asyncio
    async def test_poweroff_accepts_stopped_in_place(self, client: ScalewayClient, api: FakeScalewayApi):
        api.add_server("a")
        api.transitions["poweroff"] = ["stopping", "stopped in place"]
        server = await client.action_and_wait(_instance(api, "a"), ServerAction.POWEROFF, timeout=5)
        assert server.status is InstanceStatus.STOPPED_IN_PLACE

    @pytest.mark.asyncio
    async def test_timeout(self, api: FakeScalewayApi):
        api.add_server("a", state="stopped")
        api.transitions["poweron"] = ["starting"] * 10_000
        srv = TestServer(api.app())
        await srv.start_server()
        config = TargetConfig(secret_key="secret", api_url=f"http://{srv.host}:{srv.port}")
        async with ScalewayClient(config, poll_interval=0.01) as c:
            with pytest.raises(ActionTimeoutError) as exc_info:
                await c.action_and_wait(_instance(api, "a"), ServerAction.POWERON, timeout=0.2)
        await srv.close()
        assert exc_info.value.instance_id == "a"
        assert exc_info.value.action == "poweron"

    @pytest.mark.asyncio
    async def test_locked_server_fails_fast(self, client: ScalewayClient, api: FakeScalewayApi):
        api.add_server("a", state="stopped")
        api.transitions["poweron"] = ["locked", "running"]
        with pytest.raises(ProviderError, match="locked"):
            await client.action_and_wait(_instance(api, "a"), ServerAction.POWERON, timeout=5)

    @pytest.mark.asyncio
    async def test_poll_failure_is_not_retried(self, client: ScalewayClient, api: FakeScalewayApi):
        api.add_server("a", state="stopped")
        instance = _instance(api, "a")
        api.servers.pop("a")
        with pytest.raises(ProviderError, match="404"):
            await client.action_and_wait(instance, ServerAction.POWERON, timeout=5)


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_server(self, client: ScalewayClient, api: FakeScalewayApi):
        api.add_server("a", state="stopped")
        await client.delete_server(_instance(api, "a"))
        assert "a" not in api.servers

    @pytest.mark.asyncio
    async def test_delete_running_server_rejected(self, client: ScalewayClient, api: FakeScalewayApi):
        api.add_server("a")
        with pytest.raises(ProviderError, match="400"):
            await client.delete_server(_instance(api, "a"))

    @pytest.mark.asyncio
    async def test_delete_volume(self, client: ScalewayClient, api: FakeScalewayApi):
        await client.delete_volume(ZONE, "vol-1")
        assert api.requests[-1] == ("DELETE", f"{PREFIX}/volumes/vol-1")

    @pytest.mark.asyncio
    async def test_delete_volume_failure(self, client: ScalewayClient, api: FakeScalewayApi):
        api.fail_volumes.add("vol-1")
        with pytest.raises(ProviderError, match="412"):
            await client.delete_volume(ZONE, "vol-1")
