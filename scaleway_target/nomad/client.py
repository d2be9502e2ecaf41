"""Async client for the subset of the Nomad HTTP API used during scale-in."""

from __future__ import annotations

from typing import Any, NotRequired, TypedDict

from loguru import logger

from scaleway_target.config import NomadConfig
from scaleway_target.core.exceptions import NomadError
from scaleway_target.infra.http import HttpClient, HttpError, TokenAuth


class NodeStub(TypedDict):
    """Entry of ``GET /v1/nodes``."""

    ID: str
    Name: str
    Datacenter: str
    NodeClass: str
    Status: str
    SchedulingEligibility: str
    Drain: bool
    CreateIndex: int
    NodePool: NotRequired[str]


class Node(TypedDict):
    """Full node from ``GET /v1/node/:id``."""

    ID: str
    Name: str
    Attributes: dict[str, str]
    Status: str
    DrainStrategy: dict[str, Any] | None


class NomadClient:
    def __init__(self, config: NomadConfig, *, request_timeout: float = 30.0) -> None:
        self.config = config
        self._http = HttpClient(
            config.address,
            TokenAuth(config.token or "", header="X-Nomad-Token"),
            timeout=request_timeout,
        )
        self._log = logger.bind(component="nomad")

    async def close(self) -> None:
        await self._http.close()

    def _params(self, extra: dict[str, Any] | None = None) -> dict[str, Any]:
        params: dict[str, Any] = dict(extra or {})
        if self.config.region:
            params["region"] = self.config.region
        if self.config.namespace:
            params["namespace"] = self.config.namespace
        return params

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            return await self._http.request(method, path, json=json, params=self._params(params))
        except HttpError as e:
            raise NomadError(f"Nomad API error {method} {path}: {e}") from e

    async def list_nodes(self) -> list[NodeStub]:
        result = await self._request("GET", "/v1/nodes")
        return result or []

    async def get_node(self, node_id: str) -> Node:
        result = await self._request("GET", f"/v1/node/{node_id}")
        if not result:
            raise NomadError(f"Node {node_id} not found")
        return result

    async def drain_node(self, node_id: str, *, deadline: float, ignore_system_jobs: bool) -> None:
        self._log.bind(node_id=node_id).debug("Draining node (deadline {d}s)", d=deadline)
        await self._request(
            "POST",
            f"/v1/node/{node_id}/drain",
            json={
                "NodeID": node_id,
                "DrainSpec": {
                    "Deadline": int(deadline * 1_000_000_000),
                    "IgnoreSystemJobs": ignore_system_jobs,
                },
                "MarkEligible": False,
                "Meta": {"message": "draining node for scale-in"},
            },
        )

    async def purge_node(self, node_id: str) -> None:
        self._log.bind(node_id=node_id).debug("Purging node")
        await self._request("POST", f"/v1/node/{node_id}/purge")
