"""Async client for the Scaleway Instance API.

Implements the ``ComputeProvider`` capability surface on top of the shared
aiohttp ``HttpClient``. Every failure is surfaced as ``ProviderError``; this
client never retries a failed request.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from typing import Any

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_delay,
    wait_fixed,
)

from scaleway_target.config import Blueprint, ServerFilter, TargetConfig
from scaleway_target.core.exceptions import ActionTimeoutError, ProviderError
from scaleway_target.infra.http import HttpClient, HttpError, TokenAuth

from .instance import Instance, InstanceStatus, ServerAction
from .types import ListServersResponse, ServerEnvelope, TaskEnvelope

DEFAULT_ZONE = "fr-par-1"


class _ServerPendingError(Exception):
    """Server has not reached the requested state yet - poll again."""


class ScalewayClient:
    """Async HTTP client for the Scaleway Instance API."""

    def __init__(
        self,
        config: TargetConfig,
        *,
        poll_interval: float = 5.0,
        request_timeout: float = 30.0,
    ) -> None:
        self.config = config
        self.default_zone = config.zone or DEFAULT_ZONE
        self._poll_interval = poll_interval
        self._http = HttpClient(
            config.api_url,
            TokenAuth(config.secret_key or "", header="X-Auth-Token"),
            timeout=request_timeout,
        )
        self._log = logger.bind(provider="scaleway", component="client")

    async def __aenter__(self) -> ScalewayClient:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._http.close()

    def _path(self, zone: str | None, suffix: str) -> str:
        return f"/instance/v1/zones/{zone or self.default_zone}{suffix}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        text: str | None = None,
    ) -> Any:
        try:
            return await self._http.request(method, path, json=json, params=params, text=text)
        except HttpError as e:
            self._log.warning(
                "API error {method} {path}: {status}",
                method=method, path=path, status=e.status,
            )
            raise ProviderError(f"API error {e.status}: {e.body}") from e

    # =========================================================================
    # Servers
    # =========================================================================

    async def list_servers(
        self, server_filter: ServerFilter, *, page: int, per_page: int
    ) -> list[Instance]:
        """List one page of servers matching the filter."""
        params: dict[str, Any] = {"page": page, "per_page": per_page}
        if server_filter.name:
            params["name"] = server_filter.name
        if server_filter.commercial_type:
            params["commercial_type"] = server_filter.commercial_type
        if server_filter.tags:
            params["tags"] = ",".join(server_filter.tags)

        path = self._path(server_filter.zone, "/servers")
        try:
            resp = await self._http.get(path, params=params, response_type=ListServersResponse)
        except HttpError as e:
            raise ProviderError(f"Failed to list servers: {e}") from e

        servers = resp.data.get("servers", []) if resp.data else []
        self._log.trace(
            "Listed page {page}: {n} servers (total={total})",
            page=page, n=len(servers), total=resp.headers.get("X-Total-Count", "?"),
        )
        return [Instance.from_response(s) for s in servers]

    async def get_server(self, zone: str, server_id: str) -> Instance:
        result: ServerEnvelope = await self._request("GET", self._path(zone, f"/servers/{server_id}"))
        return Instance.from_response(result["server"])

    async def create_server(self, blueprint: Blueprint) -> Instance:
        """Create a stopped server from the blueprint."""
        body: dict[str, Any] = {
            "name": _server_name(blueprint.name),
            "commercial_type": blueprint.commercial_type,
            "dynamic_ip_required": blueprint.dynamic_ip,
            "enable_ipv6": blueprint.enable_ipv6,
            "tags": list(blueprint.tags),
            "volumes": {},
        }
        if self.config.project_id:
            body["project"] = self.config.project_id
        elif self.config.organization_id:
            body["organization"] = self.config.organization_id
        if blueprint.image:
            body["image"] = blueprint.image
        if blueprint.security_group:
            body["security_group"] = blueprint.security_group
        if blueprint.placement_group:
            body["placement_group"] = blueprint.placement_group

        self._log.debug(
            "Creating server {name} ({ctype})", name=body["name"], ctype=blueprint.commercial_type,
        )
        result: ServerEnvelope | None = await self._request(
            "POST", self._path(blueprint.zone, "/servers"), json=body,
        )
        if not result or "server" not in result:
            raise ProviderError(f"No server in create response: {result}")
        return Instance.from_response(result["server"])

    async def set_user_data(self, instance: Instance, data: Mapping[str, str]) -> None:
        """Replace all user data of a server with ``data``."""
        base = self._path(instance.zone, f"/servers/{instance.id}/user_data")
        existing = await self._request("GET", base)
        for key in (existing or {}).get("user_data", []):
            if key not in data:
                await self._request("DELETE", f"{base}/{key}")
        for key, value in data.items():
            await self._request("PATCH", f"{base}/{key}", text=value)

    async def server_action(self, instance: Instance, action: ServerAction) -> TaskEnvelope:
        self._log.debug("{action} server {sid}", action=action.value, sid=instance.id)
        return await self._request(
            "POST",
            self._path(instance.zone, f"/servers/{instance.id}/action"),
            json={"action": action.value},
        )

    async def action_and_wait(
        self, instance: Instance, action: ServerAction, *, timeout: float
    ) -> Instance:
        """Run ``action`` and poll until the server reaches the target state."""
        await self.server_action(instance, action)

        server = instance
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(timeout),
                wait=wait_fixed(self._poll_interval),
                retry=retry_if_exception_type(_ServerPendingError),
            ):
                with attempt:
                    server = await self.get_server(instance.zone, instance.id)
                    if server.status is InstanceStatus.LOCKED:
                        raise ProviderError(f"Server {instance.id} is locked")
                    if server.status not in action.target_states:
                        raise _ServerPendingError(f"Server {instance.id} state: {server.status}")
        except RetryError as e:
            raise ActionTimeoutError(instance.id, action.value, timeout) from e

        return server

    async def delete_server(self, instance: Instance) -> None:
        self._log.debug("Deleting server {sid}", sid=instance.id)
        await self._request("DELETE", self._path(instance.zone, f"/servers/{instance.id}"))

    async def delete_volume(self, zone: str, volume_id: str) -> None:
        self._log.debug("Deleting volume {vid}", vid=volume_id)
        await self._request("DELETE", self._path(zone, f"/volumes/{volume_id}"))


def _server_name(prefix: str) -> str:
    """Unique server name; Nomad maps nodes back to servers by hostname."""
    suffix = uuid.uuid4().hex[:8]
    return f"{prefix}-{suffix}" if prefix else f"nomad-client-{suffix}"


__all__ = ["DEFAULT_ZONE", "ScalewayClient"]
